# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.schemas import (
    CartItemIn,
    CartItemUpdate,
    CartMergeIn,
    CartOut,
    CouponApplyIn,
)
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/carts", tags=["carts"])


def get_service(db: Session):
    return CartService(db)


@router.get("/", response_model=CartOut)
def get_cart(
    session_id: str | None = Query(None),
    user_id: int | None = Query(None),
    db: Session = Depends(get_db),
):
    """Aktywny koszyk sesji (albo uzytkownika), tworzony przy pierwszym odczycie."""
    return get_service(db).get_cart(session_id, user_id)


@router.post("/items", response_model=CartOut, status_code=201)
def add_item(
    payload: CartItemIn,
    session_id: str | None = Query(None),
    user_id: int | None = Query(None),
    db: Session = Depends(get_db),
):
    return get_service(db).add_item(
        session_id,
        user_id,
        payload.product_id,
        payload.quantity,
        payload.configuration,
    )


@router.patch("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: int,
    payload: CartItemUpdate,
    session_id: str | None = Query(None),
    user_id: int | None = Query(None),
    db: Session = Depends(get_db),
):
    return get_service(db).update_item_quantity(item_id, payload.quantity, session_id, user_id)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: int,
    session_id: str | None = Query(None),
    user_id: int | None = Query(None),
    db: Session = Depends(get_db),
):
    return get_service(db).remove_item(item_id, session_id, user_id)


@router.post("/merge", response_model=CartOut)
def merge_cart(payload: CartMergeIn, db: Session = Depends(get_db)):
    """Po zalogowaniu laczy koszyk goscia z koszykiem uzytkownika."""
    return get_service(db).merge_guest_cart(payload.session_id, payload.user_id)


@router.post("/coupon", response_model=CartOut)
def apply_coupon(
    payload: CouponApplyIn,
    session_id: str | None = Query(None),
    user_id: int | None = Query(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    cart = svc.get_or_create_cart(session_id, user_id)
    return svc.apply_coupon(cart.id, payload.code, user_id)


@router.delete("/coupon", response_model=CartOut)
def remove_coupon(
    session_id: str | None = Query(None),
    user_id: int | None = Query(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    cart = svc.get_or_create_cart(session_id, user_id)
    return svc.remove_coupon(cart.id)


@router.delete("/", response_model=CartOut)
def clear_cart(
    session_id: str | None = Query(None),
    user_id: int | None = Query(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    cart = svc.get_or_create_cart(session_id, user_id)
    return svc.clear_cart(cart.id)
