# storefront/api/routers/coupons.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.schemas import (
    CouponIn,
    CouponOut,
    CouponUpdate,
    CouponValidateIn,
    CouponValidationOut,
)
from storefront.services.coupon_service import CouponService
from storefront.utils.money import ZERO

router = APIRouter(prefix="/coupons", tags=["coupons"])


def get_service(db: Session):
    return CouponService(db)


@router.post("/", response_model=CouponOut, status_code=201)
def create_coupon(payload: CouponIn, db: Session = Depends(get_db)):
    return get_service(db).create_coupon(payload.model_dump())


@router.get("/{code}", response_model=CouponOut)
def get_coupon(code: str, db: Session = Depends(get_db)):
    return get_service(db).get_coupon_by_code(code)


@router.patch("/{code}", response_model=CouponOut)
def update_coupon(code: str, payload: CouponUpdate, db: Session = Depends(get_db)):
    return get_service(db).update_coupon(code, payload.model_dump(exclude_unset=True))


@router.delete("/{code}", response_model=CouponOut)
def deactivate_coupon(code: str, db: Session = Depends(get_db)):
    return get_service(db).deactivate_coupon(code)


@router.post("/validate", response_model=CouponValidationOut)
def validate_coupon(payload: CouponValidateIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    result = svc.validate(payload.code, payload.subtotal, payload.user_id)
    return CouponValidationOut(
        valid=result.valid,
        errors=result.errors,
        discount=svc.calculate_discount(result.coupon, payload.subtotal) if result.valid else ZERO,
        free_shipping=svc.waives_shipping(result.coupon),
    )
