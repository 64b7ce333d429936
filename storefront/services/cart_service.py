# storefront/services/cart_service.py
import json
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.database import transaction, in_transaction
from storefront.data.models import CartModel, CartItemModel, ProductModel
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.repos.cart_repo import CartRepo
from storefront.repos.product_repo import ProductRepo
from storefront.services.coupon_service import CouponService
from storefront.utils.clock import utcnow
from storefront.utils.money import ZERO, to_money
from storefront.utils.settings import CART_TTL_SECONDS, CART_MAX_ITEM_QUANTITY, DEFAULT_CURRENCY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def configuration_signature(configuration: Dict[str, Any] | None) -> str:
    """Kanoniczny zapis konfiguracji - ten sam wybor wariantow daje ten sam klucz."""
    return json.dumps(configuration or {}, sort_keys=True, separators=(",", ":"))


class CartService:
    """
    Prosta implementacja cqrs dla domeny cart
    commands (add, update, remove, merge, coupon) modyfikuja stan w transakcji
    query (get_cart_view) tylko odczyt, sumy liczone zawsze od nowa z aktualnych cen
    """

    def __init__(self, db: Session, coupon_service: CouponService | None = None):
        self.db = db
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)
        self.coupons = coupon_service or CouponService(db)

    #query - odczyt
    def get_cart(self, session_id: str | None, user_id: int | None = None) -> Dict[str, Any]:
        cart = self.get_or_create_cart(session_id, user_id)
        return self.get_cart_view(cart)

    def get_cart_view(self, cart: CartModel) -> Dict[str, Any]:
        items = self.repo.get_cart_items(cart.id)

        lines = []
        for i in items:
            product = i.product
            unit_price = to_money(product.price)
            lines.append(
                {
                    "id": i.id,
                    "product_id": i.product_id,
                    "product_name": product.name,
                    "product_sku": product.sku,
                    "quantity": i.quantity,
                    "configuration": json.loads(i.configuration or "{}"),
                    "unit_price": unit_price,
                    "line_total": to_money(unit_price * i.quantity),
                    "price_changed": to_money(i.unit_price) != unit_price,
                    "available": product.status == "active" and product.stock >= i.quantity,
                }
            )

        subtotal = to_money(sum((line["line_total"] for line in lines), ZERO))

        #rabat liczony od nowa przy kazdym odczycie, zmiana koszyka moze uniewaznic kupon
        discount = ZERO
        coupon_errors: list[str] = []
        free_shipping = False
        if cart.coupon_code:
            validation = self.coupons.validate(cart.coupon_code, subtotal, cart.user_id)
            if validation.valid:
                discount = self.coupons.calculate_discount(validation.coupon, subtotal)
                free_shipping = self.coupons.waives_shipping(validation.coupon)
            else:
                coupon_errors = validation.errors

        return {
            "cart_id": cart.id,
            "session_id": cart.session_id,
            "user_id": cart.user_id,
            "status": cart.status,
            "items": lines,
            "coupon_code": cart.coupon_code,
            "coupon_errors": coupon_errors,
            "free_shipping": free_shipping,
            "subtotal": subtotal,
            "discount": discount,
            "total": to_money(subtotal - discount),
            "item_count": sum(line["quantity"] for line in lines),
            "currency": DEFAULT_CURRENCY,
            "expires_at": cart.expires_at,
        }

    #commands
    def get_or_create_cart(self, session_id: str | None, user_id: int | None = None) -> CartModel:
        if not session_id and user_id is None:
            raise ValidationError("Session id or user id is required")

        existing = self._find_active(session_id, user_id)
        if existing:
            return existing

        try:
            with transaction(self.db):
                created = self.repo.create_cart(
                    CartModel(
                        session_id=session_id,
                        user_id=user_id,
                        status="active",
                        expires_at=self._new_expiry(),
                    )
                )
        except IntegrityError:
            # rownolegle zapytanie utworzylo koszyk pierwsze
            if in_transaction(self.db):
                raise
            created = self._find_active(session_id, user_id)
            if created is None:
                raise

        logger.info(f"Utworzono nowy koszyk {created.id} (session={session_id}, user={user_id})")
        return created

    def add_item(
        self,
        session_id: str | None,
        user_id: int | None,
        product_id: int,
        quantity: int,
        configuration: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        self._check_quantity(quantity)
        cart = self.get_or_create_cart(session_id, user_id)
        signature = configuration_signature(configuration)

        with transaction(self.db):
            product = self.products.get_product(product_id)
            if not product:
                raise NotFoundError("Product", details={"product_id": product_id})
            self._check_available(product)

            existing_item = self.repo.get_cart_item(cart.id, product_id, signature)
            new_quantity = quantity + (existing_item.quantity if existing_item else 0)
            self._check_quantity(new_quantity)
            self._check_stock(product, new_quantity)

            if existing_item:
                logger.info(
                    f"Produkt {product_id} juz jest w koszyku {cart.id}, zwiekszam ilosc "
                    f"z {existing_item.quantity} do {new_quantity}"
                )
                existing_item.quantity = new_quantity
                existing_item.unit_price = product.price
            else:
                logger.info(f"Dodaje nowy produkt {product_id} do koszyka {cart.id}")
                self.repo.add_cart_item(
                    CartItemModel(
                        cart_id=cart.id,
                        product_id=product_id,
                        quantity=quantity,
                        configuration=signature,
                        unit_price=product.price,
                    )
                )

            self._touch(cart)

        return self.get_cart_view(cart)

    def update_item_quantity(
        self,
        item_id: int,
        quantity: int,
        session_id: str | None,
        user_id: int | None = None,
    ) -> Dict[str, Any]:
        self._check_quantity(quantity)

        with transaction(self.db):
            cart, item = self._owned_item(item_id, session_id, user_id)
            self._check_available(item.product)
            self._check_stock(item.product, quantity)

            item.quantity = quantity
            self._touch(cart)

        logger.info(f"Pozycja {item_id} w koszyku {cart.id} ma teraz ilosc {quantity}")
        return self.get_cart_view(cart)

    def remove_item(self, item_id: int, session_id: str | None, user_id: int | None = None) -> Dict[str, Any]:
        with transaction(self.db):
            cart, item = self._owned_item(item_id, session_id, user_id)
            self.repo.delete_cart_item(item)
            self._touch(cart)

        logger.info(f"Usunieto pozycje {item_id} z koszyka {cart.id}")
        return self.get_cart_view(cart)

    def clear_cart(self, cart_id: int) -> Dict[str, Any]:
        with transaction(self.db):
            cart = self._get_active_cart(cart_id)
            self.repo.clear_items(cart.id)
            cart.coupon_id = None
            cart.coupon_code = None

        return self.get_cart_view(cart)

    def merge_guest_cart(self, session_id: str, user_id: int) -> Dict[str, Any]:
        """
        Po zalogowaniu: pozycje koszyka goscia trafiaja do koszyka uzytkownika,
        ilosci sumowane (z limitem na pozycje), koszyk goscia znika.
        Ponowne wywolanie, gdy koszyka goscia juz nie ma, niczego nie zmienia.
        """
        with transaction(self.db):
            guest = self.repo.get_active_guest_cart(session_id) if session_id else None
            if guest is not None:
                user_cart = self.repo.get_active_cart_by_user(user_id)
                if user_cart is None:
                    guest.user_id = user_id
                    self._touch(guest)
                    logger.info(f"Koszyk goscia {guest.id} przypisany do uzytkownika {user_id}")
                else:
                    self._fold_items(guest, user_cart)

        cart = self.get_or_create_cart(session_id, user_id)
        return self.get_cart_view(cart)

    def apply_coupon(self, cart_id: int, code: str, user_id: int | None = None) -> Dict[str, Any]:
        with transaction(self.db):
            cart = self._get_active_cart(cart_id)
            subtotal = self._subtotal(cart)

            validation = self.coupons.validate(code, subtotal, user_id if user_id is not None else cart.user_id)
            if not validation.valid:
                raise ValidationError(
                    "Coupon cannot be applied",
                    code="INVALID_COUPON",
                    details={"errors": validation.errors},
                )

            # tylko id i kod, rabat liczony przy kazdym odczycie
            cart.coupon_id = validation.coupon.id
            cart.coupon_code = validation.coupon.code

        logger.info(f"Kupon {cart.coupon_code} zastosowany do koszyka {cart.id}")
        return self.get_cart_view(cart)

    def remove_coupon(self, cart_id: int) -> Dict[str, Any]:
        with transaction(self.db):
            cart = self._get_active_cart(cart_id)
            cart.coupon_id = None
            cart.coupon_code = None

        return self.get_cart_view(cart)

    #helpers
    def _find_active(self, session_id: str | None, user_id: int | None) -> CartModel | None:
        if user_id is not None:
            cart = self.repo.get_active_cart_by_user(user_id)
            if cart:
                return cart
        if session_id:
            return self.repo.get_active_guest_cart(session_id)
        return None

    def _get_active_cart(self, cart_id: int) -> CartModel:
        cart = self.repo.get_cart(cart_id, for_update=True)
        if not cart:
            raise NotFoundError("Cart", details={"cart_id": cart_id})
        if cart.status != "active":
            raise ValidationError("Cart can no longer be modified", details={"status": cart.status})
        return cart

    def _owned_item(self, item_id: int, session_id: str | None, user_id: int | None) -> tuple[CartModel, CartItemModel]:
        cart = self._find_active(session_id, user_id)
        item = self.repo.get_item(item_id)
        # cudze pozycje wygladaja jak nieistniejace
        if not cart or not item or item.cart_id != cart.id:
            raise NotFoundError("Cart item", details={"item_id": item_id})
        return cart, item

    def _fold_items(self, guest: CartModel, user_cart: CartModel) -> None:
        for item in self.repo.get_cart_items(guest.id):
            existing = self.repo.get_cart_item(user_cart.id, item.product_id, item.configuration)
            if existing:
                merged = existing.quantity + item.quantity
                if merged > CART_MAX_ITEM_QUANTITY:
                    logger.info(
                        f"Merged quantity {merged} for product {item.product_id} capped at {CART_MAX_ITEM_QUANTITY}"
                    )
                existing.quantity = min(merged, CART_MAX_ITEM_QUANTITY)
            else:
                self.repo.add_cart_item(
                    CartItemModel(
                        cart_id=user_cart.id,
                        product_id=item.product_id,
                        quantity=item.quantity,
                        configuration=item.configuration,
                        unit_price=item.unit_price,
                    )
                )

        if not user_cart.coupon_code and guest.coupon_code:
            user_cart.coupon_id = guest.coupon_id
            user_cart.coupon_code = guest.coupon_code

        self._touch(user_cart)
        self.repo.delete_cart(guest)
        logger.info(f"Koszyk goscia {guest.id} scalony z koszykiem {user_cart.id}")

    def _subtotal(self, cart: CartModel) -> Decimal:
        items = self.repo.get_cart_items(cart.id)
        return to_money(sum((to_money(i.product.price) * i.quantity for i in items), ZERO))

    def _touch(self, cart: CartModel) -> None:
        # kazda akcja przedluza TTL koszyka
        cart.expires_at = self._new_expiry()
        cart.updated_at = utcnow()

    @staticmethod
    def _new_expiry() -> datetime:
        return utcnow() + timedelta(seconds=CART_TTL_SECONDS)

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", code="INVALID_QUANTITY")
        if quantity > CART_MAX_ITEM_QUANTITY:
            raise ValidationError(
                f"Quantity cannot exceed {CART_MAX_ITEM_QUANTITY}",
                code="INVALID_QUANTITY",
            )

    @staticmethod
    def _check_available(product: ProductModel) -> None:
        if product.status != "active":
            raise ValidationError(
                "Product is not available for purchase",
                code="PRODUCT_NOT_AVAILABLE",
                details={"product_id": product.id},
            )

    @staticmethod
    def _check_stock(product: ProductModel, quantity: int) -> None:
        if product.stock < quantity:
            raise ValidationError(
                f"Insufficient stock. Only {product.stock} available",
                code="INSUFFICIENT_STOCK",
                details={"available": product.stock, "requested": quantity},
            )
