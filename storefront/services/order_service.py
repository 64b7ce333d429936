# storefront/services/order_service.py
import math
import uuid
from typing import Any, Dict

from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.data.models import (
    CartModel,
    CouponUsageModel,
    OrderItemModel,
    OrderModel,
    OrderNoteModel,
)
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.domain.states import (
    CartStatus,
    OrderPaymentStatus,
    OrderStatus,
    ORDER_PAYMENT_TRANSITIONS,
    ORDER_STATUS_EVENTS,
    ORDER_TRANSITIONS,
    ensure_transition,
)
from storefront.repos.cart_repo import CartRepo
from storefront.repos.coupon_repo import CouponRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo
from storefront.services.coupon_service import CouponService
from storefront.services.notification_service import NotificationService, order_event_payload
from storefront.services.stock_ledger import StockLedger
from storefront.utils.clock import utcnow
from storefront.utils.money import ZERO, to_money
from storefront.utils.settings import DEFAULT_CURRENCY, SHIPPING_RATES, TAX_RATE
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def generate_order_number() -> str:
    return f"SF-{utcnow():%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class OrderService:
    """
    Serwis odpowiedzialny za domene zamowien.
    Separacja od CartService - koszyk tylko czyta, zamowienie zamraza stan koszyka.
    """

    def __init__(
        self,
        db: Session,
        notifier: NotificationService | None = None,
        coupon_service: CouponService | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.carts = CartRepo(db)
        self.products = ProductRepo(db)
        self.coupon_repo = CouponRepo(db)
        self.stock = StockLedger(db)
        self.coupons = coupon_service or CouponService(db)
        self.notifier = notifier or NotificationService()

    def create_order(
        self,
        session_id: str | None,
        user_id: int | None,
        billing_address: Dict[str, Any],
        shipping_address: Dict[str, Any],
        shipping_method: str = "standard",
        customer_email: str | None = None,
        notes: str | None = None,
    ) -> OrderModel:
        """
        Use Case: Tworzenie zamowienia z koszyka. Wszystko albo nic:

        1. Blokuje produkty (rosnace id), sprawdza dostepnosc, bierze aktualne ceny
        2. Zdejmuje stan magazynowy (warunkowo, wszystkie braki w jednym bledzie)
        3. Ponownie waliduje kupon wzgledem koncowego subtotalu
        4. Liczy sumy, zapisuje zamowienie i snapshot pozycji
        5. Na koncu zuzycie kuponu (warunkowe) i koszyk -> converted
        6. Po commicie powiadomienie order.created
        """
        if shipping_method not in SHIPPING_RATES:
            raise ValidationError(
                f"Unknown shipping method: {shipping_method}",
                details={"available": sorted(SHIPPING_RATES)},
            )
        if not billing_address or not shipping_address:
            raise ValidationError("Billing and shipping addresses are required")

        with transaction(self.db):
            cart = self._get_checkout_cart(session_id, user_id)
            items = self.carts.get_cart_items(cart.id)
            if not items:
                raise ValidationError("Cart is empty", code="EMPTY_CART")

            products = self.products.get_products_for_update(i.product_id for i in items)

            unavailable = [
                {"product_id": i.product_id}
                for i in items
                if i.product_id not in products or products[i.product_id].status != "active"
            ]
            if unavailable:
                raise ValidationError(
                    "Some products are no longer available",
                    code="PRODUCT_NOT_AVAILABLE",
                    details={"items": unavailable},
                )

            subtotal = to_money(
                sum((to_money(products[i.product_id].price) * i.quantity for i in items), ZERO)
            )

            self.stock.commit_lines(
                (i.product_id, products[i.product_id].name, i.quantity) for i in items
            )

            coupon = None
            discount = ZERO
            if cart.coupon_code:
                validation = self.coupons.validate(cart.coupon_code, subtotal, user_id)
                if not validation.valid:
                    raise ValidationError(
                        "Applied coupon is no longer valid",
                        code="INVALID_COUPON",
                        details={"errors": validation.errors},
                    )
                coupon = validation.coupon
                discount = self.coupons.calculate_discount(coupon, subtotal)

            shipping = ZERO if self.coupons.waives_shipping(coupon) else to_money(SHIPPING_RATES[shipping_method])
            tax = to_money((subtotal - discount) * TAX_RATE)
            total = to_money(subtotal - discount + shipping + tax)

            order = self.repo.create_order(
                OrderModel(
                    order_number=generate_order_number(),
                    cart_id=cart.id,
                    user_id=user_id,
                    session_id=session_id,
                    status=OrderStatus.PENDING.value,
                    payment_status=OrderPaymentStatus.PENDING.value,
                    refund_status="none",
                    subtotal=subtotal,
                    discount_amount=discount,
                    tax_amount=tax,
                    shipping_amount=shipping,
                    total_amount=total,
                    currency=DEFAULT_CURRENCY,
                    coupon_id=coupon.id if coupon else None,
                    shipping_method=shipping_method,
                    billing_address=billing_address,
                    shipping_address=shipping_address,
                    customer_email=customer_email,
                )
            )

            for i in items:
                product = products[i.product_id]
                unit_price = to_money(product.price)
                self.repo.add_order_item(
                    OrderItemModel(
                        order=order,
                        product_id=product.id,
                        product_name=product.name,
                        product_sku=product.sku,
                        unit_price=unit_price,
                        quantity=i.quantity,
                        total_price=to_money(unit_price * i.quantity),
                        configuration=i.configuration,
                    )
                )

            if notes:
                self.repo.add_note(OrderNoteModel(order=order, author="customer", body=notes))

            # zuzycie kuponu jako ostatni krok - wczesniejszy blad nie zjada limitu
            if coupon:
                if not self.coupons.increment_usage_count(coupon.id):
                    raise ValidationError(
                        "Applied coupon is no longer valid",
                        code="INVALID_COUPON",
                        details={"errors": ["Coupon usage limit reached"]},
                    )
                self.coupon_repo.add_usage(
                    CouponUsageModel(
                        coupon_id=coupon.id,
                        order_id=order.id,
                        user_id=user_id,
                        discount_amount=discount,
                    )
                )

            cart.status = CartStatus.CONVERTED.value
            self.db.flush()

            self.notifier.dispatch_after_commit(self.db, "order.created", order_event_payload(order))

        logger.info(f"Order {order.order_number} created from cart {cart.id}, total {order.total_amount}")
        return order

    def update_status(
        self,
        order_id: int,
        new_status: str,
        tracking_number: str | None = None,
        carrier: str | None = None,
        note: str | None = None,
        author: str | None = None,
    ) -> OrderModel:
        with transaction(self.db):
            order = self._get_for_update(order_id)
            previous = order.status
            target = ensure_transition("Order", ORDER_TRANSITIONS, order.status, new_status)

            order.status = target.value
            if tracking_number:
                order.tracking_number = tracking_number
            if carrier:
                order.carrier = carrier

            if target == OrderStatus.CANCELLED:
                self._restore_stock(order)

            if note:
                self.repo.add_note(OrderNoteModel(order=order, author=author, body=note))

            self.db.flush()
            self.notifier.dispatch_after_commit(
                self.db,
                ORDER_STATUS_EVENTS[target],
                order_event_payload(order, previous_status=previous),
            )

        logger.info(f"Order {order.order_number}: {previous} -> {order.status}")
        return order

    def cancel_order(self, order_id: int, reason: str | None = None, author: str | None = None) -> OrderModel:
        return self.update_status(order_id, OrderStatus.CANCELLED.value, note=reason, author=author)

    def add_note(self, order_id: int, body: str, author: str | None = None) -> OrderNoteModel:
        if not body or not body.strip():
            raise ValidationError("Note body is required")

        with transaction(self.db):
            order = self._get_for_update(order_id)
            note = self.repo.add_note(OrderNoteModel(order=order, author=author, body=body.strip()))

        return note

    #query
    def get_order(self, order_id: int, user_id: int | None = None) -> OrderModel:
        order = self.repo.get_order(order_id)
        # cudze zamowienie wyglada jak nieistniejace
        if not order or (user_id is not None and order.user_id != user_id):
            raise NotFoundError("Order", details={"order_id": order_id})
        return order

    def list_orders(self, user_id: int, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        if page < 1 or limit < 1 or limit > 100:
            raise ValidationError("Page must be >= 1 and limit between 1 and 100")

        orders, total = self.repo.list_user_orders(user_id, (page - 1) * limit, limit)
        return {
            "orders": orders,
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if total else 0,
        }

    #platnosci - wolane przez PaymentService wewnatrz jego transakcji
    def mark_paid(self, order: OrderModel) -> None:
        ensure_transition("Order payment", ORDER_PAYMENT_TRANSITIONS, order.payment_status, OrderPaymentStatus.PAID)
        order.payment_status = OrderPaymentStatus.PAID.value

        if order.status == OrderStatus.PENDING.value:
            order.status = OrderStatus.PROCESSING.value
            self.notifier.dispatch_after_commit(
                self.db,
                ORDER_STATUS_EVENTS[OrderStatus.PROCESSING],
                order_event_payload(order, previous_status=OrderStatus.PENDING.value),
            )
        self.db.flush()
        logger.info(f"Order {order.order_number} marked as paid")

    def mark_payment_failed(self, order: OrderModel, cancel: bool = False) -> None:
        """Odrzucona platnosc; przy cancel=True zamowienie jest anulowane i stan wraca do magazynu."""
        ensure_transition(
            "Order payment", ORDER_PAYMENT_TRANSITIONS, order.payment_status, OrderPaymentStatus.FAILED
        )
        order.payment_status = OrderPaymentStatus.FAILED.value

        if cancel and order.status != OrderStatus.CANCELLED.value:
            previous = order.status
            ensure_transition("Order", ORDER_TRANSITIONS, order.status, OrderStatus.CANCELLED)
            order.status = OrderStatus.CANCELLED.value
            self._restore_stock(order)
            self.notifier.dispatch_after_commit(
                self.db,
                ORDER_STATUS_EVENTS[OrderStatus.CANCELLED],
                order_event_payload(order, previous_status=previous),
            )
        self.db.flush()
        logger.warning(f"Payment for order {order.order_number} failed")

    #helpers
    def _get_for_update(self, order_id: int) -> OrderModel:
        order = self.repo.get_order(order_id, for_update=True)
        if not order:
            raise NotFoundError("Order", details={"order_id": order_id})
        return order

    def _get_checkout_cart(self, session_id: str | None, user_id: int | None) -> CartModel:
        cart = None
        if user_id is not None:
            cart = self.carts.get_active_cart_by_user(user_id)
        if cart is None and session_id:
            cart = self.carts.get_active_guest_cart(session_id)
        if cart is None:
            raise NotFoundError("Cart", details={"session_id": session_id, "user_id": user_id})
        return self.carts.get_cart(cart.id, for_update=True)

    def _restore_stock(self, order: OrderModel) -> None:
        if order.stock_released:
            logger.info(f"Stock for order {order.order_number} already returned, skipping")
            return
        self.stock.restore_lines((i.product_id, i.quantity) for i in self.repo.get_order_items(order.id))
        order.stock_released = True
