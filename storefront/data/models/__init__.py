#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from storefront.data.models.product import ProductModel
from storefront.data.models.coupon import CouponModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.order_note import OrderNoteModel
from storefront.data.models.coupon_usage import CouponUsageModel
from storefront.data.models.payment import PaymentModel
from storefront.data.models.refund import RefundModel
from storefront.data.models.refund_item import RefundItemModel
from storefront.data.models.webhook_event import WebhookEventModel

__all__ = [
    "ProductModel",
    "CouponModel",
    "CartModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "OrderNoteModel",
    "CouponUsageModel",
    "PaymentModel",
    "RefundModel",
    "RefundItemModel",
    "WebhookEventModel",
]
