# storefront/api/deps.py
from storefront.services.notification_service import NotificationService
from storefront.services.payment_gateway import PaymentGatewayClient


def get_gateway() -> PaymentGatewayClient:
    return PaymentGatewayClient()


def get_notifier() -> NotificationService:
    return NotificationService()
