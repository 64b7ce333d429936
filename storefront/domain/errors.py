# storefront/domain/errors.py
from typing import Any


class AppError(Exception):
    """
    Bazowy blad domenowy: stabilny kod, komunikat dla klienta i status HTTP.
    Wszystko co nie dziedziczy po AppError traktujemy jako blad serwera (5xx).
    """

    status_code = 500
    code = "SERVER_ERROR"

    def __init__(self, message: str, code: str | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, details: Any = None):
        super().__init__(f"{resource} not found", details=details)
        self.resource = resource


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class InsufficientStockError(AppError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, shortages: list[dict]):
        names = ", ".join(f'"{s["product_name"]}"' for s in shortages)
        super().__init__(f"Insufficient stock for {names}", details={"items": shortages})
        self.shortages = shortages


class InvalidTransitionError(AppError):
    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(self, entity: str, current: str, requested: str):
        super().__init__(
            f"{entity} cannot move from '{current}' to '{requested}'",
            details={"current": current, "requested": requested},
        )


class PaymentStateError(AppError):
    status_code = 409
    code = "PAYMENT_STATE_ERROR"


class RefundLimitExceededError(AppError):
    status_code = 409
    code = "REFUND_LIMIT_EXCEEDED"


class PaymentGatewayError(AppError):
    status_code = 502
    code = "PAYMENT_GATEWAY_ERROR"
