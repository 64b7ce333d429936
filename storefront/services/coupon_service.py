# storefront/services/coupon_service.py
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.data.models import CouponModel
from storefront.domain.errors import ConflictError, NotFoundError, ValidationError
from storefront.domain.states import CouponType
from storefront.repos.coupon_repo import CouponRepo
from storefront.utils.clock import as_utc, utcnow
from storefront.utils.money import ZERO, to_money
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# pola API -> kolumny tabeli coupons, jedyne miejsce mapowania
COUPON_FIELD_MAP = {
    "type": "discount_type",
}

COUPON_EDITABLE_FIELDS = (
    "type",
    "value",
    "description",
    "minimum_order_amount",
    "maximum_discount_amount",
    "usage_limit",
    "per_user_limit",
    "start_date",
    "end_date",
    "is_active",
)


@dataclass
class CouponValidation:
    valid: bool
    coupon: CouponModel | None = None
    errors: list[str] = field(default_factory=list)


class CouponService:
    """
    Walidacja i liczenie rabatu. Bezstanowy poza licznikiem uzyc,
    ktory rosnie tylko przy tworzeniu zamowienia (OrderService).
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = CouponRepo(db)

    #query
    def get_coupon_by_code(self, code: str) -> CouponModel:
        coupon = self.repo.get_by_code(code)
        if not coupon:
            raise NotFoundError("Coupon", details={"code": code})
        return coupon

    def validate(self, code: str, subtotal: Decimal, user_id: int | None = None) -> CouponValidation:
        errors: list[str] = []

        coupon = self.repo.get_by_code(code) if code else None
        if not coupon or not coupon.is_active:
            # bez kuponu nie ma czego dalej sprawdzac
            return CouponValidation(valid=False, errors=["Invalid coupon code"])

        now = utcnow()
        if coupon.start_date and as_utc(coupon.start_date) > now:
            errors.append("Coupon is not yet valid")

        if coupon.end_date and as_utc(coupon.end_date) < now:
            errors.append("Coupon has expired")

        subtotal = to_money(subtotal)
        if coupon.minimum_order_amount is not None and subtotal < to_money(coupon.minimum_order_amount):
            errors.append(f"Minimum order amount of ${to_money(coupon.minimum_order_amount)} required")

        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            errors.append("Coupon usage limit reached")

        if user_id is not None and coupon.per_user_limit is not None:
            used = self.repo.count_user_usages(coupon.id, user_id)
            if used >= coupon.per_user_limit:
                errors.append("You have already used this coupon the maximum number of times")

        if errors:
            logger.info(f"Coupon {coupon.code} rejected for subtotal {subtotal}: {errors}")

        return CouponValidation(valid=not errors, coupon=coupon if not errors else None, errors=errors)

    @staticmethod
    def calculate_discount(coupon: CouponModel, subtotal: Decimal) -> Decimal:
        """Rabat zawsze w przedziale [0, subtotal], zaokraglony half-up do groszy."""
        subtotal = to_money(subtotal)
        if subtotal <= ZERO:
            return ZERO

        value = Decimal(str(coupon.value or 0))
        discount = ZERO

        if coupon.discount_type == CouponType.PERCENTAGE.value:
            discount = subtotal * value / Decimal(100)
        elif coupon.discount_type == CouponType.FIXED.value:
            discount = value
        # free_shipping nie obniza subtotalu, zeruje koszt wysylki

        if coupon.maximum_discount_amount is not None:
            cap = Decimal(str(coupon.maximum_discount_amount))
            if discount > cap:
                discount = cap

        if discount > subtotal:
            discount = subtotal

        if discount < ZERO:
            discount = ZERO

        return to_money(discount)

    @staticmethod
    def waives_shipping(coupon: CouponModel | None) -> bool:
        return bool(coupon) and coupon.discount_type == CouponType.FREE_SHIPPING.value

    def increment_usage_count(self, coupon_id: int) -> bool:
        """Tylko wewnatrz transakcji tworzenia zamowienia, po wszystkich innych krokach."""
        applied = self.repo.increment_usage(coupon_id)
        if not applied:
            logger.warning(f"Coupon {coupon_id} usage limit reached during checkout")
        return applied

    #commands - admin
    def create_coupon(self, data: dict[str, Any]) -> CouponModel:
        code = (data.get("code") or "").strip().upper()
        if not code:
            raise ValidationError("Coupon code is required")

        fields = self._to_columns(data)
        self._check_values(fields)

        with transaction(self.db):
            if self.repo.get_by_code(code):
                raise ConflictError(f"Coupon {code} already exists", code="DUPLICATE_ENTRY")
            coupon = self.repo.add_coupon(CouponModel(code=code, usage_count=0, **fields))

        logger.info(f"Created coupon {coupon.code} ({coupon.discount_type} {coupon.value})")
        return coupon

    def update_coupon(self, code: str, data: dict[str, Any]) -> CouponModel:
        fields = self._to_columns(data)

        with transaction(self.db):
            coupon = self.get_coupon_by_code(code)
            merged = {
                column: getattr(coupon, column)
                for column in (COUPON_FIELD_MAP.get(f, f) for f in COUPON_EDITABLE_FIELDS)
            }
            merged.update(fields)
            self._check_values(merged)

            if merged.get("usage_limit") is not None and merged["usage_limit"] < coupon.usage_count:
                raise ValidationError("Usage limit cannot be lower than the current usage count")

            for column, value in fields.items():
                setattr(coupon, column, value)
            self.db.flush()

        logger.info(f"Updated coupon {coupon.code}: {sorted(fields)}")
        return coupon

    def deactivate_coupon(self, code: str) -> CouponModel:
        return self.update_coupon(code, {"is_active": False})

    @staticmethod
    def _to_columns(data: dict[str, Any]) -> dict[str, Any]:
        fields = {}
        for name in COUPON_EDITABLE_FIELDS:
            if name in data:
                value = data[name]
                if isinstance(value, CouponType):
                    value = value.value
                fields[COUPON_FIELD_MAP.get(name, name)] = value
        return fields

    @staticmethod
    def _check_values(fields: dict[str, Any]) -> None:
        discount_type = fields.get("discount_type")
        if discount_type not in {t.value for t in CouponType}:
            raise ValidationError(f"Invalid coupon type: {discount_type}")

        value = Decimal(str(fields.get("value") or 0))
        if value < ZERO:
            raise ValidationError("Coupon value cannot be negative")
        if discount_type == CouponType.PERCENTAGE.value and value > Decimal(100):
            raise ValidationError("Percentage coupon value cannot exceed 100")

        start, end = fields.get("start_date"), fields.get("end_date")
        if start and end and as_utc(start) > as_utc(end):
            raise ValidationError("Coupon start date must be before its end date")
