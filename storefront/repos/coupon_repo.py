# storefront/repos/coupon_repo.py
from sqlalchemy import select, update, func, or_
from sqlalchemy.orm import Session

from storefront.data.models import CouponModel, CouponUsageModel


class CouponRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> CouponModel | None:
        return self.db.execute(
            select(CouponModel).where(func.upper(CouponModel.code) == code.strip().upper())
        ).scalar_one_or_none()

    def add_coupon(self, coupon: CouponModel) -> CouponModel:
        self.db.add(coupon)
        self.db.flush()
        return coupon

    def increment_usage(self, coupon_id: int) -> bool:
        # warunkowy update - ostatnie uzycie moze zabrac tylko jedna transakcja
        result = self.db.execute(
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                or_(CouponModel.usage_limit.is_(None), CouponModel.usage_count < CouponModel.usage_limit),
            )
            .values(usage_count=CouponModel.usage_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def count_user_usages(self, coupon_id: int, user_id: int) -> int:
        return self.db.execute(
            select(func.count(CouponUsageModel.id)).where(
                CouponUsageModel.coupon_id == coupon_id,
                CouponUsageModel.user_id == user_id,
            )
        ).scalar_one()

    def add_usage(self, usage: CouponUsageModel) -> CouponUsageModel:
        self.db.add(usage)
        self.db.flush()
        return usage
