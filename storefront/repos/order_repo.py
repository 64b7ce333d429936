# storefront/repos/order_repo.py
from sqlalchemy import select, func
from sqlalchemy.orm import Session

from storefront.data.models import OrderModel, OrderItemModel, OrderNoteModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int, for_update: bool = False) -> OrderModel | None:
        stmt = select(OrderModel).where(OrderModel.id == order_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def list_user_orders(self, user_id: int, offset: int, limit: int) -> tuple[list[OrderModel], int]:
        orders = self.db.execute(
            select(OrderModel)
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        total = self.db.execute(
            select(func.count(OrderModel.id)).where(OrderModel.user_id == user_id)
        ).scalar_one()
        return list(orders), total

    def add_order_item(self, item: OrderItemModel) -> OrderItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def get_order_items(self, order_id: int) -> list[OrderItemModel]:
        return list(
            self.db.execute(
                select(OrderItemModel).where(OrderItemModel.order_id == order_id).order_by(OrderItemModel.id)
            ).scalars().all()
        )

    def get_order_items_by_ids(self, order_id: int, item_ids: list[int]) -> dict[int, OrderItemModel]:
        rows = self.db.execute(
            select(OrderItemModel).where(
                OrderItemModel.order_id == order_id,
                OrderItemModel.id.in_(item_ids),
            )
        ).scalars().all()
        return {i.id: i for i in rows}

    def add_note(self, note: OrderNoteModel) -> OrderNoteModel:
        self.db.add(note)
        self.db.flush()
        return note
