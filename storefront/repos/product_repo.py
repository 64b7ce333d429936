# storefront/repos/product_repo.py
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models import ProductModel


class ProductRepo:
    """
    Katalog widziany z rdzenia - odczyt ceny i dostepnosci w tej samej sesji/transakcji
    co zamowienie. Zmiany stanu magazynowego tylko przez StockLedger.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_products_for_update(self, product_ids: Iterable[int]) -> dict[int, ProductModel]:
        # blokady zawsze w rosnacej kolejnosci id - brak deadlockow miedzy checkoutami
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        rows = self.db.execute(
            select(ProductModel)
            .where(ProductModel.id.in_(ids))
            .order_by(ProductModel.id)
            .with_for_update()
        ).scalars().all()
        return {p.id: p for p in rows}

    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        # UPDATE ... SET stock = stock - n WHERE stock >= n, 0 rows = brak towaru
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.stock >= quantity)
            .values(stock=ProductModel.stock - quantity)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def increment_stock(self, product_id: int, quantity: int) -> bool:
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(stock=ProductModel.stock + quantity)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1
