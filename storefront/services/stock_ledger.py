# storefront/services/stock_ledger.py
from collections import defaultdict
from typing import Iterable

from sqlalchemy.orm import Session

from storefront.domain.errors import InsufficientStockError
from storefront.repos.product_repo import ProductRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class StockLedger:
    """
    Jedyne miejsce, ktore zmienia products.stock.
    Zmniejszanie jest warunkowym UPDATE (stock >= n), wiec stan nigdy nie spada ponizej zera,
    nawet przy rownoleglych checkoutach tego samego produktu.
    Musi byc wolany wewnatrz transakcji wlasciciela (zamowienie, zwrot, anulowanie).
    """

    def __init__(self, db: Session):
        self.repo = ProductRepo(db)

    def decrement(self, product_id: int, quantity: int) -> bool:
        ok = self.repo.decrement_stock(product_id, quantity)
        if ok:
            self._warn_if_low(product_id)
        return ok

    def restore(self, product_id: int, quantity: int) -> None:
        if quantity <= 0:
            return
        self.repo.increment_stock(product_id, quantity)
        logger.info(f"Restored {quantity} unit(s) of product {product_id}")

    def commit_lines(self, lines: Iterable[tuple[int, str, int]]) -> None:
        """
        Zdejmuje stan dla (product_id, product_name, quantity). Zbiera wszystkie braki
        i rzuca jeden InsufficientStockError - wlasciciel transakcji robi rollback.
        """
        requested: dict[int, int] = defaultdict(int)
        names: dict[int, str] = {}
        for product_id, product_name, quantity in lines:
            requested[product_id] += quantity
            names[product_id] = product_name

        shortages = []
        for product_id in sorted(requested):
            quantity = requested[product_id]
            if not self.decrement(product_id, quantity):
                product = self.repo.get_product(product_id)
                shortages.append(
                    {
                        "product_id": product_id,
                        "product_name": names[product_id],
                        "requested": quantity,
                        "available": product.stock if product else 0,
                    }
                )

        if shortages:
            logger.warning(f"Stock commitment failed: {shortages}")
            raise InsufficientStockError(shortages)

    def restore_lines(self, lines: Iterable[tuple[int, int]]) -> None:
        for product_id, quantity in lines:
            self.restore(product_id, quantity)

    def reclaim_lines(self, lines: Iterable[tuple[int, int]]) -> bool:
        """Cofa wczesniejszy restore_lines w calosci albo wcale; False gdy towaru juz nie ma."""
        requested: dict[int, int] = defaultdict(int)
        for product_id, quantity in lines:
            requested[product_id] += quantity

        products = self.repo.get_products_for_update(requested)
        short = [pid for pid, qty in requested.items() if pid not in products or products[pid].stock < qty]
        if short:
            logger.warning(f"Cannot take back stock for products {sorted(short)}")
            return False

        for product_id in sorted(requested):
            self.repo.decrement_stock(product_id, requested[product_id])
        return True

    def _warn_if_low(self, product_id: int) -> None:
        product = self.repo.get_product(product_id)
        if product and product.low_stock_threshold is not None and product.stock <= product.low_stock_threshold:
            logger.warning(
                f"Product {product_id} ({product.sku}) is low on stock: {product.stock} left"
            )
