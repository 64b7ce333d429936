from sqlalchemy import Column, Integer, String, Numeric, CheckConstraint

from storefront.data.database import Base


class ProductModel(Base):
    """Wycinek katalogu potrzebny rdzeniowi: cena, dostepnosc i stan magazynowy."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=False, unique=True)

    price = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="active")  # active, inactive

    stock = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=True)

    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),)
