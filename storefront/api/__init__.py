# storefront/api/__init__.py
from fastapi import FastAPI

from storefront.api.routers import carts, coupons, health, orders, payments, refunds


def include_routers(app: FastAPI) -> None:
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(coupons.router)
    app.include_router(orders.router)
    app.include_router(payments.router)
    app.include_router(refunds.router)
