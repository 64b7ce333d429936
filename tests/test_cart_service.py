"""Tests for the cart store: items, derived totals, merge and coupons."""

from decimal import Decimal

import pytest

from storefront.data.models import CartModel
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.services.cart_service import configuration_signature


class TestGetOrCreate:
    def test_same_session_same_cart(self, cart_service):
        first = cart_service.get_or_create_cart("s1")
        second = cart_service.get_or_create_cart("s1")
        assert first.id == second.id

    def test_requires_identity(self, cart_service):
        with pytest.raises(ValidationError):
            cart_service.get_or_create_cart(None, None)

    def test_user_cart_preferred(self, cart_service, db):
        guest = cart_service.get_or_create_cart("s1")
        user_cart = cart_service.get_or_create_cart("s2", user_id=7)
        assert guest.id != user_cart.id
        assert cart_service.get_or_create_cart("s1", user_id=7).id == user_cart.id


class TestAddItem:
    def test_merges_same_configuration(self, cart_service, make_product):
        product = make_product()
        cart_service.add_item("s1", None, product.id, 1, {"color": "red", "size": "M"})
        view = cart_service.add_item("s1", None, product.id, 2, {"size": "M", "color": "red"})
        assert len(view["items"]) == 1
        assert view["items"][0]["quantity"] == 3
        assert view["subtotal"] == Decimal("150.00")

    def test_different_configuration_is_separate_line(self, cart_service, make_product):
        product = make_product()
        cart_service.add_item("s1", None, product.id, 1, {"color": "red"})
        view = cart_service.add_item("s1", None, product.id, 1, {"color": "blue"})
        assert len(view["items"]) == 2
        assert view["item_count"] == 2

    @pytest.mark.parametrize("quantity", [0, -1, 101])
    def test_quantity_bounds(self, cart_service, make_product, quantity):
        product = make_product(stock=500)
        with pytest.raises(ValidationError):
            cart_service.add_item("s1", None, product.id, quantity)

    def test_merged_quantity_bound(self, cart_service, make_product):
        product = make_product(stock=500)
        cart_service.add_item("s1", None, product.id, 60)
        with pytest.raises(ValidationError):
            cart_service.add_item("s1", None, product.id, 41)

    def test_missing_product(self, cart_service):
        with pytest.raises(NotFoundError):
            cart_service.add_item("s1", None, 999, 1)

    def test_inactive_product(self, cart_service, make_product):
        product = make_product(status="inactive")
        with pytest.raises(ValidationError) as exc:
            cart_service.add_item("s1", None, product.id, 1)
        assert exc.value.code == "PRODUCT_NOT_AVAILABLE"

    def test_more_than_stock(self, cart_service, make_product):
        product = make_product(stock=2)
        with pytest.raises(ValidationError, match="Only 2 available"):
            cart_service.add_item("s1", None, product.id, 3)

    def test_refreshes_expiry(self, cart_service, make_product, db):
        product = make_product()
        cart = cart_service.get_or_create_cart("s1")
        before = cart.expires_at
        cart_service.add_item("s1", None, product.id, 1)
        db.refresh(cart)
        assert cart.expires_at is not None
        assert cart.expires_at.replace(tzinfo=None) >= before.replace(tzinfo=None)


class TestUpdateAndRemove:
    def test_update_quantity(self, cart_service, make_product):
        product = make_product()
        view = cart_service.add_item("s1", None, product.id, 1)
        view = cart_service.update_item_quantity(view["items"][0]["id"], 4, "s1")
        assert view["items"][0]["quantity"] == 4

    def test_update_foreign_item(self, cart_service, make_product):
        product = make_product()
        view = cart_service.add_item("s1", None, product.id, 1)
        cart_service.get_or_create_cart("other")
        with pytest.raises(NotFoundError):
            cart_service.update_item_quantity(view["items"][0]["id"], 2, "other")

    def test_remove(self, cart_service, make_product):
        product = make_product()
        view = cart_service.add_item("s1", None, product.id, 1)
        view = cart_service.remove_item(view["items"][0]["id"], "s1")
        assert view["items"] == []
        assert view["total"] == Decimal("0.00")


class TestCartView:
    def test_uses_live_price(self, cart_service, make_product, db):
        product = make_product(price="50.00")
        cart_service.add_item("s1", None, product.id, 2)

        product.price = Decimal("40.00")
        db.commit()

        view = cart_service.get_cart("s1")
        line = view["items"][0]
        assert line["unit_price"] == Decimal("40.00")
        assert line["price_changed"] is True
        assert view["subtotal"] == Decimal("80.00")

    def test_coupon_recomputed_on_read(self, cart_service, make_product, make_coupon):
        product = make_product(price="30.00", stock=10)
        make_coupon(minimum_order_amount=Decimal("50"))
        view = cart_service.add_item("s1", None, product.id, 2)
        view = cart_service.apply_coupon(view["cart_id"], "SAVE10")
        assert view["discount"] == Decimal("6.00")
        assert view["total"] == Decimal("54.00")

        # spadek ponizej minimum - kupon zostaje, rabat znika
        view = cart_service.update_item_quantity(view["items"][0]["id"], 1, "s1")
        assert view["coupon_code"] == "SAVE10"
        assert view["discount"] == Decimal("0.00")
        assert view["coupon_errors"] == ["Minimum order amount of $50.00 required"]


class TestCoupons:
    def test_apply_invalid(self, cart_service, make_product):
        product = make_product()
        view = cart_service.add_item("s1", None, product.id, 1)
        with pytest.raises(ValidationError) as exc:
            cart_service.apply_coupon(view["cart_id"], "NOPE")
        assert exc.value.code == "INVALID_COUPON"
        assert exc.value.details == {"errors": ["Invalid coupon code"]}

    def test_remove_coupon(self, cart_service, make_product, make_coupon):
        product = make_product()
        make_coupon()
        view = cart_service.add_item("s1", None, product.id, 1)
        cart_service.apply_coupon(view["cart_id"], "SAVE10")
        view = cart_service.remove_coupon(view["cart_id"])
        assert view["coupon_code"] is None
        assert view["discount"] == Decimal("0.00")

    def test_free_shipping_flag(self, cart_service, make_product, make_coupon):
        product = make_product()
        make_coupon(code="SHIPFREE", type="free_shipping", value="0")
        view = cart_service.add_item("s1", None, product.id, 1)
        view = cart_service.apply_coupon(view["cart_id"], "SHIPFREE")
        assert view["free_shipping"] is True
        assert view["discount"] == Decimal("0.00")


class TestMerge:
    def test_sums_quantities_and_drops_guest_cart(self, cart_service, make_product, db):
        a = make_product(stock=50)
        b = make_product(name="Other", price="10.00", stock=50)
        cart_service.add_item(None, 7, a.id, 1)
        cart_service.add_item("guest", None, a.id, 2)
        cart_service.add_item("guest", None, b.id, 1)

        view = cart_service.merge_guest_cart("guest", 7)

        quantities = {line["product_id"]: line["quantity"] for line in view["items"]}
        assert quantities == {a.id: 3, b.id: 1}
        assert view["user_id"] == 7
        assert db.query(CartModel).filter(CartModel.session_id == "guest", CartModel.user_id.is_(None)).count() == 0

    def test_idempotent(self, cart_service, make_product):
        a = make_product(stock=50)
        cart_service.add_item(None, 7, a.id, 1)
        cart_service.add_item("guest", None, a.id, 2)

        first = cart_service.merge_guest_cart("guest", 7)
        second = cart_service.merge_guest_cart("guest", 7)
        assert first["items"][0]["quantity"] == 3
        assert second["items"][0]["quantity"] == 3
        assert first["cart_id"] == second["cart_id"]

    def test_clamps_to_max_quantity(self, cart_service, make_product):
        a = make_product(stock=500)
        cart_service.add_item(None, 7, a.id, 60)
        cart_service.add_item("guest", None, a.id, 50)
        view = cart_service.merge_guest_cart("guest", 7)
        assert view["items"][0]["quantity"] == 100

    def test_guest_cart_adopted_without_user_cart(self, cart_service, make_product):
        a = make_product()
        guest_view = cart_service.add_item("guest", None, a.id, 2)
        view = cart_service.merge_guest_cart("guest", 9)
        assert view["cart_id"] == guest_view["cart_id"]
        assert view["user_id"] == 9

    def test_carries_coupon_over(self, cart_service, make_product, make_coupon):
        a = make_product(stock=50)
        make_coupon()
        cart_service.add_item(None, 7, a.id, 1)
        guest = cart_service.add_item("guest", None, a.id, 1)
        cart_service.apply_coupon(guest["cart_id"], "SAVE10")
        view = cart_service.merge_guest_cart("guest", 7)
        assert view["coupon_code"] == "SAVE10"


def test_configuration_signature_is_order_independent():
    assert configuration_signature({"b": 1, "a": 2}) == configuration_signature({"a": 2, "b": 1})
    assert configuration_signature(None) == "{}"
