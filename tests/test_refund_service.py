"""Tests for refunds: running-sum limit, status derivation, stock and statistics."""

from decimal import Decimal

import pytest

from storefront.data.models import RefundItemModel
from storefront.domain.errors import InvalidTransitionError, NotFoundError, RefundLimitExceededError, ValidationError
from storefront.services.payment_gateway import GatewayRefund
from storefront.services.refund_service import RefundItemRequest, RefundRequest, RefundService


@pytest.fixture
def refund_service(db, notifier):
    return RefundService(db, notifier=notifier)


@pytest.fixture
def paid(make_product, paid_order):
    product = make_product(name="A", price="60.00", stock=5)
    order, payment = paid_order([(product, 2)])
    return product, order, payment


@pytest.fixture
def two_items(make_product, paid_order):
    order, _ = paid_order(
        [(make_product(name="A", price="50.00", stock=5), 1), (make_product(name="B", price="50.00", stock=5), 1)],
        session_id="sess-items",
    )
    a, b = order.items
    return order, a, b


def _partial(order, amount, **kw):
    return RefundRequest(order_id=order.id, refund_type="partial", reason="Reklamacja", amount=Decimal(amount), **kw)


def _items(order, *lines):
    return RefundRequest(
        order_id=order.id,
        refund_type="item_specific",
        reason="Uszkodzona pozycja",
        items=[RefundItemRequest(order_item_id=item.id, quantity=quantity) for item, quantity in lines],
    )


class TestRunningSum:
    def test_second_refund_over_limit(self, refund_service, paid):
        _, order, payment = paid
        first = refund_service.process_refund(_partial(order, "50.00"))
        assert first.status == "pending"
        assert order.refund_status == "partial"
        assert order.payment_status == "partially_refunded"

        with pytest.raises(RefundLimitExceededError) as exc:
            refund_service.process_refund(_partial(order, "80.00"))
        assert exc.value.details["refundable"] == "70.00"
        assert payment.refunded_amount == Decimal("50.00")

    def test_exact_remaining_makes_full(self, refund_service, paid):
        _, order, payment = paid
        refund_service.process_refund(_partial(order, "50.00"))
        refund_service.process_refund(_partial(order, "70.00"))

        assert order.refund_status == "full"
        assert order.payment_status == "refunded"
        assert payment.refund_status == "full"
        assert payment.refunded_amount == Decimal("120.00")

    def test_full_after_partial_exceeds(self, refund_service, paid):
        _, order, _ = paid
        refund_service.process_refund(_partial(order, "20.00"))
        with pytest.raises(RefundLimitExceededError):
            refund_service.process_refund(RefundRequest(order_id=order.id, refund_type="full", reason="Zwrot"))

    def test_partial_cannot_exceed_payment(self, refund_service, paid):
        _, order, _ = paid
        with pytest.raises(ValidationError):
            refund_service.process_refund(_partial(order, "120.01"))

    def test_partial_must_be_positive(self, refund_service, paid):
        _, order, _ = paid
        with pytest.raises(ValidationError):
            refund_service.process_refund(_partial(order, "0"))


class TestStock:
    def test_full_refund_restores_stock(self, db, refund_service, paid, notifier):
        product, order, _ = paid
        db.refresh(product)
        assert product.stock == 3

        refund = refund_service.process_refund(RefundRequest(order_id=order.id, refund_type="full", reason="Zwrot"))

        db.refresh(product)
        assert refund.amount == Decimal("120.00")
        assert product.stock == 5
        assert notifier.names[-1] == "order.refunded"

    def test_failed_full_refund_takes_stock_back(self, db, refund_service, paid):
        product, order, _ = paid
        refund = refund_service.process_refund(RefundRequest(order_id=order.id, refund_type="full", reason="Zwrot"))
        db.refresh(product)
        assert product.stock == 5

        refund_service.fail_refund(refund.id, "Gateway declined")
        db.refresh(product)
        assert product.stock == 3
        assert order.stock_released is False
        assert order.payment_status == "paid"

    def test_failed_full_refund_after_resale(self, db, refund_service, paid):
        product, order, _ = paid
        refund = refund_service.process_refund(RefundRequest(order_id=order.id, refund_type="full", reason="Zwrot"))
        product.stock = 1
        db.commit()

        refund_service.fail_refund(refund.id, "Gateway declined")
        db.refresh(product)
        assert product.stock == 1
        assert order.stock_released is True

    def test_partial_refund_keeps_stock(self, db, refund_service, paid):
        product, order, _ = paid
        refund_service.process_refund(_partial(order, "10.00"))
        db.refresh(product)
        assert product.stock == 3


class TestItemSpecific:
    def test_amount_from_item_snapshots(self, db, refund_service, paid):
        _, order, _ = paid
        item = order.items[0]
        refund = refund_service.process_refund(
            RefundRequest(
                order_id=order.id,
                refund_type="item_specific",
                reason="Jedna sztuka uszkodzona",
                items=[RefundItemRequest(order_item_id=item.id, quantity=1, reason="rysa")],
            )
        )
        assert refund.amount == Decimal("60.00")
        rows = db.query(RefundItemModel).filter_by(refund_id=refund.id).all()
        assert [(r.order_item_id, r.quantity) for r in rows] == [(item.id, 1)]

    def test_quantity_above_ordered(self, refund_service, paid):
        _, order, _ = paid
        with pytest.raises(ValidationError, match="Invalid refund quantity"):
            refund_service.process_refund(
                RefundRequest(
                    order_id=order.id,
                    refund_type="item_specific",
                    reason="x",
                    items=[RefundItemRequest(order_item_id=order.items[0].id, quantity=3)],
                )
            )

    def test_item_from_other_order(self, refund_service, paid):
        _, order, _ = paid
        with pytest.raises(ValidationError, match="does not belong"):
            refund_service.process_refund(
                RefundRequest(
                    order_id=order.id,
                    refund_type="item_specific",
                    reason="x",
                    items=[RefundItemRequest(order_item_id=9999, quantity=1)],
                )
            )

    def test_items_required(self, refund_service, paid):
        _, order, _ = paid
        with pytest.raises(ValidationError):
            refund_service.process_refund(RefundRequest(order_id=order.id, refund_type="item_specific", reason="x"))

    def test_item_cannot_be_refunded_twice(self, refund_service, two_items):
        order, a, b = two_items
        refund_service.process_refund(_items(order, (a, 1)))

        with pytest.raises(ValidationError) as exc:
            refund_service.process_refund(_items(order, (a, 1)))
        assert exc.value.details == {"requested": 1, "ordered": 1, "already_refunded": 1}

        other = refund_service.process_refund(_items(order, (b, 1)))
        assert other.amount == Decimal("50.00")
        assert order.payment_status == "refunded"

    def test_failed_item_refund_frees_quantity(self, refund_service, two_items):
        order, a, _ = two_items
        first = refund_service.process_refund(_items(order, (a, 1)))
        refund_service.fail_refund(first.id, "declined")

        again = refund_service.process_refund(_items(order, (a, 1)))
        assert again.amount == Decimal("50.00")


class TestEligibility:
    def test_unpaid_order(self, refund_service, make_product, place_order):
        order = place_order([(make_product(), 1)])
        with pytest.raises(ValidationError) as exc:
            refund_service.process_refund(_partial(order, "5.00"))
        assert exc.value.code == "REFUND_NOT_ALLOWED"
        assert "Order has no completed payment" in exc.value.details["errors"]

    def test_unknown_type(self, refund_service, paid):
        _, order, _ = paid
        with pytest.raises(ValidationError):
            refund_service.process_refund(RefundRequest(order_id=order.id, refund_type="store_credit", reason="x"))

    def test_reason_required(self, refund_service, paid):
        _, order, _ = paid
        with pytest.raises(ValidationError):
            refund_service.process_refund(
                RefundRequest(order_id=order.id, refund_type="partial", reason="  ", amount=Decimal("1"))
            )

    def test_missing_order(self, refund_service):
        with pytest.raises(NotFoundError):
            refund_service.process_refund(
                RefundRequest(order_id=4242, refund_type="partial", reason="x", amount=Decimal("1.00"))
            )


class TestLifecycle:
    def test_complete_is_replay_safe(self, refund_service, paid):
        _, order, _ = paid
        refund = refund_service.process_refund(_partial(order, "30.00"))

        refund_service.complete_refund(refund.id, "RF-1")
        again = refund_service.complete_refund(refund.id, "RF-1")
        assert again.status == "completed"
        assert again.completed_at is not None

        with pytest.raises(InvalidTransitionError):
            refund_service.complete_refund(refund.id, "RF-OTHER")

    def test_fail_releases_amount(self, refund_service, paid):
        _, order, payment = paid
        refund = refund_service.process_refund(_partial(order, "50.00"))

        failed = refund_service.fail_refund(refund.id, "Gateway declined")
        assert failed.status == "failed"
        assert failed.failure_reason == "Gateway declined"
        assert order.refund_status == "none"
        assert order.payment_status == "paid"
        assert payment.refunded_amount == Decimal("0.00")

        # pelna kwota znowu dostepna
        refund_service.process_refund(_partial(order, "120.00"))
        assert order.payment_status == "refunded"

    def test_failed_refund_cannot_complete(self, refund_service, paid):
        _, order, _ = paid
        refund = refund_service.process_refund(_partial(order, "10.00"))
        refund_service.fail_refund(refund.id, "declined")
        assert refund_service.fail_refund(refund.id, "again").failure_reason == "declined"
        with pytest.raises(InvalidTransitionError):
            refund_service.complete_refund(refund.id, "RF-1")

    def test_history(self, refund_service, paid):
        _, order, _ = paid
        done = refund_service.process_refund(_partial(order, "30.00"))
        refund_service.complete_refund(done.id, "RF-1")
        refund_service.process_refund(_partial(order, "20.00"))

        history = refund_service.get_refund_history(order.id)
        assert history["total_refunded"] == Decimal("30.00")
        assert history["pending_amount"] == Decimal("20.00")
        assert history["refund_status"] == "partial"
        assert len(history["refunds"]) == 2

    def test_get_missing(self, refund_service):
        with pytest.raises(NotFoundError):
            refund_service.get_refund(555)


class TestGatewaySubmission:
    def test_submitted_after_commit(self, db, gateway, notifier, paid):
        _, order, payment = paid
        service = RefundService(db, gateway=gateway, notifier=notifier)

        refund = service.process_refund(_partial(order, "25.00"))

        gateway.refund_capture.assert_called_once_with(payment.capture_id, refund.amount, "USD", refund.id)
        assert refund.status == "pending"

    def test_completed_by_gateway(self, db, gateway, notifier, paid):
        _, order, _ = paid
        gateway.refund_capture.side_effect = None
        gateway.refund_capture.return_value = GatewayRefund(refund_id="RF-NOW", status="COMPLETED")
        service = RefundService(db, gateway=gateway, notifier=notifier)

        refund = service.process_refund(_partial(order, "25.00"))
        db.refresh(refund)
        assert refund.status == "completed"
        assert refund.refund_transaction_id == "RF-NOW"


class TestStatistics:
    def test_counts_completed_only(self, refund_service, paid):
        _, order, _ = paid
        done = refund_service.process_refund(
            _partial(order, "30.00", reason_code="defective_product")
        )
        refund_service.complete_refund(done.id, "RF-1")
        refund_service.process_refund(_partial(order, "10.00"))

        stats = refund_service.get_refund_statistics("30d")
        assert stats["total_refunds"] == 1
        assert stats["total_refund_amount"] == Decimal("30.00")
        assert stats["average_refund_amount"] == Decimal("30.00")
        assert stats["refund_rate"] == 25.0
        assert stats["refund_reasons"][0]["reason"] == "defective_product"
        assert stats["refund_reasons"][0]["percentage"] == 100.0
        assert len(stats["monthly_trends"]) == 1
        assert set(stats["processing_times"]) == {"full", "partial", "item_specific"}

    def test_empty(self, refund_service):
        stats = refund_service.get_refund_statistics("7d")
        assert stats["total_refunds"] == 0
        assert stats["average_refund_amount"] == Decimal("0.00")
        assert stats["refund_rate"] == 0.0

    def test_bad_timeframe(self, refund_service):
        with pytest.raises(ValidationError):
            refund_service.get_refund_statistics("2w")
