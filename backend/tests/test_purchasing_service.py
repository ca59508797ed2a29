"""
Purchasing tests: suppliers, purchase order lifecycle, and receiving as the
restock path.
"""

from datetime import date

import pytest

from posledger.errors import (
    ConflictError,
    ExceedsRemainingQuantity,
    NotFoundError,
    StateError,
    ValidationError,
)
from posledger.services import inventory_service, purchase_order_service, supplier_service


pytestmark = pytest.mark.purchasing


@pytest.fixture
def supplier(db_session):
    return supplier_service.create_supplier({
        "name": "Acme Wholesale",
        "contact_person": "Grace Hopper",
        "email": "orders@acme.test",
    })


@pytest.fixture
def place_order(supplier, manager):
    def _place(*lines, **extra):
        payload = {
            "supplier_id": supplier.id,
            "items": [
                {"product_id": product.id, "quantity_ordered": qty, "unit_cost_cents": cost}
                for product, qty, cost in lines
            ],
            **extra,
        }
        return purchase_order_service.create_purchase_order(payload, actor_user_id=manager.id)
    return _place


# =============================================================================
# SUPPLIERS
# =============================================================================

class TestSuppliers:

    def test_duplicate_name_conflicts(self, supplier):
        with pytest.raises(ConflictError):
            supplier_service.create_supplier({"name": "Acme Wholesale"})

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            supplier_service.create_supplier({"email": "x@example.com"})

    def test_unknown_field_rejected(self, supplier):
        with pytest.raises(ValidationError):
            supplier_service.update_supplier(supplier.id, {"rating": 5})

    def test_update(self, supplier):
        updated = supplier_service.update_supplier(supplier.id, {"phone": "555-0100"})
        assert updated.phone == "555-0100"

    def test_search_and_inactive_filter(self, supplier):
        other = supplier_service.create_supplier({"name": "Bolt Traders"})
        supplier_service.deactivate_supplier(other.id)

        assert supplier_service.list_suppliers(search="acme")["total"] == 1
        assert [s["id"] for s in supplier_service.list_suppliers()["suppliers"]] == [supplier.id]
        assert supplier_service.list_suppliers(include_inactive=True)["total"] == 2

    def test_cannot_remove_with_open_orders(self, supplier, place_order, make_product):
        place_order((make_product(), 5, 300))
        with pytest.raises(StateError) as exc:
            supplier_service.deactivate_supplier(supplier.id)
        assert exc.value.details["open_orders"] == 1

    def test_inactive_supplier_takes_no_orders(self, supplier, place_order, make_product):
        supplier_service.deactivate_supplier(supplier.id)
        with pytest.raises(StateError):
            place_order((make_product(), 5, 300))


# =============================================================================
# ORDER CREATION
# =============================================================================

class TestCreateOrder:

    def test_lines_snapshot_product_and_total(self, place_order, make_product):
        tea = make_product(name="Green Tea", stock=0)
        cups = make_product(name="Cups", stock=0)

        order = place_order((tea, 10, 250), (cups, 4, 1000))

        assert order.status == "pending"
        assert order.order_number == "PO-000001"
        assert order.total_amount_cents == 6500
        assert [item.product_name for item in order.items] == ["Green Tea", "Cups"]
        assert order.items[0].line_total_cents == 2500

        # Ordering does not touch stock
        assert inventory_service.get_product(tea.id).stock_quantity == 0

    def test_order_numbers_are_independent_of_receipts(self, place_order, make_product, cashier, sell):
        product = make_product()
        sell(product, 1, cashier)
        assert place_order((product, 1, 100)).order_number == "PO-000001"
        assert place_order((product, 1, 100)).order_number == "PO-000002"

    def test_unknown_product(self, supplier, make_product):
        product = make_product()
        with pytest.raises(NotFoundError) as exc:
            purchase_order_service.create_purchase_order({
                "supplier_id": supplier.id,
                "items": [
                    {"product_id": product.id, "quantity_ordered": 1, "unit_cost_cents": 100},
                    {"product_id": 999999, "quantity_ordered": 1, "unit_cost_cents": 100},
                ],
            })
        assert exc.value.details["product_ids"] == [999999]

    def test_unknown_supplier(self, db_session, make_product):
        product = make_product()
        with pytest.raises(NotFoundError):
            purchase_order_service.create_purchase_order({
                "supplier_id": 999999,
                "items": [{"product_id": product.id, "quantity_ordered": 1, "unit_cost_cents": 100}],
            })

    def test_inactive_product(self, place_order, make_product):
        product = make_product()
        inventory_service.deactivate_product(product.id)
        with pytest.raises(StateError):
            place_order((product, 1, 100))

    @pytest.mark.parametrize("line", [
        {"quantity_ordered": 0, "unit_cost_cents": 100},
        {"quantity_ordered": 2, "unit_cost_cents": -1},
        {"quantity_ordered": "two", "unit_cost_cents": 100},
    ])
    def test_invalid_lines(self, supplier, make_product, line):
        product = make_product()
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order({
                "supplier_id": supplier.id,
                "items": [{"product_id": product.id, **line}],
            })

    def test_empty_and_duplicate_lines(self, supplier, place_order, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order({"supplier_id": supplier.id, "items": []})
        with pytest.raises(ValidationError):
            place_order((product, 1, 100), (product, 2, 100))

    def test_expected_date_not_before_order_date(self, place_order, make_product):
        with pytest.raises(ValidationError):
            place_order(
                (make_product(), 1, 100),
                order_date="2026-10-10",
                expected_delivery_date="2026-10-01",
            )


# =============================================================================
# RECEIVING
# =============================================================================

class TestReceiveOrder:

    def test_partial_then_full_receipt_restocks(self, place_order, make_product, manager):
        product = make_product(stock=2, buying=3000)
        order = place_order((product, 10, 2800))
        item = order.items[0]

        order = purchase_order_service.receive_purchase_order(
            order.id, [{"id": item.id, "quantity_received": 4}], actor_user_id=manager.id,
        )
        assert order.status == "partial"
        assert order.items[0].remaining_quantity == 6

        product = inventory_service.get_product(product.id)
        assert product.stock_quantity == 6
        assert product.available_quantity == 6
        assert product.buying_price_cents == 2800

        order = purchase_order_service.receive_purchase_order(
            order.id, [{"id": item.id, "quantity_received": 6}], actor_user_id=manager.id,
            received_on=date(2026, 10, 12),
        )
        assert order.status == "received"
        assert order.actual_delivery_date == date(2026, 10, 12)
        assert inventory_service.get_product(product.id).available_quantity == 12

    def test_receive_everything_outstanding(self, place_order, make_product):
        a = make_product(stock=0)
        b = make_product(stock=0)
        order = place_order((a, 3, 100), (b, 5, 200))

        order = purchase_order_service.receive_purchase_order(order.id)

        assert order.status == "received"
        assert inventory_service.get_product(a.id).available_quantity == 3
        assert inventory_service.get_product(b.id).available_quantity == 5

    def test_over_receipt_rolls_back_all_lines(self, place_order, make_product):
        a = make_product(stock=0)
        b = make_product(stock=0)
        order = place_order((a, 3, 100), (b, 5, 200))
        first, second = order.items

        with pytest.raises(ExceedsRemainingQuantity) as exc:
            purchase_order_service.receive_purchase_order(order.id, [
                {"id": first.id, "quantity_received": 3},
                {"id": second.id, "quantity_received": 6},
            ])
        assert exc.value.details["remaining_quantity"] == 5

        order = purchase_order_service.get_purchase_order(order.id)
        assert order.status == "pending"
        assert [item.quantity_received for item in order.items] == [0, 0]
        assert inventory_service.get_product(a.id).available_quantity == 0

    def test_item_from_another_order(self, place_order, make_product):
        product = make_product()
        first = place_order((product, 1, 100))
        second = place_order((product, 1, 100))
        with pytest.raises(NotFoundError):
            purchase_order_service.receive_purchase_order(
                first.id, [{"id": second.items[0].id, "quantity_received": 1}],
            )

    def test_received_order_is_closed(self, place_order, make_product):
        order = place_order((make_product(), 1, 100))
        purchase_order_service.receive_purchase_order(order.id)
        with pytest.raises(StateError):
            purchase_order_service.receive_purchase_order(order.id)
        with pytest.raises(StateError):
            purchase_order_service.update_purchase_order(order.id, {"notes": "late"})

    def test_non_positive_quantity(self, place_order, make_product):
        order = place_order((make_product(), 2, 100))
        with pytest.raises(ValidationError):
            purchase_order_service.receive_purchase_order(
                order.id, [{"id": order.items[0].id, "quantity_received": 0}],
            )


# =============================================================================
# CANCEL / EDIT / QUERIES
# =============================================================================

class TestCancelAndQueries:

    def test_cancel_pending(self, supplier, place_order, make_product):
        order = place_order((make_product(), 2, 100))
        order = purchase_order_service.cancel_purchase_order(order.id)
        assert order.status == "cancelled"

        with pytest.raises(StateError):
            purchase_order_service.receive_purchase_order(order.id)

        # No open orders remain, so the supplier can be removed
        assert supplier_service.deactivate_supplier(supplier.id).is_active is False

    @pytest.mark.parametrize("receive_qty", [1, 2])
    def test_cannot_cancel_after_receiving(self, place_order, make_product, receive_qty):
        order = place_order((make_product(), 2, 100))
        purchase_order_service.receive_purchase_order(
            order.id, [{"id": order.items[0].id, "quantity_received": receive_qty}],
        )
        with pytest.raises(StateError):
            purchase_order_service.cancel_purchase_order(order.id)

    def test_edit_header(self, place_order, make_product):
        order = place_order((make_product(), 2, 100), order_date="2026-10-01")
        order = purchase_order_service.update_purchase_order(order.id, {
            "expected_delivery_date": "2026-10-20", "notes": "Dock B",
        })
        assert order.expected_delivery_date == date(2026, 10, 20)
        assert order.notes == "Dock B"

        with pytest.raises(ValidationError):
            purchase_order_service.update_purchase_order(order.id, {"total_amount_cents": 1})

    def test_list_filters(self, place_order, make_product):
        product = make_product()
        open_order = place_order((product, 1, 100))
        done = place_order((product, 1, 100))
        purchase_order_service.receive_purchase_order(done.id)

        pending = purchase_order_service.list_purchase_orders(status="pending")
        assert [o["id"] for o in pending["purchase_orders"]] == [open_order.id]
        assert purchase_order_service.list_purchase_orders(search="acme")["total"] == 2
        assert purchase_order_service.list_purchase_orders(search=done.order_number)["total"] == 1

        with pytest.raises(ValidationError):
            purchase_order_service.list_purchase_orders(status="shipped")

    def test_supplier_stats(self, supplier, place_order, make_product):
        product = make_product()
        received = place_order((product, 4, 250))
        partial = place_order((product, 4, 250))
        cancelled = place_order((product, 1, 999))
        place_order((product, 2, 100))

        purchase_order_service.receive_purchase_order(received.id, received_on=date(2026, 10, 5))
        purchase_order_service.receive_purchase_order(
            partial.id, [{"id": partial.items[0].id, "quantity_received": 1}], received_on=date(2026, 10, 9),
        )
        purchase_order_service.cancel_purchase_order(cancelled.id)

        stats = supplier_service.supplier_stats(supplier.id)
        assert stats["total_orders"] == 4
        assert stats["pending_orders"] == 1
        assert stats["partial_orders"] == 1
        assert stats["received_orders"] == 1
        assert stats["total_ordered_cents"] == 1000 + 1000 + 200
        assert stats["total_received_cents"] == 1000 + 250
        assert stats["last_delivery_date"] == "2026-10-09"
