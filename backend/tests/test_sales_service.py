"""
Sale processor tests.

Covers stock decrement, profit snapshot, all-or-nothing batches, receipt
numbering, payment settlement and loyalty earn/redeem inside checkout.
"""

import pytest

from posledger.errors import InsufficientPoints, InsufficientStock, NotFoundError, StateError, ValidationError
from posledger.extensions import db
from posledger.models import LoyaltyTransaction, Sale
from posledger.services import customer_service, inventory_service, loyalty_service, sales_service
from posledger.services.sales_service import CheckoutInput, SaleLineInput, process_sale


pytestmark = pytest.mark.sales


# =============================================================================
# BASIC POSTING
# =============================================================================

class TestProcessSale:

    def test_sale_decrements_stock_and_records_profit(self, make_product, cashier, sell):
        product = make_product(stock=10, buying=3000, selling=5000)

        result = sell(product, 3, cashier)

        assert len(result.sales) == 1
        sale = result.sales[0]
        assert sale.total_amount_cents == 15000
        assert sale.buying_price_at_sale_cents == 3000
        assert sale.profit_per_unit_cents == 2000
        assert sale.total_profit_cents == 6000
        assert sale.profit_margin_bps == 4000
        assert sale.return_status == "none"
        assert sale.created_by == cashier.id

        product = inventory_service.get_product(product.id)
        assert product.available_quantity == 7
        assert product.sold_quantity == 3
        assert product.stock_quantity == 10

    def test_summary(self, make_product, cashier, sell):
        product = make_product(stock=10)
        result = sell(product, 2, cashier, amount_paid_cents=12000)

        summary = result.summary
        assert summary["subtotal_cents"] == 10000
        assert summary["total_cents"] == 10000
        assert summary["change_given_cents"] == 2000
        assert summary["items_count"] == 1
        assert summary["total_quantity"] == 2
        assert summary["total_profit_cents"] == 4000

    def test_discount_defaults_from_original_price(self, make_product, cashier):
        product = make_product(stock=10, selling=5000)
        checkout = CheckoutInput(
            items=[SaleLineInput(product_id=product.id, quantity=2, unit_price_cents=4500, original_price_cents=5000)],
            payment_method="card",
            amount_paid_cents=9000,
        )
        result = process_sale(checkout, actor_user_id=cashier.id)
        assert result.sales[0].discount_amount_cents == 1000
        assert result.summary["discount_cents"] == 1000
        assert result.summary["change_given_cents"] == 0

    def test_profit_snapshot_survives_price_change(self, make_product, cashier, sell):
        product = make_product(stock=10, buying=3000)
        sale = sell(product, 1, cashier).sales[0]

        inventory_service.update_product(product.id, {"buying_price_cents": 4500})

        sale = db.session.get(Sale, sale.id)
        assert sale.buying_price_at_sale_cents == 3000
        assert sale.total_profit_cents == 2000

    def test_multi_line_shares_receipt(self, make_product, cashier):
        a = make_product(stock=5, selling=1000)
        b = make_product(stock=5, selling=2000)
        checkout = CheckoutInput(
            items=[
                SaleLineInput(product_id=a.id, quantity=1, unit_price_cents=1000),
                SaleLineInput(product_id=b.id, quantity=2, unit_price_cents=2000),
            ],
            payment_method="cash",
            amount_paid_cents=5000,
        )
        result = process_sale(checkout, actor_user_id=cashier.id)

        assert len(result.sales) == 2
        assert {s.receipt_number for s in result.sales} == {result.summary["receipt_number"]}
        assert result.summary["total_cents"] == 5000


# =============================================================================
# ALL-OR-NOTHING
# =============================================================================

class TestStockRules:

    def test_insufficient_stock_rolls_back_whole_batch(self, make_product, cashier):
        plenty = make_product(stock=10)
        scarce = make_product(stock=1)
        checkout = CheckoutInput(
            items=[
                SaleLineInput(product_id=plenty.id, quantity=2, unit_price_cents=5000),
                SaleLineInput(product_id=scarce.id, quantity=2, unit_price_cents=5000),
            ],
            payment_method="cash",
            amount_paid_cents=20000,
        )

        with pytest.raises(InsufficientStock) as exc:
            process_sale(checkout, actor_user_id=cashier.id)

        short = exc.value.details["items"]
        assert [item["product_id"] for item in short] == [scarce.id]
        assert inventory_service.get_product(plenty.id).available_quantity == 10
        assert inventory_service.get_product(scarce.id).available_quantity == 1
        assert db.session.query(Sale).count() == 0

    def test_duplicate_lines_are_aggregated(self, make_product, cashier):
        product = make_product(stock=5)
        checkout = CheckoutInput(
            items=[
                SaleLineInput(product_id=product.id, quantity=3, unit_price_cents=5000),
                SaleLineInput(product_id=product.id, quantity=3, unit_price_cents=5000),
            ],
            payment_method="card",
            amount_paid_cents=30000,
        )
        with pytest.raises(InsufficientStock):
            process_sale(checkout, actor_user_id=cashier.id)
        assert inventory_service.get_product(product.id).available_quantity == 5

    def test_selling_exact_stock_leaves_zero(self, make_product, cashier, sell):
        product = make_product(stock=4)
        sell(product, 4, cashier)
        assert inventory_service.get_product(product.id).available_quantity == 0

        with pytest.raises(InsufficientStock):
            sell(inventory_service.get_product(product.id), 1, cashier)

    def test_inactive_product_rejected(self, make_product, cashier, sell):
        product = make_product(stock=4)
        inventory_service.deactivate_product(product.id)
        with pytest.raises(StateError):
            sell(product, 1, cashier)

    def test_unknown_product(self, db_session, cashier):
        checkout = CheckoutInput(
            items=[SaleLineInput(product_id=999999, quantity=1, unit_price_cents=100)],
            payment_method="cash",
            amount_paid_cents=100,
        )
        with pytest.raises(NotFoundError):
            process_sale(checkout, actor_user_id=cashier.id)


# =============================================================================
# INPUT VALIDATION
# =============================================================================

class TestCheckoutValidation:

    def test_empty_items(self, db_session, cashier):
        with pytest.raises(ValidationError):
            process_sale(CheckoutInput(items=[], payment_method="cash", amount_paid_cents=0), cashier.id)

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_non_positive_quantity(self, make_product, cashier, quantity):
        product = make_product()
        checkout = CheckoutInput(
            items=[SaleLineInput(product_id=product.id, quantity=quantity, unit_price_cents=5000)],
            payment_method="cash",
            amount_paid_cents=5000,
        )
        with pytest.raises(ValidationError):
            process_sale(checkout, cashier.id)

    def test_total_mismatch(self, make_product, cashier):
        product = make_product()
        checkout = CheckoutInput.from_dict({
            "items": [{"product_id": product.id, "quantity": 2, "unit_price_cents": 5000, "total_amount_cents": 9999}],
            "payment_method": "cash",
            "amount_paid_cents": 10000,
        })
        with pytest.raises(ValidationError):
            process_sale(checkout, cashier.id)

    def test_unknown_payment_method(self, make_product, cashier, sell):
        product = make_product()
        with pytest.raises(ValidationError):
            sell(product, 1, cashier, payment_method="barter")

    def test_cash_underpayment(self, make_product, cashier, sell):
        product = make_product()
        with pytest.raises(ValidationError):
            sell(product, 2, cashier, amount_paid_cents=9999)
        assert inventory_service.get_product(product.id).available_quantity == 10

    @pytest.mark.parametrize("method", ["card", "mobile"])
    def test_non_cash_requires_amount_paid(self, make_product, cashier, sell, method):
        product = make_product()
        with pytest.raises(ValidationError):
            sell(product, 1, cashier, payment_method=method, amount_paid_cents=None)
        assert inventory_service.get_product(product.id).available_quantity == 10
        assert db.session.query(Sale).count() == 0


# =============================================================================
# RECEIPTS
# =============================================================================

class TestReceipts:

    def test_receipt_numbers_are_sequential(self, make_product, cashier, sell):
        product = make_product(stock=10)
        first = sell(product, 1, cashier).summary["receipt_number"]
        second = sell(product, 1, cashier).summary["receipt_number"]
        assert first == "RCP-000001"
        assert second == "RCP-000002"

    def test_failed_sale_does_not_consume_number(self, make_product, cashier, sell):
        product = make_product(stock=1)
        with pytest.raises(InsufficientStock):
            sell(product, 2, cashier)
        assert sell(product, 1, cashier).summary["receipt_number"] == "RCP-000001"

    def test_get_receipt(self, make_product, cashier, sell):
        product = make_product(stock=10)
        number = sell(product, 2, cashier).summary["receipt_number"]

        receipt = sales_service.get_receipt(number)
        assert receipt["receipt_number"] == number
        assert len(receipt["lines"]) == 1

    def test_list_sales_filters(self, make_product, cashier, sell):
        a = make_product(stock=10)
        b = make_product(stock=10)
        sell(a, 1, cashier)
        sell(b, 1, cashier)

        result = sales_service.list_sales(product_id=a.id)
        assert result["total"] == 1
        assert result["sales"][0]["product_id"] == a.id


# =============================================================================
# LOYALTY DURING CHECKOUT
# =============================================================================

class TestCheckoutLoyalty:

    def test_points_awarded_on_net_amount(self, make_product, cashier, customer, sell):
        product = make_product(stock=10)
        result = sell(product, 3, cashier, customer=customer)

        assert result.summary["loyalty_points_awarded"] == 150
        assert customer_service.get_customer(customer.id).points_balance == 150

        txn = db.session.query(LoyaltyTransaction).filter_by(customer_id=customer.id).one()
        assert txn.type == "earn"
        assert txn.sale_id == result.sales[0].id

    def test_redeem_and_earn_in_one_checkout(self, make_product, cashier, customer, sell):
        loyalty_service.add_points(customer.id, 200, "Opening balance")
        product = make_product(stock=10)

        result = sell(
            product, 3, cashier,
            customer=customer,
            points_to_redeem=100,
            reward_discount_cents=1000,
        )

        assert result.summary["total_cents"] == 14000
        assert result.summary["change_given_cents"] == 1000
        assert result.summary["loyalty_points_redeemed"] == 100
        assert result.summary["loyalty_points_awarded"] == 140
        assert customer_service.get_customer(customer.id).points_balance == 240

    def test_insufficient_points_rolls_back_sale(self, make_product, cashier, customer, sell):
        loyalty_service.add_points(customer.id, 150, "Opening balance")
        product = make_product(stock=10)

        with pytest.raises(InsufficientPoints):
            sell(product, 1, cashier, customer=customer, points_to_redeem=500)

        assert db.session.query(Sale).count() == 0
        assert inventory_service.get_product(product.id).available_quantity == 10
        assert customer_service.get_customer(customer.id).points_balance == 150

    def test_redemption_below_threshold(self, make_product, cashier, customer, sell):
        loyalty_service.add_points(customer.id, 500, "Opening balance")
        product = make_product(stock=10)
        with pytest.raises(ValidationError):
            sell(product, 1, cashier, customer=customer, points_to_redeem=50)
        assert customer_service.get_customer(customer.id).points_balance == 500

    def test_redeem_requires_customer(self, make_product, cashier, sell):
        product = make_product()
        with pytest.raises(ValidationError):
            sell(product, 1, cashier, points_to_redeem=100)
