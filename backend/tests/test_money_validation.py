"""
Unit tests for integer money helpers and payload coercion.
"""

import pytest

from posledger.errors import ValidationError
from posledger.money import (
    apply_bps,
    cents_to_display,
    div_round_half_up,
    pay_for_seconds,
    ratio_bps,
    whole_units,
)
from posledger.validation import coerce_bool, coerce_int, require_month_year, require_positive_int


# =============================================================================
# MONEY
# =============================================================================

class TestMoney:

    @pytest.mark.parametrize("num,den,expected", [
        (10, 4, 3),    # 2.5 rounds up
        (9, 4, 2),     # 2.25 rounds down
        (15000, 3, 5000),
        (0, 7, 0),
    ])
    def test_div_round_half_up(self, num, den, expected):
        assert div_round_half_up(num, den) == expected

    def test_div_rejects_zero_denominator(self):
        with pytest.raises(ValueError):
            div_round_half_up(1, 0)

    def test_apply_bps(self):
        assert apply_bps(1000, 15000) == 1500
        assert apply_bps(999, 825) == 82  # 82.4175

    def test_ratio_bps(self):
        assert ratio_bps(2000, 5000) == 4000
        assert ratio_bps(-500, 1000) == -5000
        assert ratio_bps(10, 0) == 0

    def test_pay_for_seconds(self):
        assert pay_for_seconds(160 * 3600, 1000) == 160000
        assert pay_for_seconds(1800, 1001) == 501  # 500.5 rounds up

    def test_whole_units(self):
        assert whole_units(5099) == 50
        assert whole_units(0) == 0
        assert whole_units(-100) == 0

    def test_cents_to_display(self):
        assert cents_to_display(175000) == "1750.00"
        assert cents_to_display(-5) == "-0.05"
        assert cents_to_display(None) is None


# =============================================================================
# VALIDATION
# =============================================================================

class TestValidation:

    def test_coerce_int_accepts_numeric_strings(self):
        assert coerce_int("qty", "12") == 12

    def test_coerce_int_rejects_bool(self):
        with pytest.raises(ValidationError):
            coerce_int("qty", True)

    @pytest.mark.parametrize("value", [0, -1, None, "abc"])
    def test_require_positive_int_rejects(self, value):
        with pytest.raises(ValidationError):
            require_positive_int("quantity", value)

    def test_coerce_bool_default(self):
        assert coerce_bool("restock", None, default=True) is True
        assert coerce_bool("restock", False, default=True) is False

    def test_month_year_range(self):
        assert require_month_year(3, 2025) == (3, 2025)
        with pytest.raises(ValidationError):
            require_month_year(13, 2025)
