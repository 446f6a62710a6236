"""Unit tests for the pure yield calculator."""

import math
from decimal import Decimal

import pytest

from curtailment_mining.core.exceptions import InputValidationError
from curtailment_mining.mining import estimate_yield, hardware_unit_count, quantize_yield
from curtailment_mining.reference import HARDWARE_CATALOGUE, HardwareSpec


def _reference_formula(energy_mwh, hashrate, power_draw, difficulty, interval_s, reward):
    units = math.floor(energy_mwh * 3.6e9 / (power_draw * interval_s))
    return units * hashrate * interval_s / (difficulty * 2**32) * reward


# ---------------------------------------------------------------------------
# hardware_unit_count
# ---------------------------------------------------------------------------
class TestHardwareUnitCount:
    def test_ten_mwh_on_3kw_half_hour(self):
        # 3.6e10 J / (3000 W * 1800 s) = 6666.67 -> 6666
        assert hardware_unit_count(10.0, 3000.0, 1800) == 6666

    def test_too_little_energy_is_zero_units(self):
        assert hardware_unit_count(0.001, 3000.0, 1800) == 0

    def test_zero_energy_is_zero_units(self):
        assert hardware_unit_count(0.0, 3000.0, 1800) == 0

    def test_negative_energy_rejected(self):
        with pytest.raises(InputValidationError):
            hardware_unit_count(-1.0, 3000.0, 1800)

    @pytest.mark.parametrize("power_draw", [0.0, -3000.0, float("nan")])
    def test_non_positive_power_rejected(self, power_draw):
        with pytest.raises(InputValidationError):
            hardware_unit_count(10.0, power_draw, 1800)

    def test_zero_interval_rejected(self):
        with pytest.raises(InputValidationError):
            hardware_unit_count(10.0, 3000.0, 0)


# ---------------------------------------------------------------------------
# estimate_yield
# ---------------------------------------------------------------------------
class TestEstimateYield:
    def test_matches_reference_formula_for_documented_example(self):
        hw = HardwareSpec(model="EXAMPLE", hashrate=100.0, power_draw=3000.0)
        result = estimate_yield(10.0, hw, 1e14, 1800, 3.125)
        expected = _reference_formula(10.0, 100.0, 3000.0, 1e14, 1800, 3.125)
        assert quantize_yield(result) == quantize_yield(expected)
        assert result == pytest.approx(expected, rel=1e-15)

    def test_s19j_pro_realistic_value(self):
        hw = HARDWARE_CATALOGUE["S19J_PRO"]
        result = estimate_yield(10.0, hw, 1e14, 1800, 3.125)
        # 6666 units * 100 TH/s over 30 minutes at difficulty 1e14
        expected = 6666 * 1e14 * 1800 / (1e14 * 2**32) * 3.125
        assert result == pytest.approx(expected)
        assert quantize_yield(result) == Decimal("0.00873028")

    def test_exact_hand_computed_case(self):
        hw = HardwareSpec(model="UNIT", hashrate=float(2**32), power_draw=1000.0)
        # 1 MWh / (1 kW * 1 h) = 1000 units; 1000 * 3600 / 1e6 * 6.25 = 22.5
        assert estimate_yield(1.0, hw, 1e6, 3600, 6.25) == pytest.approx(22.5)

    def test_deterministic(self):
        hw = HARDWARE_CATALOGUE["M20S"]
        values = {estimate_yield(42.5, hw, 8.1e13, 1800, 3.125) for _ in range(5)}
        assert len(values) == 1

    def test_zero_units_yields_zero_not_error(self):
        hw = HARDWARE_CATALOGUE["S19J_PRO"]
        assert estimate_yield(0.001, hw, 1e14, 1800, 3.125) == 0.0

    def test_reward_scales_linearly(self):
        hw = HARDWARE_CATALOGUE["S9"]
        before = estimate_yield(50.0, hw, 5e13, 1800, 6.25)
        after = estimate_yield(50.0, hw, 5e13, 1800, 3.125)
        assert before == pytest.approx(2 * after)

    @pytest.mark.parametrize("difficulty", [0.0, -1.0, float("inf"), float("nan")])
    def test_invalid_difficulty_rejected(self, difficulty):
        with pytest.raises(InputValidationError, match="difficulty"):
            estimate_yield(10.0, HARDWARE_CATALOGUE["S9"], difficulty, 1800, 3.125)

    def test_invalid_block_reward_rejected(self):
        with pytest.raises(InputValidationError, match="block_reward"):
            estimate_yield(10.0, HARDWARE_CATALOGUE["S9"], 1e14, 1800, 0.0)

    def test_negative_power_draw_rejected(self):
        hw = HardwareSpec(model="BROKEN", hashrate=1e14, power_draw=-5.0)
        with pytest.raises(InputValidationError, match="power_draw"):
            estimate_yield(10.0, hw, 1e14, 1800, 3.125)


# ---------------------------------------------------------------------------
# quantize_yield
# ---------------------------------------------------------------------------
class TestQuantizeYield:
    def test_eight_places_half_up(self):
        assert quantize_yield(0.123456785) == Decimal("0.12345679")

    def test_tiny_value_rounds_to_zero(self):
        assert quantize_yield(8.7e-12) == Decimal("0E-8")

    def test_decimal_input(self):
        assert quantize_yield(Decimal("1.000000005")) == Decimal("1.00000001")

    def test_custom_places(self):
        assert quantize_yield(1.23456, places=2) == Decimal("1.23")
