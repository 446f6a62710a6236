"""Tests for reference data: hardware catalogue, reward schedule, difficulty."""

from datetime import date

import pytest

from curtailment_mining.core.config import settings
from curtailment_mining.core.exceptions import ConfigurationError, ReferenceDataError
from curtailment_mining.core.models import NetworkDifficulty
from curtailment_mining.reference import (
    HARDWARE_CATALOGUE,
    BlockRewardSchedule,
    DatabaseDifficultyResolver,
    HardwareSpec,
    StaticDifficultySchedule,
    active_hardware,
    resolve_active_models,
)


# ---------------------------------------------------------------------------
# Hardware catalogue
# ---------------------------------------------------------------------------
class TestHardwareCatalogue:
    def test_hashrate_stored_in_hashes_per_second(self):
        assert HARDWARE_CATALOGUE["S19J_PRO"].hashrate == pytest.approx(100e12)
        assert HARDWARE_CATALOGUE["S9"].power_draw == 1323.0

    def test_efficiency(self):
        assert HARDWARE_CATALOGUE["S19J_PRO"].efficiency_j_per_th == pytest.approx(30.0)

    def test_resolve_active_models_preserves_order_and_dedupes(self):
        specs = resolve_active_models([" m20s", "S9", "M20S"])
        assert [s.model for s in specs] == ["M20S", "S9"]

    def test_unknown_model_rejected(self):
        with pytest.raises(ConfigurationError, match="ANTMINER_X"):
            resolve_active_models(["S9", "ANTMINER_X"])

    def test_empty_set_rejected(self):
        with pytest.raises(ConfigurationError):
            resolve_active_models(["", "  "])

    def test_custom_catalogue(self):
        custom = {"TEST": HardwareSpec("TEST", 1e12, 100.0)}
        assert resolve_active_models(["test"], custom) == [custom["TEST"]]

    def test_active_hardware_defaults_to_configured_set(self):
        assert active_hardware(None) == resolve_active_models(settings.hardware_model_names)

    def test_active_hardware_keeps_explicit_list(self):
        assert active_hardware([HARDWARE_CATALOGUE["S9"]]) == [HARDWARE_CATALOGUE["S9"]]

    def test_active_hardware_rejects_explicit_empty_list(self):
        with pytest.raises(ConfigurationError):
            active_hardware([])


# ---------------------------------------------------------------------------
# Block reward schedule
# ---------------------------------------------------------------------------
class TestBlockRewardSchedule:
    @pytest.mark.parametrize(
        "day,reward",
        [
            (date(2012, 11, 27), 50.0),
            (date(2012, 11, 28), 25.0),
            (date(2019, 6, 1), 12.5),
            (date(2020, 5, 11), 6.25),
            (date(2024, 4, 19), 6.25),
            (date(2024, 4, 20), 3.125),
            (date(2026, 1, 1), 3.125),
        ],
    )
    def test_reward_by_epoch(self, day, reward):
        assert BlockRewardSchedule()(day) == reward

    def test_before_first_epoch_raises(self):
        with pytest.raises(ReferenceDataError):
            BlockRewardSchedule().resolve(date(2008, 12, 31))

    def test_custom_epochs(self):
        schedule = BlockRewardSchedule({date(2020, 1, 1): 2.0})
        resolved = schedule.resolve(date(2020, 6, 1))
        assert resolved.value == 2.0
        assert resolved.effective_date == date(2020, 1, 1)

    def test_empty_schedule_rejected(self):
        with pytest.raises(ReferenceDataError):
            BlockRewardSchedule({})


# ---------------------------------------------------------------------------
# Difficulty resolvers
# ---------------------------------------------------------------------------
class TestStaticDifficultySchedule:
    def test_exact_date_is_not_fallback(self):
        schedule = StaticDifficultySchedule({date(2024, 3, 1): 8e13})
        resolved = schedule.resolve(date(2024, 3, 1))
        assert resolved.value == 8e13
        assert not resolved.is_fallback

    def test_gap_falls_back_to_nearest_earlier(self):
        schedule = StaticDifficultySchedule({date(2024, 3, 1): 8e13, date(2024, 3, 20): 9e13})
        resolved = schedule.resolve(date(2024, 3, 15))
        assert resolved.value == 8e13
        assert resolved.effective_date == date(2024, 3, 1)
        assert resolved.is_fallback

    def test_nothing_before_date_raises(self):
        schedule = StaticDifficultySchedule({date(2024, 3, 1): 8e13})
        with pytest.raises(ReferenceDataError):
            schedule.resolve(date(2024, 2, 29))


class TestDatabaseDifficultyResolver:
    @pytest.fixture
    def resolver(self, session_factory):
        with session_factory() as session:
            session.add_all([
                NetworkDifficulty(effective_date=date(2024, 1, 1), difficulty=7.0e13, source="test"),
                NetworkDifficulty(effective_date=date(2024, 2, 1), difficulty=7.5e13, source="test"),
            ])
            session.commit()
        return DatabaseDifficultyResolver(session_factory)

    def test_most_recent_at_or_before(self, resolver):
        resolved = resolver.resolve(date(2024, 2, 14))
        assert resolved.value == 7.5e13
        assert resolved.effective_date == date(2024, 2, 1)
        assert resolved.is_fallback

    def test_exact_match(self, resolver):
        assert not resolver.resolve(date(2024, 1, 1)).is_fallback

    def test_empty_history_raises(self, resolver):
        with pytest.raises(ReferenceDataError):
            resolver.resolve(date(2023, 12, 31))
