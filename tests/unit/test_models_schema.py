"""Unit tests for carrier rule schema models."""

from datetime import date, datetime

import pytest
from pydantic import ValidationError

from carrier_rules.models.schema import (
    AcceptanceRule,
    AccessoryPolicy,
    ArticleMap,
    CalcMode,
    CategoriesTarget,
    CategoryGroup,
    ClassificationBand,
    GroupTarget,
    PerTonAboveParams,
    SurchargeRule,
    TransformRule,
    WeightTierParams,
    WidthStepBlocksParams,
    normalize_codes,
)
from carrier_rules.models.utils import applicable_rules
from tests.test_fixtures import make_context


class TestNormalization:
    """Test code normalization."""

    def test_codes_are_upper_cased_and_stripped(self):
        """Test that codes become stripped upper-case strings."""
        assert normalize_codes([" car ", "Small_Van"]) == frozenset({"CAR", "SMALL_VAN"})

    def test_empty_values(self):
        """Test that None and empty strings become empty sets."""
        assert normalize_codes(None) == frozenset()
        assert normalize_codes("") == frozenset()
        assert normalize_codes(["", None]) == frozenset()

    def test_single_value(self):
        """Test that a scalar becomes a one-element set."""
        assert normalize_codes("dkr") == frozenset({"DKR"})

    def test_category_group_normalizes_members(self):
        """Test category group member and alias normalization."""
        group = CategoryGroup(id=1, code="lm_cargo", aliases=["lm"], member_categories=["truck", "trailer"])
        assert group.code == "LM_CARGO"
        assert group.contains("Truck")
        assert group.contains("lm")
        assert group.contains("lm_cargo")
        assert not group.contains("car")


class TestCategoryTarget:
    """Test category target normalization."""

    def test_group_wins_over_categories(self):
        """Test that a record with both targets keeps only the group."""
        rule = AcceptanceRule(id=1, category_group_id=3, vehicle_categories=["car", "suv"])
        assert isinstance(rule.target, GroupTarget)
        assert rule.category_group_id == 3
        assert rule.vehicle_categories == frozenset()

    def test_categories_target(self):
        """Test that categories alone produce a categories target."""
        rule = AcceptanceRule(id=1, vehicle_categories=["car", "suv"])
        assert isinstance(rule.target, CategoriesTarget)
        assert rule.vehicle_categories == frozenset({"CAR", "SUV"})
        assert rule.category_group_id is None

    def test_no_target(self):
        """Test that a record without target applies globally."""
        rule = AcceptanceRule(id=1)
        assert rule.target is None

    def test_legacy_single_category(self):
        """Test that the legacy single category column is folded in."""
        rule = AcceptanceRule(id=1, vehicle_category="car")
        assert rule.vehicle_categories == frozenset({"CAR"})

    def test_string_categories_kept_whole(self):
        """Test that a single category given as a string is not split into letters."""
        rule = AcceptanceRule(id=1, vehicle_categories="car")
        assert rule.target == CategoriesTarget(categories=frozenset({"CAR"}))
        assert applicable_rules([rule], make_context(vehicle_category="car")) == [rule]

    def test_legacy_category_joins_string_categories(self):
        """Test folding the legacy column into a string categories value."""
        rule = AcceptanceRule(id=1, vehicle_categories="suv", vehicle_category="car")
        assert rule.vehicle_categories == frozenset({"CAR", "SUV"})


class TestScope:
    """Test scope normalization."""

    def test_legacy_scope_columns_are_folded(self):
        """Test that port_id, vessel_name and vessel_class join their sets."""
        rule = AcceptanceRule(id=1, port_id="dkr", port_ids=["abj"], vessel_name="Grande Lagos", vessel_class="gcc")
        assert rule.port_ids == frozenset({"DKR", "ABJ"})
        assert rule.vessel_names == frozenset({"GRANDE LAGOS"})
        assert rule.vessel_classes == frozenset({"GCC"})

    def test_legacy_column_joins_string_set(self):
        """Test that a plural scope column given as a string is kept whole when folding."""
        rule = AcceptanceRule(id=1, port_id="abj", port_ids="dkr", vessel_names="Grande Lagos")
        assert rule.port_ids == frozenset({"ABJ", "DKR"})
        assert rule.vessel_names == frozenset({"GRANDE LAGOS"})

    def test_null_scope_is_wildcard(self):
        """Test that null scope columns become empty sets."""
        rule = AcceptanceRule(id=1, port_id=None, port_ids=None, port_group_ids=None)
        assert rule.port_ids == frozenset()
        assert rule.port_group_ids == frozenset()


class TestVersioning:
    """Test validity windows and ordering."""

    def test_is_effective_window(self):
        """Test inclusive validity window checks."""
        rule = AcceptanceRule(id=1, effective_from=date(2025, 1, 1), effective_to=date(2025, 12, 31))
        assert rule.is_effective(date(2025, 1, 1))
        assert rule.is_effective(date(2025, 12, 31))
        assert not rule.is_effective(date(2024, 12, 31))
        assert not rule.is_effective(date(2026, 1, 1))

    def test_inactive_is_never_effective(self):
        """Test that inactive rules are never effective."""
        assert not AcceptanceRule(id=1, is_active=False).is_effective(date(2025, 6, 1))

    def test_inverted_window_rejected(self):
        """Test that effective_from after effective_to is invalid."""
        with pytest.raises(ValidationError):
            AcceptanceRule(id=1, effective_from=date(2025, 2, 1), effective_to=date(2025, 1, 1))

    def test_sort_key_order(self):
        """Test priority desc, then missing created_at first, then created_at asc, then id."""
        low = AcceptanceRule(id=1, priority=1)
        late = AcceptanceRule(id=2, priority=5, created_at=datetime(2025, 2, 1))
        early = AcceptanceRule(id=3, priority=5, created_at=datetime(2025, 1, 1))
        undated = AcceptanceRule(id=4, priority=5)
        ordered = sorted([low, late, early, undated], key=lambda r: r.sort_key())
        assert [r.id for r in ordered] == [4, 3, 2, 1]


class TestBoundsValidation:
    """Test min/max validation."""

    def test_acceptance_min_above_max(self):
        """Test that a floor above its ceiling is invalid."""
        with pytest.raises(ValidationError):
            AcceptanceRule(id=1, min_weight_kg=3000, max_weight_kg=2000)

    def test_band_min_above_max(self):
        """Test that min_cbm above max_cbm is invalid."""
        with pytest.raises(ValidationError):
            ClassificationBand(id=1, min_cbm=20, max_cbm=10, outcome_vehicle_category="car")

    def test_accessory_policy_default(self):
        """Test that a null accessory policy means unrestricted."""
        rule = AcceptanceRule(id=1, allow_accessories=None)
        assert rule.allow_accessories == AccessoryPolicy.UNRESTRICTED


class TestSurchargeParams:
    """Test surcharge params parsing per calc_mode."""

    def test_params_follow_calc_mode(self):
        """Test that params are parsed into the calc_mode variant."""
        rule = SurchargeRule(
            id=1, event_code="overwidth", calc_mode="WIDTH_STEP_BLOCKS",
            params={"amount_per_block": 15, "exclusive_group": "overwidth"},
        )
        assert rule.event_code == "OVERWIDTH"
        assert isinstance(rule.params, WidthStepBlocksParams)
        assert rule.params.threshold_cm == 250
        assert rule.params.block_cm == 25
        assert rule.exclusive_group == "OVERWIDTH"
        assert rule.raw_params == {"amount_per_block": 15, "exclusive_group": "overwidth"}

    def test_lower_case_calc_mode(self):
        """Test that calc_mode is case-insensitive."""
        rule = SurchargeRule(id=1, event_code="FLAT_FEE", calc_mode="flat", params={"amount": 25})
        assert rule.calc_mode == CalcMode.FLAT

    def test_malformed_params_rejected(self):
        """Test that params not matching the calc_mode are invalid."""
        with pytest.raises(ValidationError):
            SurchargeRule(id=1, event_code="X", calc_mode="PER_UNIT", params={"percentage": 10})

    def test_unknown_calc_mode_rejected(self):
        """Test that an unknown calc_mode is invalid."""
        with pytest.raises(ValidationError):
            SurchargeRule(id=1, event_code="X", calc_mode="PER_PARSEC", params={"amount": 1})

    def test_weight_tiers_sorted_open_ended_last(self):
        """Test that bounded tiers sort ascending and open-ended tiers go last."""
        rule = SurchargeRule(
            id=1, event_code="TIER", calc_mode="WEIGHT_TIER",
            params={"tiers": [{"max_kg": None, "amount": 20}, {"max_kg": 5000, "amount": 15}, {"max_kg": 500, "amount": 10}]},
        )
        assert isinstance(rule.params, WeightTierParams)
        assert [t.max_kg for t in rule.params.tiers] == [500, 5000, None]

    def test_per_ton_above_alias(self):
        """Test that amount_per_ton is accepted for PER_TON_ABOVE."""
        rule = SurchargeRule(
            id=1, event_code="HEAVY", calc_mode="PER_TON_ABOVE",
            params={"amount_per_ton": 11, "threshold_kg": 20000},
        )
        assert isinstance(rule.params, PerTonAboveParams)
        assert rule.params.amount == 11


class TestTransformRule:
    """Test transform rule parsing."""

    def test_overwidth_params(self):
        """Test OVERWIDTH_LM_RECALC params parsing and defaults."""
        rule = TransformRule(id=1, transform_code="overwidth_lm_recalc", params={"trigger_width_gt_cm": 260})
        assert rule.params.trigger_width_gt_cm == 260
        assert rule.params.divisor_cm == 250

    def test_missing_trigger_rejected(self):
        """Test that the trigger width is required."""
        with pytest.raises(ValidationError):
            TransformRule(id=1, transform_code="OVERWIDTH_LM_RECALC", params={})


class TestArticleMap:
    """Test article map parsing."""

    def test_qty_mode_and_params(self):
        """Test qty_mode normalization and empty params."""
        article_map = ArticleMap(id=1, event_code="towing", article_id="ART-9", qty_mode="per_unit", params=None)
        assert article_map.event_code == "TOWING"
        assert article_map.qty_mode == CalcMode.PER_UNIT
        assert article_map.params == {}
        assert article_map.article_id == "ART-9"
