"""Unit tests for the transform engine."""

import pytest

from carrier_rules.core.transforms import TRANSFORM_REGISTRY, TransformEngine, overwidth_lm_recalc
from carrier_rules.models.schema import OverwidthLmRecalcParams, TransformCode, TransformRule
from tests.test_fixtures import make_context


def overwidth_rule(rule_id, trigger, priority=0, **scope):
    return TransformRule(
        id=rule_id,
        transform_code="OVERWIDTH_LM_RECALC",
        params={"trigger_width_gt_cm": trigger, "divisor_cm": 250},
        priority=priority,
        **scope,
    )


class TestOverwidthLmRecalc:
    """Test the OVERWIDTH_LM_RECALC transform function."""

    def test_registered(self):
        """Test that the transform is registered under its code."""
        assert TRANSFORM_REGISTRY[TransformCode.OVERWIDTH_LM_RECALC] is overwidth_lm_recalc

    def test_triggers_above_width(self):
        """Test the pro-rata formula above the trigger width."""
        params = OverwidthLmRecalcParams(trigger_width_gt_cm=260, divisor_cm=250)
        context = make_context(length_cm=1000, width_cm=300)
        assert overwidth_lm_recalc(context, params) == pytest.approx(12.0)

    def test_trigger_is_strict(self):
        """Test that a width equal to the trigger does not trigger."""
        params = OverwidthLmRecalcParams(trigger_width_gt_cm=260)
        assert overwidth_lm_recalc(make_context(width_cm=260), params) is None


class TestTransformEngine:
    """Test rule application."""

    def test_working_lm_replaced(self):
        """Test that the recomputed LM replaces the working LM only."""
        engine = TransformEngine([overwidth_rule(1, 260)])
        context, outcome = engine.apply(make_context(length_cm=500, width_cm=300, base_lm=6.0, working_lm=6.0))
        assert context.working_lm == pytest.approx(6.0)
        assert context.base_lm == 6.0
        assert context.width_cm == 300
        assert outcome.applied_rule_id == 1
        assert outcome.chargeable_lm == pytest.approx(6.0)

    def test_not_triggered(self):
        """Test that a narrow unit keeps its LM."""
        engine = TransformEngine([overwidth_rule(1, 260)])
        context, outcome = engine.apply(make_context(width_cm=240))
        assert context.working_lm == 4.5
        assert outcome.applied_rule_id is None
        assert outcome.reason is None
        assert outcome.base_lm == outcome.chargeable_lm == 4.5

    def test_first_triggering_rule_per_code(self):
        """Test that only the highest-priority triggering rule applies."""
        rules = [
            overwidth_rule(1, 260, priority=10),
            overwidth_rule(2, 255, priority=15, port_ids=["ABJ"]),
        ]
        engine = TransformEngine(rules)

        _, abidjan = engine.apply(make_context(pod_port_id="ABJ", length_cm=500, width_cm=258))
        assert abidjan.applied_rule_id == 2
        assert abidjan.chargeable_lm == pytest.approx(5.16)

        _, dakar = engine.apply(make_context(pod_port_id="DKR", length_cm=500, width_cm=258))
        assert dakar.applied_rule_id is None

    def test_lower_priority_rule_applies_when_higher_does_not_trigger(self):
        """Test that a non-triggering rule does not block the next one."""
        rules = [overwidth_rule(1, 300, priority=10), overwidth_rule(2, 260, priority=1)]
        _, outcome = TransformEngine(rules).apply(make_context(length_cm=500, width_cm=280))
        assert outcome.applied_rule_id == 2

    def test_custom_registry(self):
        """Test that the registry is pluggable."""
        registry = {TransformCode.OVERWIDTH_LM_RECALC: lambda context, params: 99.0}
        engine = TransformEngine([overwidth_rule(1, 260)], registry=registry)
        context, _ = engine.apply(make_context())
        assert context.working_lm == 99.0
