"""Transform engine - recomputes loading meters before pricing."""

from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple

from carrier_rules.config.logging_config import get_logger
from carrier_rules.models.context_models import MatchContext
from carrier_rules.models.results import TransformOutcome
from carrier_rules.models.schema import (
    CategoryGroup,
    OverwidthLmRecalcParams,
    TransformCode,
    TransformRule,
)
from carrier_rules.models.utils import applicable_rules

logger = get_logger(__name__)

TransformFunction = Callable[[MatchContext, object], Optional[float]]

TRANSFORM_REGISTRY: Dict[TransformCode, TransformFunction] = {}


def register_transform(code: TransformCode):
    """Register a transform function under a transform code.

    The function receives the match context and the rule's typed params and
    returns the recomputed loading meters, or None when it does not trigger.
    """
    def decorator(func: TransformFunction) -> TransformFunction:
        TRANSFORM_REGISTRY[code] = func
        return func
    return decorator


@register_transform(TransformCode.OVERWIDTH_LM_RECALC)
def overwidth_lm_recalc(context: MatchContext, params: OverwidthLmRecalcParams) -> Optional[float]:
    """Pro-rata loading meters for units wider than the trigger width.

    ``new_lm = (width_cm * length_cm) / (divisor_cm * 100)``
    """
    if context.width_cm <= params.trigger_width_gt_cm:
        return None
    return (context.width_cm * context.length_cm) / (params.divisor_cm * 100)


class TransformEngine:
    """Apply in-scope transform rules in evaluation order.

    Only the first triggering rule per transform code applies. The
    recomputed value replaces the working loading meters; the declared
    geometry and base loading meters stay untouched.
    """

    def __init__(
        self,
        rules: Iterable[TransformRule],
        groups: Optional[Mapping[int, CategoryGroup]] = None,
        registry: Optional[Mapping[TransformCode, TransformFunction]] = None,
    ):
        self.rules = tuple(rules)
        self.groups = groups or {}
        self.registry = registry if registry is not None else TRANSFORM_REGISTRY

    def apply(self, context: MatchContext) -> Tuple[MatchContext, TransformOutcome]:
        """Apply transforms to the context.

        Args:
            context: Match context after acceptance

        Returns:
            Tuple of (context with updated working LM, TransformOutcome)
        """
        applied_codes = set()
        working_lm = context.working_lm
        applied_rule_id = None
        reason = None

        for rule in applicable_rules(self.rules, context, self.groups):
            if rule.transform_code in applied_codes:
                continue
            transform = self.registry.get(rule.transform_code)
            if transform is None:
                logger.warning(f"No transform registered for {rule.transform_code.value} (rule {rule.id})")
                continue
            new_lm = transform(context, rule.params)
            if new_lm is None:
                continue
            applied_codes.add(rule.transform_code)
            working_lm = new_lm
            applied_rule_id = rule.id
            reason = f"{rule.transform_code.value}: lm {context.working_lm:g} -> {new_lm:g}"
            logger.debug(f"Transform rule {rule.id} applied: {reason}")

        outcome = TransformOutcome(
            base_lm=context.base_lm,
            chargeable_lm=working_lm,
            applied_rule_id=applied_rule_id,
            reason=reason,
        )
        return context.model_copy(update={"working_lm": working_lm}), outcome
