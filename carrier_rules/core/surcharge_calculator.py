"""Deterministic surcharge calculator using typed surcharge rule parameters."""

import math
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional

from pydantic import TypeAdapter

from carrier_rules.config.logging_config import get_logger
from carrier_rules.config.messages import NOTE_MISSING_BASIC_FREIGHT
from carrier_rules.core.errors import MissingBasisError
from carrier_rules.models.context_models import MatchContext
from carrier_rules.models.results import SurchargeLine
from carrier_rules.models.schema import (
    CategoryGroup,
    FlatParams,
    PerLmParams,
    PerTankParams,
    PerTonAboveParams,
    PerUnitParams,
    PercentOfBasicFreightParams,
    QtyBasis,
    Rounding,
    SurchargeParams,
    SurchargeRule,
    WeightTier,
    WeightTierParams,
    WidthLmBasisParams,
    WidthStepBlocksParams,
    tag_params,
)
from carrier_rules.models.utils import applicable_rules

logger = get_logger(__name__)

_PARAMS_ADAPTER = TypeAdapter(SurchargeParams)


class Charge(NamedTuple):
    """Outcome of one surcharge calculation."""
    quantity: float
    unit_amount: float
    amount: float
    reason: str


def parse_params(calc_mode: Any, raw: Dict[str, Any]):
    """Validate a raw params mapping into the variant of its calc_mode.

    Raises:
        pydantic.ValidationError: If the mapping does not fit the calc_mode
    """
    return _PARAMS_ADAPTER.validate_python(tag_params(calc_mode, raw))


def _apply_rounding(value: float, rounding: Rounding) -> int:
    if rounding == Rounding.CEIL:
        return math.ceil(value)
    if rounding == Rounding.FLOOR:
        return math.floor(value)
    # Half away from zero; negative counts are clamped by the caller anyway
    return math.floor(value + 0.5)


def select_weight_tier(tiers: Iterable[WeightTier], weight_kg: float) -> Optional[WeightTier]:
    """Pick the weight tier for a weight.

    The first bounded tier (ascending max_kg) with ``max_kg >= weight``
    wins. Otherwise the open-ended tier applies; when several open-ended
    tiers exist, the one with the highest ``min_kg`` not above the weight.

    Args:
        tiers: Tiers sorted with bounded tiers first
        weight_kg: Cargo weight

    Returns:
        Selected tier, or None when no tier covers the weight
    """
    open_ended = []
    for tier in tiers:
        if tier.max_kg is None:
            open_ended.append(tier)
        elif weight_kg <= tier.max_kg:
            return tier
    candidates = [t for t in open_ended if t.min_kg is None or t.min_kg <= weight_kg]
    if not candidates:
        return None
    return max(candidates, key=lambda t: t.min_kg or 0.0)


def _flat(params: FlatParams, context: MatchContext) -> Charge:
    return Charge(1, params.amount, params.amount, "flat amount")


def _per_unit(params: PerUnitParams, context: MatchContext) -> Charge:
    units = context.unit_count
    return Charge(units, params.amount, params.amount * units, f"{units} unit(s) x {params.amount:g}")


def _percent_of_basic_freight(params: PercentOfBasicFreightParams, context: MatchContext) -> Charge:
    freight = context.basic_freight_amount
    if freight is None:
        raise MissingBasisError(NOTE_MISSING_BASIC_FREIGHT)
    amount = freight * params.percentage / 100
    return Charge(1, amount, amount, f"{params.percentage:g}% of basic freight {freight:g}")


def _weight_tier(params: WeightTierParams, context: MatchContext) -> Charge:
    weight = context.weight_kg
    tier = select_weight_tier(params.tiers, weight)
    if tier is None:
        return Charge(0, 0.0, 0.0, f"no tier covers {weight:g}kg")
    amount = tier.amount
    if tier.min_kg is not None and tier.per_ton_over is not None:
        amount += max(0.0, weight - tier.min_kg) / 1000 * tier.per_ton_over
    bound = f"<= {tier.max_kg:g}kg" if tier.max_kg is not None else "open-ended"
    return Charge(1, amount, amount, f"weight {weight:g}kg in tier {bound}")


def _per_ton_above(params: PerTonAboveParams, context: MatchContext) -> Charge:
    tons = max(0.0, (context.weight_kg - params.threshold_kg) / 1000)
    return Charge(
        tons, params.amount, params.amount * tons,
        f"{tons:g}t above {params.threshold_kg:g}kg x {params.amount:g}",
    )


def _per_tank(params: PerTankParams, context: MatchContext) -> Charge:
    tanks = context.unit_count if context.flags.tank_truck else 0
    return Charge(tanks, params.amount, params.amount * tanks, f"{tanks} tank(s) x {params.amount:g}")


def _per_lm(params: PerLmParams, context: MatchContext) -> Charge:
    lm = context.working_lm
    return Charge(lm, params.amount, params.amount * lm, f"{lm:g} lm x {params.amount:g}")


def _width_step_blocks(params: WidthStepBlocksParams, context: MatchContext) -> Charge:
    width = context.width_cm
    if params.trigger_width_gt_cm is not None and width <= params.trigger_width_gt_cm:
        return Charge(0, params.amount_per_block, 0.0, f"width {width:g}cm within trigger")
    blocks = max(0, _apply_rounding((width - params.threshold_cm) / params.block_cm, params.rounding))
    if params.qty_basis == QtyBasis.LM:
        basis = context.working_lm
    else:
        basis = context.unit_count
    quantity = blocks * basis
    return Charge(
        quantity, params.amount_per_block, quantity * params.amount_per_block,
        f"{blocks} block(s) of {params.block_cm:g}cm over {params.threshold_cm:g}cm "
        f"x {basis:g} {params.qty_basis.value.lower()}",
    )


def _width_lm_basis(params: WidthLmBasisParams, context: MatchContext) -> Charge:
    width = context.width_cm
    if width <= params.trigger_width_gt_cm:
        return Charge(0, params.amount_per_lm, 0.0, f"width {width:g}cm within trigger")
    lm = context.working_lm if params.use_chargeable_lm else context.base_lm
    return Charge(
        lm, params.amount_per_lm, params.amount_per_lm * lm,
        f"width {width:g}cm > {params.trigger_width_gt_cm:g}cm, {lm:g} lm x {params.amount_per_lm:g}",
    )


CALCULATORS: Dict[str, Callable[[Any, MatchContext], Charge]] = {
    "FLAT": _flat,
    "PER_UNIT": _per_unit,
    "PERCENT_OF_BASIC_FREIGHT": _percent_of_basic_freight,
    "WEIGHT_TIER": _weight_tier,
    "PER_TON_ABOVE": _per_ton_above,
    "PER_TANK": _per_tank,
    "PER_LM": _per_lm,
    "WIDTH_STEP_BLOCKS": _width_step_blocks,
    "WIDTH_LM_BASIS": _width_lm_basis,
}


def compute_charge(params, context: MatchContext) -> Charge:
    """Compute a charge from typed surcharge params.

    Args:
        params: One of the surcharge params variants
        context: Match context after transforms

    Returns:
        Charge with quantity, unit amount, amount and reason

    Raises:
        MissingBasisError: If a required basis (basic freight) is absent
    """
    return CALCULATORS[params.calc_mode](params, context)


def build_line(rule: SurchargeRule, charge: Charge) -> SurchargeLine:
    return SurchargeLine(
        event_code=rule.event_code,
        name=rule.name,
        calc_mode=rule.calc_mode,
        quantity=charge.quantity,
        unit_amount=charge.unit_amount,
        amount=charge.amount,
        matched_rule_id=rule.id,
        reason=charge.reason,
        exclusive_group=rule.exclusive_group,
    )


class SurchargeCalculator:
    """Compute one charge line per applicable surcharge rule.

    Every in-scope rule is evaluated in the shared comparator order. Zero
    charges are dropped. Within an exclusive group only the first non-zero
    rule is kept. A rule missing its calculation basis yields a zero line
    flagged for manual review, which neither counts towards totals nor
    claims its exclusive group.
    """

    def __init__(
        self,
        rules: Iterable[SurchargeRule],
        groups: Optional[Mapping[int, CategoryGroup]] = None,
    ):
        self.rules = tuple(rules)
        self.groups = groups or {}

    def calculate(self, context: MatchContext) -> List[SurchargeLine]:
        """Calculate surcharge lines for the context.

        Args:
            context: Match context after transforms

        Returns:
            Surcharge lines in rule evaluation order
        """
        lines: List[SurchargeLine] = []
        claimed_groups = set()

        for rule in applicable_rules(self.rules, context, self.groups):
            try:
                charge = compute_charge(rule.params, context)
            except MissingBasisError as e:
                logger.warning(f"Surcharge rule {rule.id} ({rule.event_code}) needs manual review: {e}")
                line = build_line(rule, Charge(0, 0.0, 0.0, str(e)))
                lines.append(line.model_copy(update={"requires_manual_review": True}))
                continue

            if charge.amount == 0:
                logger.debug(f"Surcharge rule {rule.id} ({rule.event_code}) produced no charge")
                continue

            group = rule.exclusive_group
            if group is not None:
                if group in claimed_groups:
                    logger.debug(f"Surcharge rule {rule.id} skipped: exclusive group {group} already applied")
                    continue
                claimed_groups.add(group)

            lines.append(build_line(rule, charge))

        return lines
