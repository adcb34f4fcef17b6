"""Acceptance validator - checks cargo against a carrier's acceptance rules."""

from typing import Iterable, List, Mapping, Optional

from carrier_rules.config.logging_config import get_logger
from carrier_rules.config.messages import (
    REASON_ACCESSORIES_NOT_ALLOWED,
    REASON_COMPLETE_VEHICLE_REQUIRED,
    REASON_EMPTY_REQUIRED,
    REASON_FOREIGN_ACCESSORIES_NOT_ALLOWED,
    REASON_MAX_EXCEEDED,
    REASON_MIN_BELOW,
    REASON_PIGGY_BACK_NOT_ALLOWED,
    REASON_SELF_PROPELLED_REQUIRED,
    REASON_SOFT_APPROVAL,
    REASON_SOFT_EXCEEDED,
    REASON_STACKED_NOT_ALLOWED,
)
from carrier_rules.models.context_models import MatchContext
from carrier_rules.models.results import AcceptanceResult, AcceptanceStatus, DestinationTerms
from carrier_rules.models.schema import AccessoryPolicy, AcceptanceRule, CategoryGroup
from carrier_rules.models.utils import applicable_rules, dedupe

logger = get_logger(__name__)

# (dimension name used in reason codes, rule field suffix, context attribute)
DIMENSIONS = (
    ("length", "length_cm", "length_cm"),
    ("width", "width_cm", "width_cm"),
    ("height", "height_cm", "height_cm"),
    ("cbm", "cbm", "cbm"),
    ("weight", "weight_kg", "weight_kg"),
)

SOFT_LIMITS = (
    ("height", "height_cm", "soft_max_height_cm", "soft_height_requires_approval"),
    ("weight", "weight_kg", "soft_max_weight_kg", "soft_weight_requires_approval"),
)


class RuleFindings:
    """Reasons collected while checking a single acceptance rule."""

    def __init__(self):
        self.rejections: List[str] = []
        self.approvals: List[str] = []
        self.warnings: List[str] = []


def check_rule(rule: AcceptanceRule, context: MatchContext) -> RuleFindings:
    """Check one acceptance rule against the context.

    Hard ceilings and required operational flags produce rejections. Floors
    reject only when ``min_is_hard``, otherwise they warn. Soft limits are
    looked at only when the matching ceiling holds.

    Args:
        rule: Acceptance rule in scope for the context
        context: Current match context

    Returns:
        RuleFindings with rejection, approval and warning reason codes
    """
    findings = RuleFindings()

    exceeded = set()
    for dimension, field, attribute in DIMENSIONS:
        value = getattr(context, attribute)
        ceiling = getattr(rule, f"max_{field}")
        if ceiling is not None and value > ceiling:
            findings.rejections.append(REASON_MAX_EXCEEDED.format(dimension=dimension))
            exceeded.add(dimension)
        floor = getattr(rule, f"min_{field}")
        if floor is not None and value < floor:
            reason = REASON_MIN_BELOW.format(dimension=dimension)
            if rule.min_is_hard:
                findings.rejections.append(reason)
            else:
                findings.warnings.append(reason)

    flags = context.flags
    if rule.must_be_self_propelled and flags.non_self_propelled:
        findings.rejections.append(REASON_SELF_PROPELLED_REQUIRED)
    if rule.must_be_empty and not flags.empty:
        findings.rejections.append(REASON_EMPTY_REQUIRED)
    if not rule.allows_stacked and flags.stacked:
        findings.rejections.append(REASON_STACKED_NOT_ALLOWED)
    if not rule.allows_piggy_back and flags.piggy_back:
        findings.rejections.append(REASON_PIGGY_BACK_NOT_ALLOWED)
    if rule.allow_accessories == AccessoryPolicy.NONE and (
        flags.has_accessories or flags.has_foreign_accessories
    ):
        findings.rejections.append(REASON_ACCESSORIES_NOT_ALLOWED)
    elif rule.allow_accessories == AccessoryPolicy.ACCESSORIES_OF_UNIT_ONLY and flags.has_foreign_accessories:
        findings.rejections.append(REASON_FOREIGN_ACCESSORIES_NOT_ALLOWED)
    if rule.complete_vehicles_only and flags.incomplete_vehicle:
        findings.rejections.append(REASON_COMPLETE_VEHICLE_REQUIRED)

    for dimension, attribute, soft_field, approval_field in SOFT_LIMITS:
        if dimension in exceeded:
            continue
        soft_limit = getattr(rule, soft_field)
        if soft_limit is not None and getattr(context, attribute) > soft_limit:
            if getattr(rule, approval_field):
                findings.approvals.append(REASON_SOFT_APPROVAL.format(dimension=dimension))
            else:
                findings.warnings.append(REASON_SOFT_EXCEEDED.format(dimension=dimension))

    return findings


class AcceptanceValidator:
    """Validate cargo against every acceptance rule in scope.

    All matching rules are evaluated (not first-match) and their findings
    aggregated: any rejection makes the cargo rejected, otherwise any
    approval reason makes it accepted with approval.
    """

    def __init__(
        self,
        rules: Iterable[AcceptanceRule],
        groups: Optional[Mapping[int, CategoryGroup]] = None,
    ):
        self.rules = tuple(rules)
        self.groups = groups or {}

    def validate(self, context: MatchContext) -> AcceptanceResult:
        """Validate the context against all applicable acceptance rules.

        Args:
            context: Match context carrying the resolved vehicle category

        Returns:
            AcceptanceResult; no matching rule means accepted
        """
        rejections: List[str] = []
        approvals: List[str] = []
        warnings: List[str] = []
        terms = DestinationTerms()
        matched = []

        for rule in applicable_rules(self.rules, context, self.groups):
            findings = check_rule(rule, context)
            matched.append(rule.id)
            rejections.extend(findings.rejections)
            approvals.extend(findings.approvals)
            warnings.extend(findings.warnings)
            terms = DestinationTerms(
                is_free_out=terms.is_free_out or rule.is_free_out,
                requires_waiver=terms.requires_waiver or rule.requires_waiver,
                waiver_provided_by_carrier=terms.waiver_provided_by_carrier or rule.waiver_provided_by_carrier,
            )
            if findings.rejections:
                logger.debug(f"Acceptance rule {rule.id} rejects: {findings.rejections}")

        if rejections:
            status = AcceptanceStatus.REJECTED
        elif approvals:
            status = AcceptanceStatus.ACCEPTED_WITH_APPROVAL
        else:
            status = AcceptanceStatus.ACCEPTED

        return AcceptanceResult(
            status=status,
            rejection_reasons=dedupe(rejections),
            approval_reasons=dedupe(approvals),
            warnings=dedupe(warnings),
            destination_terms=terms,
            matched_rule_ids=tuple(matched),
        )
