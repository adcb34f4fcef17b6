"""Utility functions for matching rule records against a match context."""

from typing import FrozenSet, Iterable, List, Mapping, Optional, TypeVar

from carrier_rules.models.context_models import MatchContext
from carrier_rules.models.schema import (
    CategoriesTarget,
    CategoryGroup,
    GroupTarget,
    PortGroup,
    ScopedRule,
    TargetedRule,
    VersionedRecord,
    normalize_code,
)

R = TypeVar("R", bound=VersionedRecord)


def sort_rules(records: Iterable[R]) -> List[R]:
    """Sort records with the comparator shared by every matcher.

    Priority descending, then created_at ascending (records without a
    creation timestamp first), then id ascending.

    Args:
        records: Rule records of one table

    Returns:
        New list in evaluation order
    """
    return sorted(records, key=lambda r: r.sort_key())


def port_matches(rule: ScopedRule, context: MatchContext) -> bool:
    """Check the port scope of a rule.

    A rule without port ids and port groups matches any port. Otherwise the
    context port must be listed directly or belong to a referenced group.
    """
    if not rule.port_ids and not rule.port_group_ids:
        return True
    if context.pod_port_id is None:
        return False
    if context.pod_port_id in rule.port_ids:
        return True
    return bool(rule.port_group_ids & context.port_group_ids)


def scope_matches(rule: ScopedRule, context: MatchContext) -> bool:
    """Check port, vessel name and vessel class scope of a rule.

    Empty scope sets are wildcards; a non-empty set never matches a missing
    context value.

    Args:
        rule: Scoped rule record
        context: Current match context

    Returns:
        True if every non-empty scope set contains the context value
    """
    if not port_matches(rule, context):
        return False
    if rule.vessel_names and context.vessel_name not in rule.vessel_names:
        return False
    if rule.vessel_classes and context.vessel_class not in rule.vessel_classes:
        return False
    return True


def category_matches(
    rule: TargetedRule,
    category: Optional[str],
    group_id: Optional[int],
    groups: Mapping[int, CategoryGroup],
) -> bool:
    """Check whether a rule's category target includes a vehicle category.

    Args:
        rule: Rule with an optional category target
        category: Resolved vehicle category
        group_id: Category group the category resolved to, if any
        groups: Category groups of the snapshot keyed by id

    Returns:
        True if the rule has no target or the target includes the category
    """
    target = rule.target
    if target is None:
        return True
    if category is None:
        return False
    key = normalize_code(category)
    if isinstance(target, CategoriesTarget):
        return key in target.categories
    if isinstance(target, GroupTarget):
        if group_id is not None and group_id == target.group_id:
            return True
        group = groups.get(target.group_id)
        return group is not None and group.contains(key)
    return False


def applicable_rules(
    rules: Iterable[R],
    context: MatchContext,
    groups: Optional[Mapping[int, CategoryGroup]] = None,
) -> List[R]:
    """Filter rules to those effective, in scope and targeting the context category.

    Args:
        rules: Rule records of one table
        context: Current match context
        groups: Category groups keyed by id, used for group targets

    Returns:
        Matching rules in evaluation order
    """
    matched = []
    for rule in rules:
        if not rule.is_effective(context.as_of):
            continue
        if isinstance(rule, ScopedRule) and not scope_matches(rule, context):
            continue
        if isinstance(rule, TargetedRule) and not category_matches(
            rule, context.vehicle_category, context.category_group_id, groups or {}
        ):
            continue
        matched.append(rule)
    return sort_rules(matched)


def specificity_score(rule: TargetedRule, context: MatchContext) -> int:
    """Score how specifically a matching rule addresses the context.

    Vessel name +10, direct port +8, port group +6, vessel class +6,
    category group target +3, vehicle category target +2.
    """
    score = 0
    if rule.vessel_names and context.vessel_name in rule.vessel_names:
        score += 10
    if rule.port_ids and context.pod_port_id in rule.port_ids:
        score += 8
    if rule.port_group_ids & context.port_group_ids:
        score += 6
    if rule.vessel_classes and context.vessel_class in rule.vessel_classes:
        score += 6
    if isinstance(rule.target, GroupTarget):
        score += 3
    elif isinstance(rule.target, CategoriesTarget):
        score += 2
    return score


def _port_keys(rule: ScopedRule, port_groups: Mapping[int, PortGroup]) -> FrozenSet[str]:
    keys = set(rule.port_ids)
    for group_id in rule.port_group_ids:
        group = port_groups.get(group_id)
        if group is not None:
            keys |= group.member_ports | group.aliases | {group.code}
    return frozenset(keys)


def ports_overlap(a: ScopedRule, b: ScopedRule, port_groups: Mapping[int, PortGroup]) -> bool:
    """Check whether some port is in the port scope of both rules.

    Port groups are expanded to their member ports; an unscoped rule
    overlaps every port scope.
    """
    if not (a.port_ids or a.port_group_ids) or not (b.port_ids or b.port_group_ids):
        return True
    if a.port_group_ids & b.port_group_ids:
        return True
    return bool(_port_keys(a, port_groups) & _port_keys(b, port_groups))


def _sets_overlap(a: FrozenSet[str], b: FrozenSet[str]) -> bool:
    return not a or not b or bool(a & b)


def _target_keys(rule: TargetedRule, groups: Mapping[int, CategoryGroup]) -> FrozenSet[str]:
    target = rule.target
    if isinstance(target, CategoriesTarget):
        return target.categories
    group = groups.get(target.group_id)
    if group is None:
        return frozenset()
    return group.member_categories | group.aliases | {group.code}


def targets_overlap(a: TargetedRule, b: TargetedRule, groups: Mapping[int, CategoryGroup]) -> bool:
    """Check whether some vehicle category is targeted by both rules."""
    if a.target is None or b.target is None:
        return True
    if isinstance(a.target, GroupTarget) and isinstance(b.target, GroupTarget):
        if a.target.group_id == b.target.group_id:
            return True
    return bool(_target_keys(a, groups) & _target_keys(b, groups))


def rules_overlap(
    a: TargetedRule,
    b: TargetedRule,
    port_groups: Mapping[int, PortGroup],
    groups: Mapping[int, CategoryGroup],
) -> bool:
    """Check whether one cargo line could be matched by both rules.

    Both rules are assumed effective at the same date.

    Args:
        a: First rule
        b: Second rule
        port_groups: Port groups of the snapshot keyed by id
        groups: Category groups of the snapshot keyed by id

    Returns:
        True if port, vessel name, vessel class and category target all overlap
    """
    return (
        ports_overlap(a, b, port_groups)
        and _sets_overlap(a.vessel_names, b.vessel_names)
        and _sets_overlap(a.vessel_classes, b.vessel_classes)
        and targets_overlap(a, b, groups)
    )


def dedupe(values: Iterable[str]) -> tuple:
    """Remove duplicates while preserving first occurrence order."""
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return tuple(result)
