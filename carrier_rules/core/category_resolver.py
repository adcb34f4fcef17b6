"""Category group resolver - maps category codes and aliases to canonical groups."""

from datetime import date
from typing import Dict, FrozenSet, Iterable, List, Optional

from carrier_rules.config.logging_config import get_logger
from carrier_rules.models.context_models import MatchContext
from carrier_rules.models.schema import CategoryGroup, PortGroup, RuleSnapshot, normalize_code
from carrier_rules.models.utils import sort_rules

logger = get_logger(__name__)


class CategoryGroupResolver:
    """Resolve vehicle categories to category groups and ports to port groups.

    Only groups that are active and within their validity window at the
    evaluation date take part. When several groups contain a category the
    highest priority wins, ties broken by earliest creation then lowest id.

    Attributes:
        as_of: Evaluation date
        category_groups: Effective category groups in evaluation order
        port_groups: Effective port groups in evaluation order
    """

    def __init__(
        self,
        category_groups: Iterable[CategoryGroup],
        as_of: date,
        port_groups: Iterable[PortGroup] = (),
    ):
        self.as_of = as_of
        self.category_groups: List[CategoryGroup] = sort_rules(
            g for g in category_groups if g.is_effective(as_of)
        )
        self.port_groups: List[PortGroup] = sort_rules(
            g for g in port_groups if g.is_effective(as_of)
        )
        self._by_id: Dict[int, CategoryGroup] = {g.id: g for g in self.category_groups}

    @classmethod
    def from_snapshot(cls, snapshot: RuleSnapshot) -> "CategoryGroupResolver":
        return cls(snapshot.category_groups, snapshot.as_of, snapshot.port_groups)

    @property
    def groups_by_id(self) -> Dict[int, CategoryGroup]:
        return self._by_id

    def resolve(self, category: Optional[str]) -> Optional[CategoryGroup]:
        """Find the category group containing a category code or alias.

        Args:
            category: Category code, group code or alias (case-insensitive)

        Returns:
            Winning CategoryGroup, or None when the category is ungrouped
        """
        if category is None or str(category).strip() == "":
            return None
        key = normalize_code(category)
        for group in self.category_groups:
            if group.contains(key):
                return group
        logger.debug(f"Category {key} is not part of any category group")
        return None

    def resolve_by_id(self, group_id: Optional[int]) -> Optional[CategoryGroup]:
        if group_id is None:
            return None
        return self._by_id.get(group_id)

    def groups_for_port(self, port_id: Optional[str]) -> FrozenSet[int]:
        """Return the ids of every effective port group containing a port."""
        if port_id is None or str(port_id).strip() == "":
            return frozenset()
        key = normalize_code(port_id)
        return frozenset(
            g.id for g in self.port_groups
            if key in g.member_ports or key in g.aliases or key == g.code
        )

    def with_category(self, context: MatchContext, category: Optional[str]) -> MatchContext:
        """Return a copy of the context carrying the category and its resolved group."""
        group = self.resolve(category)
        return context.model_copy(update={
            "vehicle_category": normalize_code(category) if category else None,
            "category_group_id": group.id if group else None,
        })

    def enrich(self, context: MatchContext) -> MatchContext:
        """Attach port groups and the declared category's group to a context."""
        context = context.model_copy(update={"port_group_ids": self.groups_for_port(context.pod_port_id)})
        if context.vehicle_category is not None:
            context = self.with_category(context, context.vehicle_category)
        return context
