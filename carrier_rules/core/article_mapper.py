"""Article mapper - converts surcharge event codes into priced catalog lines."""

from typing import Iterable, List, Mapping, Optional

from pydantic import ValidationError

from carrier_rules.config.logging_config import get_logger
from carrier_rules.config.messages import NOTE_NO_ARTICLE_MAPPING
from carrier_rules.core.errors import MissingBasisError
from carrier_rules.core.surcharge_calculator import compute_charge, parse_params
from carrier_rules.models.context_models import MatchContext
from carrier_rules.models.results import SurchargeLine
from carrier_rules.models.schema import ArticleMap, CategoryGroup, Clause, SurchargeRule
from carrier_rules.models.utils import applicable_rules, specificity_score

logger = get_logger(__name__)


class ArticleMapper:
    """Attach catalog articles to surcharge lines.

    For each line the article maps with the same event code that match the
    context are ranked by specificity (vessel name, port, port group,
    vessel class, category target), then by the shared comparator. A map
    may override the surcharge rule's params; when the merged params
    differ, the charge is recomputed with them.
    """

    def __init__(
        self,
        article_maps: Iterable[ArticleMap],
        surcharge_rules: Iterable[SurchargeRule],
        groups: Optional[Mapping[int, CategoryGroup]] = None,
    ):
        self.article_maps = tuple(article_maps)
        self.rules_by_id = {rule.id: rule for rule in surcharge_rules}
        self.groups = groups or {}

    def find_map(self, event_code: str, context: MatchContext) -> Optional[ArticleMap]:
        """Find the most specific article map for an event code.

        Args:
            event_code: Surcharge event code
            context: Current match context

        Returns:
            Winning ArticleMap, or None when the event is unmapped
        """
        candidates = applicable_rules(
            (m for m in self.article_maps if m.event_code == event_code),
            context,
            self.groups,
        )
        if not candidates:
            return None
        # Stable sort: equal scores keep comparator order
        return sorted(candidates, key=lambda m: -specificity_score(m, context))[0]

    def _recompute(self, line: SurchargeLine, article_map: ArticleMap, context: MatchContext) -> SurchargeLine:
        rule = self.rules_by_id.get(line.matched_rule_id)
        if rule is None or not article_map.params:
            return line
        merged = {**rule.raw_params, **article_map.params}
        if merged == rule.raw_params:
            return line
        try:
            params = parse_params(rule.calc_mode, merged)
        except ValidationError as e:
            logger.warning(
                f"Article map {article_map.id} params override is invalid for "
                f"{rule.calc_mode.value}, keeping original charge: {e}"
            )
            return line
        try:
            charge = compute_charge(params, context)
        except MissingBasisError:
            return line
        logger.debug(f"Article map {article_map.id} recomputed {line.event_code}: {line.amount} -> {charge.amount}")
        return line.model_copy(update={
            "quantity": float(charge.quantity),
            "unit_amount": float(charge.unit_amount),
            "amount": float(charge.amount),
            "reason": charge.reason,
        })

    def map_lines(self, lines: Iterable[SurchargeLine], context: MatchContext) -> List[SurchargeLine]:
        """Map every surcharge line to its article.

        Args:
            lines: Surcharge lines from the calculator
            context: Match context after transforms

        Returns:
            Lines with article_id and qty_mode attached; unmapped lines are
            flagged requires_manual_review. A line whose override reprices it
            to zero is dropped.
        """
        mapped = []
        for line in lines:
            article_map = self.find_map(line.event_code, context)
            if article_map is None:
                logger.warning(f"{NOTE_NO_ARTICLE_MAPPING} {line.event_code} (rule {line.matched_rule_id})")
                mapped.append(line.model_copy(update={"article_id": None, "requires_manual_review": True}))
                continue
            line = self._recompute(line, article_map, context)
            if line.amount == 0 and not line.requires_manual_review:
                logger.debug(
                    f"Article map {article_map.id} repriced {line.event_code} "
                    f"(rule {line.matched_rule_id}) to zero, line dropped"
                )
                continue
            mapped.append(line.model_copy(update={
                "article_id": article_map.article_id,
                "qty_mode": article_map.qty_mode or line.calc_mode,
            }))
        return mapped


def collect_clauses(clauses: Iterable[Clause], context: MatchContext) -> List[Clause]:
    """Return the clauses in scope for the context's port and vessel."""
    return applicable_rules(clauses, context)
