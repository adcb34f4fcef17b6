"""Carrier rule engine - public entry point of the quotation core."""

from datetime import date
from typing import Any, Mapping, Optional, Union

from carrier_rules.config.logging_config import get_logger
from carrier_rules.config.settings import Settings, get_settings
from carrier_rules.core.context_builder import parse_request
from carrier_rules.core.snapshot_loader import RuleRepository, SnapshotCache
from carrier_rules.core.workflow import CarrierRuleWorkflow
from carrier_rules.models.context_models import EvaluationRequest
from carrier_rules.models.results import EvaluationResult
from carrier_rules.models.schema import RuleSnapshot

logger = get_logger(__name__)


class CarrierRuleEngine:
    """Evaluate cargo lines against carrier rules.

    Loads one immutable snapshot per (carrier, date), optionally through a
    TTL cache, and runs the evaluation workflow against it. Evaluation
    holds no mutable state, so one engine can serve concurrent callers.

    Attributes:
        repository: Snapshot source (wrapped in a SnapshotCache when caching)
        workflow: Compiled evaluation workflow
    """

    def __init__(
        self,
        repository: RuleRepository,
        settings: Optional[Settings] = None,
        cache: bool = True,
    ):
        """
        Initialize engine.

        Args:
            repository: Rule repository providing carrier snapshots
            settings: Settings override (defaults to the global settings)
            cache: Wrap the repository in a SnapshotCache
        """
        self.settings = settings or get_settings()
        if cache:
            repository = SnapshotCache(repository, self.settings.snapshot_cache_ttl_seconds)
        self.repository = repository
        self.workflow = CarrierRuleWorkflow(self.settings)
        self.workflow.initialize()

    def evaluate(
        self,
        request: Union[EvaluationRequest, Mapping[str, Any]],
        as_of: Optional[date] = None,
    ) -> EvaluationResult:
        """
        Evaluate one cargo line.

        Args:
            request: Request mapping or EvaluationRequest
            as_of: Evaluation date (defaults to today)

        Returns:
            EvaluationResult

        Raises:
            InvalidInputError: If the request is malformed
            SnapshotNotFoundError: If the carrier has no rules
            UnclassifiedError: If the cargo cannot be classified
        """
        request = parse_request(request)
        as_of = as_of or date.today()
        snapshot = self.repository.load_carrier_rule_snapshot(request.carrier_id, as_of)
        return self.evaluate_with_snapshot(request, snapshot)

    def evaluate_with_snapshot(
        self,
        request: Union[EvaluationRequest, Mapping[str, Any]],
        snapshot: RuleSnapshot,
    ) -> EvaluationResult:
        """Evaluate one cargo line against an already loaded snapshot."""
        request = parse_request(request)
        result = self.workflow.run(request, snapshot)
        logger.info(
            f"Evaluation complete for carrier {snapshot.carrier.id}: {result.status.value}, "
            f"{len(result.surcharges)} surcharge line(s), total {result.total_surcharge_amount:g} "
            f"{self.settings.currency}"
        )
        return result

    def invalidate(self, carrier_id: Optional[str] = None) -> None:
        """Drop cached snapshots after an operator edited carrier rules."""
        if isinstance(self.repository, SnapshotCache):
            self.repository.invalidate(carrier_id)
