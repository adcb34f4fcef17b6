"""Rule evaluation workflow - LangGraph-based pipeline orchestrator."""

from typing import List, Optional, TypedDict

from langgraph.graph import StateGraph, START, END

from carrier_rules.config.logging_config import get_logger
from carrier_rules.config.settings import Settings, get_settings
from carrier_rules.core.acceptance import AcceptanceValidator
from carrier_rules.core.article_mapper import ArticleMapper, collect_clauses
from carrier_rules.core.category_resolver import CategoryGroupResolver
from carrier_rules.core.classifier import ClassificationBandMatcher
from carrier_rules.core.context_builder import build_context
from carrier_rules.core.surcharge_calculator import SurchargeCalculator
from carrier_rules.core.transforms import TransformEngine
from carrier_rules.models.context_models import EvaluationRequest, MatchContext
from carrier_rules.models.results import (
    AcceptanceResult,
    EvaluationResult,
    SurchargeLine,
    TransformOutcome,
)
from carrier_rules.models.schema import RuleSnapshot

logger = get_logger(__name__)


class EvaluationState(TypedDict, total=False):
    """State shared between LangGraph nodes.

    Each node reads what earlier nodes produced and returns only the keys
    it updates.

    Attributes:
        request: Validated evaluation request
        snapshot: Immutable rule snapshot of the carrier
        resolver: Category and port group resolver of the snapshot
        context: Match context, enriched by every stage
        acceptance: Acceptance outcome (Node 3)
        transform: Loading meter outcome (Node 4)
        surcharges: Charge lines (Node 5, mapped in Node 6)
        result: Final evaluation result (Node 7)
    """
    # Input
    request: EvaluationRequest
    snapshot: RuleSnapshot

    # Node 1: Context Builder
    resolver: CategoryGroupResolver
    context: MatchContext

    # Node 3: Acceptance Validator
    acceptance: AcceptanceResult

    # Node 4: Transform Engine
    transform: Optional[TransformOutcome]

    # Node 5-6: Surcharge Calculator and Article Mapper
    surcharges: List[SurchargeLine]

    # Node 7: Finalize
    result: EvaluationResult


class CarrierRuleWorkflow:
    """Pipeline orchestrator using LangGraph.

    The workflow consists of 7 nodes:
    1. Build Context: Normalize the request into a MatchContext
    2. Classify: Resolve the vehicle category when none was declared
    3. Acceptance: Validate against every applicable acceptance rule
    4. Transform: Recompute loading meters
    5. Surcharges: Compute charge lines
    6. Article Mapping: Attach catalog articles
    7. Finalize: Assemble the EvaluationResult

    Workflow structure:
    - Node 1 → Node 2 → Node 3
    - Node 3 → Node 7 when the cargo is rejected, otherwise Node 4
    - Node 4 → Node 5 → Node 6 → Node 7 → END

    Exceptions raised by a node (UnclassifiedError, InvalidInputError)
    propagate to the caller of ``run``.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize workflow.

        Args:
            settings: Settings override (defaults to the global settings)
        """
        self.settings = settings or get_settings()
        self.graph = None
        self._initialized = False

    def initialize(self):
        """Build and compile the LangGraph workflow.

        This method is idempotent - calling it multiple times has no effect.
        """
        if self._initialized:
            return

        logger.debug("Building rule evaluation graph")
        graph = StateGraph(EvaluationState)

        graph.add_node("build_context", self._build_context_node)
        graph.add_node("classify", self._classify_node)
        graph.add_node("acceptance", self._acceptance_node)
        graph.add_node("transform", self._transform_node)
        graph.add_node("surcharges", self._surcharge_node)
        graph.add_node("article_mapping", self._article_mapping_node)
        graph.add_node("finalize", self._finalize_node)

        graph.add_edge(START, "build_context")
        graph.add_edge("build_context", "classify")
        graph.add_edge("classify", "acceptance")

        # Rejection is terminal: skip transform, surcharge and article stages
        graph.add_conditional_edges(
            "acceptance",
            self._route_after_acceptance,
            {"rejected": "finalize", "continue": "transform"},
        )

        graph.add_edge("transform", "surcharges")
        graph.add_edge("surcharges", "article_mapping")
        graph.add_edge("article_mapping", "finalize")
        graph.add_edge("finalize", END)

        self.graph = graph.compile()
        self._initialized = True

    # Node 1: Build Context
    def _build_context_node(self, state: EvaluationState) -> EvaluationState:
        snapshot = state["snapshot"]
        resolver = CategoryGroupResolver.from_snapshot(snapshot)
        context = build_context(state["request"], snapshot.as_of, resolver, self.settings)
        return {"resolver": resolver, "context": context}

    # Node 2: Classify
    def _classify_node(self, state: EvaluationState) -> EvaluationState:
        """Classify the cargo when no vehicle category was declared.

        Raises:
            UnclassifiedError: If no classification band matches
        """
        context = state["context"]
        if context.vehicle_category is not None:
            return {}
        matcher = ClassificationBandMatcher(state["snapshot"].classification_bands)
        category = matcher.classify(context)
        logger.debug(f"Classified cargo as {category}")
        return {"context": state["resolver"].with_category(context, category)}

    # Node 3: Acceptance
    def _acceptance_node(self, state: EvaluationState) -> EvaluationState:
        validator = AcceptanceValidator(state["snapshot"].acceptance_rules, state["resolver"].groups_by_id)
        acceptance = validator.validate(state["context"])
        logger.debug(f"Acceptance: {acceptance.status.value} {list(acceptance.rejection_reasons)}")
        return {"acceptance": acceptance}

    def _route_after_acceptance(self, state: EvaluationState) -> str:
        return "rejected" if state["acceptance"].is_rejected else "continue"

    # Node 4: Transform
    def _transform_node(self, state: EvaluationState) -> EvaluationState:
        engine = TransformEngine(state["snapshot"].transform_rules, state["resolver"].groups_by_id)
        context, outcome = engine.apply(state["context"])
        return {"context": context, "transform": outcome}

    # Node 5: Surcharges
    def _surcharge_node(self, state: EvaluationState) -> EvaluationState:
        calculator = SurchargeCalculator(state["snapshot"].surcharge_rules, state["resolver"].groups_by_id)
        return {"surcharges": calculator.calculate(state["context"])}

    # Node 6: Article Mapping
    def _article_mapping_node(self, state: EvaluationState) -> EvaluationState:
        snapshot = state["snapshot"]
        mapper = ArticleMapper(snapshot.article_maps, snapshot.surcharge_rules, state["resolver"].groups_by_id)
        return {"surcharges": mapper.map_lines(state.get("surcharges", []), state["context"])}

    # Node 7: Finalize
    def _finalize_node(self, state: EvaluationState) -> EvaluationState:
        context = state["context"]
        resolver = state["resolver"]
        group = resolver.resolve_by_id(context.category_group_id)
        transform = state.get("transform") or TransformOutcome(
            base_lm=context.base_lm,
            chargeable_lm=context.working_lm,
        )
        result = EvaluationResult(
            carrier_id=context.carrier_id,
            vehicle_category=context.vehicle_category,
            category_group=group.code if group else None,
            acceptance=state["acceptance"],
            transform=transform,
            surcharges=state.get("surcharges", []),
            clauses=collect_clauses(state["snapshot"].clauses, context),
        )
        return {"result": result}

    def run(self, request: EvaluationRequest, snapshot: RuleSnapshot) -> EvaluationResult:
        """
        Run one request through the LangGraph workflow.

        Args:
            request: Validated evaluation request
            snapshot: Rule snapshot of the request's carrier

        Returns:
            EvaluationResult
        """
        if not self._initialized:
            self.initialize()

        initial_state: EvaluationState = {
            "request": request,
            "snapshot": snapshot,
            "transform": None,
            "surcharges": [],
        }
        final_state = self.graph.invoke(initial_state)
        return final_state["result"]
