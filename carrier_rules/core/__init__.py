"""Core business logic modules."""

from carrier_rules.core.errors import (
    CarrierRuleError,
    ConfigurationError,
    UnclassifiedError,
    MissingBasisError,
    InvalidInputError,
    SnapshotNotFoundError,
)
from carrier_rules.core.category_resolver import CategoryGroupResolver
from carrier_rules.core.context_builder import build_context, parse_request
from carrier_rules.core.classifier import ClassificationBandMatcher
from carrier_rules.core.acceptance import AcceptanceValidator
from carrier_rules.core.transforms import TransformEngine, register_transform
from carrier_rules.core.surcharge_calculator import SurchargeCalculator, compute_charge
from carrier_rules.core.article_mapper import ArticleMapper, collect_clauses
from carrier_rules.core.snapshot_loader import (
    SnapshotBuilder,
    RuleRepository,
    JsonRuleRepository,
    InMemoryRuleRepository,
    SnapshotCache,
)
from carrier_rules.core.workflow import CarrierRuleWorkflow, EvaluationState
from carrier_rules.core.engine import CarrierRuleEngine

__all__ = [
    "CarrierRuleError",
    "ConfigurationError",
    "UnclassifiedError",
    "MissingBasisError",
    "InvalidInputError",
    "SnapshotNotFoundError",
    "CategoryGroupResolver",
    "build_context",
    "parse_request",
    "ClassificationBandMatcher",
    "AcceptanceValidator",
    "TransformEngine",
    "register_transform",
    "SurchargeCalculator",
    "compute_charge",
    "ArticleMapper",
    "collect_clauses",
    "SnapshotBuilder",
    "RuleRepository",
    "JsonRuleRepository",
    "InMemoryRuleRepository",
    "SnapshotCache",
    "CarrierRuleWorkflow",
    "EvaluationState",
    "CarrierRuleEngine",
]
