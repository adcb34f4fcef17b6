"""Data models for the carrier rule engine."""

from carrier_rules.models.schema import (
    RuleLogic,
    AccessoryPolicy,
    TransformCode,
    CalcMode,
    Rounding,
    QtyBasis,
    ClauseType,
    GroupTarget,
    CategoriesTarget,
    CategoryGroup,
    PortGroup,
    ClassificationBand,
    AcceptanceRule,
    OverwidthLmRecalcParams,
    TransformRule,
    WeightTier,
    SurchargeRule,
    ArticleMap,
    Clause,
    Carrier,
    ExcludedRule,
    RuleSnapshot,
)
from carrier_rules.models.context_models import (
    CargoFlags,
    EvaluationRequest,
    MatchContext,
)
from carrier_rules.models.results import (
    AcceptanceStatus,
    DestinationTerms,
    AcceptanceResult,
    TransformOutcome,
    SurchargeLine,
    EvaluationResult,
)

__all__ = [
    # Rule data models
    "RuleLogic",
    "AccessoryPolicy",
    "TransformCode",
    "CalcMode",
    "Rounding",
    "QtyBasis",
    "ClauseType",
    "GroupTarget",
    "CategoriesTarget",
    "CategoryGroup",
    "PortGroup",
    "ClassificationBand",
    "AcceptanceRule",
    "OverwidthLmRecalcParams",
    "TransformRule",
    "WeightTier",
    "SurchargeRule",
    "ArticleMap",
    "Clause",
    "Carrier",
    "ExcludedRule",
    "RuleSnapshot",
    # Request models
    "CargoFlags",
    "EvaluationRequest",
    "MatchContext",
    # Results
    "AcceptanceStatus",
    "DestinationTerms",
    "AcceptanceResult",
    "TransformOutcome",
    "SurchargeLine",
    "EvaluationResult",
]
