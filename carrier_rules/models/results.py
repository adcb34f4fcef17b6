"""Result models produced by the rule engine pipeline."""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict

from carrier_rules.models.schema import CalcMode, Clause


class AcceptanceStatus(str, Enum):
    """Outcome of the acceptance stage."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ACCEPTED_WITH_APPROVAL = "accepted_with_approval"


class DestinationTerms(BaseModel):
    """Informational destination terms, OR-aggregated across matching rules."""
    model_config = ConfigDict(frozen=True)

    is_free_out: bool = False
    requires_waiver: bool = False
    waiver_provided_by_carrier: bool = False


class AcceptanceResult(BaseModel):
    """Aggregated outcome of every acceptance rule matching the cargo.

    Attributes:
        status: accepted, rejected or accepted_with_approval
        rejection_reasons: De-duplicated hard failure reason codes
        approval_reasons: De-duplicated soft-limit reason codes needing approval
        warnings: Non-blocking observations
        destination_terms: Aggregated destination terms
        matched_rule_ids: Acceptance rules that were evaluated
    """
    model_config = ConfigDict(frozen=True)

    status: AcceptanceStatus = AcceptanceStatus.ACCEPTED
    rejection_reasons: Tuple[str, ...] = ()
    approval_reasons: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    destination_terms: DestinationTerms = DestinationTerms()
    matched_rule_ids: Tuple[int, ...] = ()

    @property
    def is_rejected(self) -> bool:
        return self.status == AcceptanceStatus.REJECTED


class TransformOutcome(BaseModel):
    """Loading meters before and after the transform stage."""
    model_config = ConfigDict(frozen=True)

    base_lm: float
    chargeable_lm: float
    applied_rule_id: Optional[int] = None
    reason: Optional[str] = None


class SurchargeLine(BaseModel):
    """One charge produced by a surcharge rule, optionally mapped to an article.

    Attributes:
        event_code: Surcharge event code
        name: Display name of the surcharge rule
        calc_mode: Calculation mode used
        quantity: Quantity the unit amount was multiplied with
        unit_amount: Amount per quantity unit
        amount: Charged amount
        matched_rule_id: Surcharge rule that produced the line
        reason: Short human-readable explanation of the calculation
        exclusive_group: Exclusivity group of the rule, if any
        article_id: Mapped catalog article, None when unmapped
        qty_mode: Quantity mode of the mapped article
        requires_manual_review: Line needs an operator before quoting
    """
    model_config = ConfigDict(frozen=True)

    event_code: str
    name: str = ""
    calc_mode: CalcMode
    quantity: float = 0.0
    unit_amount: float = 0.0
    amount: float = 0.0
    matched_rule_id: int
    reason: Optional[str] = None
    exclusive_group: Optional[str] = None
    article_id: Optional[Union[int, str]] = None
    qty_mode: Optional[CalcMode] = None
    requires_manual_review: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_code": self.event_code,
            "name": self.name,
            "amount": self.amount,
            "quantity": self.quantity,
            "unit_amount": self.unit_amount,
            "article_id": self.article_id,
            "qty_mode": self.qty_mode.value if self.qty_mode else None,
            "requires_manual_review": self.requires_manual_review,
            "matched_rule_id": self.matched_rule_id,
            "reason": self.reason,
        }


class EvaluationResult:
    """Result of evaluating one cargo line against a carrier's rules.

    Container for every pipeline output. A rejected evaluation carries no
    transform outcome beyond the base loading meters and no surcharge lines.

    Attributes:
        carrier_id: Evaluated carrier
        vehicle_category: Declared or classified category
        category_group: Code of the resolved category group, if any
        acceptance: Aggregated acceptance outcome
        transform: Loading meter outcome
        surcharges: Charge lines in rule order
        clauses: Informational clauses in scope
    """

    def __init__(
        self,
        carrier_id: str,
        vehicle_category: str,
        category_group: Optional[str],
        acceptance: AcceptanceResult,
        transform: TransformOutcome,
        surcharges: Optional[List[SurchargeLine]] = None,
        clauses: Optional[List[Clause]] = None,
    ):
        self.carrier_id = carrier_id
        self.vehicle_category = vehicle_category
        self.category_group = category_group
        self.acceptance = acceptance
        self.transform = transform
        self.surcharges: List[SurchargeLine] = list(surcharges or [])
        self.clauses: List[Clause] = list(clauses or [])

    @property
    def status(self) -> AcceptanceStatus:
        return self.acceptance.status

    @property
    def total_surcharge_amount(self) -> float:
        return sum((line.amount for line in self.surcharges), 0.0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the evaluation result to the quotation-facing dictionary.

        Returns:
            Dictionary with keys:
                - vehicle_category, category_group
                - acceptance: "accepted" | "rejected" | "accepted_with_approval"
                - rejection_reasons, approval_reasons, warnings
                - destination_terms
                - loading_meters: base, chargeable, applied transform rule and reason
                - surcharges: list of surcharge line dictionaries
                - total_surcharge_amount
                - clauses: list of {clause_type, text}
        """
        return {
            "vehicle_category": self.vehicle_category,
            "category_group": self.category_group,
            "acceptance": self.acceptance.status.value,
            "rejection_reasons": list(self.acceptance.rejection_reasons),
            "approval_reasons": list(self.acceptance.approval_reasons),
            "warnings": list(self.acceptance.warnings),
            "destination_terms": self.acceptance.destination_terms.model_dump(),
            "loading_meters": {
                "base": self.transform.base_lm,
                "chargeable": self.transform.chargeable_lm,
                "applied_transform_rule_id": self.transform.applied_rule_id,
                "reason": self.transform.reason,
            },
            "surcharges": [line.to_dict() for line in self.surcharges],
            "total_surcharge_amount": self.total_surcharge_amount,
            "clauses": [
                {"clause_type": clause.clause_type.value, "text": clause.text}
                for clause in self.clauses
            ],
        }
