"""Carrier Rule Schema - immutable rule records evaluated by the rule engine."""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, Literal, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def normalize_code(value: Any) -> str:
    """Normalize a category, port or vessel code for case-insensitive matching."""
    return str(value).strip().upper()


def normalize_codes(values: Any) -> FrozenSet[str]:
    """Normalize a collection of codes into a frozenset; None and "" become empty."""
    if values is None or values == "":
        return frozenset()
    if isinstance(values, (str, int)):
        values = [values]
    return frozenset(normalize_code(v) for v in values if v is not None and str(v).strip())


class RuleLogic(str, Enum):
    """How the conditions of a classification band are combined."""
    AND = "AND"
    OR = "OR"


class AccessoryPolicy(str, Enum):
    """Which accessories may travel inside or on a unit.

    Attributes:
        NONE: No accessories at all
        ACCESSORIES_OF_UNIT_ONLY: Only accessories belonging to the unit itself
        UNRESTRICTED: Any accessories
    """
    NONE = "NONE"
    ACCESSORIES_OF_UNIT_ONLY = "ACCESSORIES_OF_UNIT_ONLY"
    UNRESTRICTED = "UNRESTRICTED"


class TransformCode(str, Enum):
    """Registered dimensional transforms."""
    OVERWIDTH_LM_RECALC = "OVERWIDTH_LM_RECALC"


class CalcMode(str, Enum):
    """How a surcharge amount is calculated.

    Attributes:
        FLAT: Fixed amount per cargo line
        PER_UNIT: Amount per unit
        PERCENT_OF_BASIC_FREIGHT: Percentage of the basic freight amount
        WEIGHT_TIER: Amount looked up from ascending weight brackets
        PER_TON_ABOVE: Amount per ton above a weight threshold
        PER_TANK: Amount per tank (tank trucks only)
        PER_LM: Amount per loading meter
        WIDTH_STEP_BLOCKS: Amount per width block over a threshold
        WIDTH_LM_BASIS: Amount per loading meter once a width trigger is passed
    """
    FLAT = "FLAT"
    PER_UNIT = "PER_UNIT"
    PERCENT_OF_BASIC_FREIGHT = "PERCENT_OF_BASIC_FREIGHT"
    WEIGHT_TIER = "WEIGHT_TIER"
    PER_TON_ABOVE = "PER_TON_ABOVE"
    PER_TANK = "PER_TANK"
    PER_LM = "PER_LM"
    WIDTH_STEP_BLOCKS = "WIDTH_STEP_BLOCKS"
    WIDTH_LM_BASIS = "WIDTH_LM_BASIS"


class Rounding(str, Enum):
    """Rounding policy applied to a fractional block count."""
    CEIL = "CEIL"
    FLOOR = "FLOOR"
    ROUND = "ROUND"


class QtyBasis(str, Enum):
    """Quantity a per-block amount is multiplied with."""
    LM = "LM"
    UNIT = "UNIT"


class ClauseType(str, Enum):
    """Kinds of informational clauses attached to a carrier."""
    LEGAL = "LEGAL"
    OPERATIONAL = "OPERATIONAL"
    LIABILITY = "LIABILITY"


class FrozenModel(BaseModel):
    """Base for every immutable record in a rule snapshot."""
    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)


# ============================================================================
# Versioning and scoping
# ============================================================================

class VersionedRecord(FrozenModel):
    """Fields shared by every rule table: identity, ordering and validity window.

    Attributes:
        id: Row identifier, unique within its table
        created_at: Creation timestamp, used as ordering tie-break
        priority: Higher priority is evaluated first
        effective_from: First day the record applies (inclusive). None means always.
        effective_to: Last day the record applies (inclusive). None means open-ended.
        is_active: Inactive records are never evaluated
    """
    id: int
    created_at: Optional[datetime] = None
    priority: int = 0
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    is_active: bool = True

    @model_validator(mode="after")
    def _check_window(self):
        if self.effective_from and self.effective_to and self.effective_from > self.effective_to:
            raise ValueError(
                f"effective_from {self.effective_from} is after effective_to {self.effective_to}"
            )
        return self

    def is_effective(self, as_of: date) -> bool:
        """Return True when the record is active and its window contains as_of."""
        if not self.is_active:
            return False
        if self.effective_from is not None and self.effective_from > as_of:
            return False
        if self.effective_to is not None and self.effective_to < as_of:
            return False
        return True

    def sort_key(self) -> tuple:
        """Ordering shared by every matcher: priority desc, then creation order asc."""
        return (
            -self.priority,
            self.created_at is not None,
            self.created_at or datetime.min,
            self.id,
        )


class ScopedRule(VersionedRecord):
    """A record scoped by port and vessel. Empty scope sets match anything.

    The legacy single-value columns (port_id, vessel_name, vessel_class) are
    folded into their set counterparts.
    """
    port_ids: FrozenSet[str] = frozenset()
    port_group_ids: FrozenSet[int] = frozenset()
    vessel_names: FrozenSet[str] = frozenset()
    vessel_classes: FrozenSet[str] = frozenset()

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_scope(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for single, plural in (
            ("port_id", "port_ids"),
            ("vessel_name", "vessel_names"),
            ("vessel_class", "vessel_classes"),
        ):
            value = data.pop(single, None)
            if value is not None and value != "":
                data[plural] = normalize_codes(data.get(plural)) | normalize_codes(value)
        return data

    @field_validator("port_ids", "vessel_names", "vessel_classes", mode="before")
    @classmethod
    def _normalize_scope(cls, value: Any) -> FrozenSet[str]:
        return normalize_codes(value)

    @field_validator("port_group_ids", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or frozenset()


# ============================================================================
# Category targeting
# ============================================================================

class GroupTarget(FrozenModel):
    """Rule targets every category of one category group."""
    kind: Literal["group"] = "group"
    group_id: int


class CategoriesTarget(FrozenModel):
    """Rule targets an explicit set of vehicle categories."""
    kind: Literal["categories"] = "categories"
    categories: FrozenSet[str]

    @field_validator("categories", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> FrozenSet[str]:
        return normalize_codes(value)


CategoryTarget = Annotated[Union[GroupTarget, CategoriesTarget], Field(discriminator="kind")]


class TargetedRule(ScopedRule):
    """A scoped rule that may also be restricted to a category or category group.

    Raw records carry ``category_group_id`` and/or ``vehicle_categories``.
    When both are present the group wins and the category list is dropped.
    No target means the rule applies to every category.
    """
    target: Optional[CategoryTarget] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_target(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("target") is not None:
            return data
        data = dict(data)
        group_id = data.pop("category_group_id", None)
        categories = normalize_codes(data.pop("vehicle_categories", None)) | normalize_codes(
            data.pop("vehicle_category", None)
        )
        if group_id is not None and group_id != "":
            data["target"] = {"kind": "group", "group_id": group_id}
        elif categories:
            data["target"] = {"kind": "categories", "categories": categories}
        return data

    @property
    def category_group_id(self) -> Optional[int]:
        if isinstance(self.target, GroupTarget):
            return self.target.group_id
        return None

    @property
    def vehicle_categories(self) -> FrozenSet[str]:
        if isinstance(self.target, CategoriesTarget):
            return self.target.categories
        return frozenset()


# ============================================================================
# Groups
# ============================================================================

class CategoryGroup(VersionedRecord):
    """A named set of vehicle categories treated as one unit for rule matching.

    Attributes:
        code: Group code, unique per carrier (e.g. 'CARS', 'LM_CARGO')
        display_name: Human-readable name
        aliases: Alternative names that resolve to this group (e.g. 'LM', 'HIGH & HEAVY')
        member_categories: Vehicle categories belonging to the group
    """
    code: str
    display_name: str = ""
    aliases: FrozenSet[str] = frozenset()
    member_categories: FrozenSet[str] = frozenset()

    @field_validator("code", mode="before")
    @classmethod
    def _normalize_code(cls, value: Any) -> str:
        return normalize_code(value)

    @field_validator("aliases", "member_categories", mode="before")
    @classmethod
    def _normalize_sets(cls, value: Any) -> FrozenSet[str]:
        return normalize_codes(value)

    def contains(self, category: str) -> bool:
        key = normalize_code(category)
        return key == self.code or key in self.member_categories or key in self.aliases


class PortGroup(VersionedRecord):
    """A named set of ports (e.g. 'WAF' for West Africa) rules can be scoped to."""
    code: str
    display_name: str = ""
    aliases: FrozenSet[str] = frozenset()
    member_ports: FrozenSet[str] = frozenset()

    @field_validator("code", mode="before")
    @classmethod
    def _normalize_code(cls, value: Any) -> str:
        return normalize_code(value)

    @field_validator("aliases", "member_ports", mode="before")
    @classmethod
    def _normalize_sets(cls, value: Any) -> FrozenSet[str]:
        return normalize_codes(value)


# ============================================================================
# Classification
# ============================================================================

class ClassificationBand(ScopedRule):
    """Maps cargo volume/height to a vehicle category when none is declared.

    Attributes:
        min_cbm: Minimum volume (inclusive)
        max_cbm: Maximum volume (inclusive)
        max_height_cm: Maximum height (inclusive)
        rule_logic: AND (every present condition holds) or OR (any present condition holds)
        outcome_vehicle_category: Category assigned when the band matches
    """
    min_cbm: Optional[float] = Field(None, ge=0)
    max_cbm: Optional[float] = Field(None, ge=0)
    max_height_cm: Optional[float] = Field(None, ge=0)
    rule_logic: RuleLogic = RuleLogic.AND
    outcome_vehicle_category: str

    @field_validator("outcome_vehicle_category", mode="before")
    @classmethod
    def _normalize_outcome(cls, value: Any) -> str:
        return normalize_code(value)

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.min_cbm is not None and self.max_cbm is not None and self.min_cbm > self.max_cbm:
            raise ValueError(f"min_cbm {self.min_cbm} exceeds max_cbm {self.max_cbm}")
        return self


# ============================================================================
# Acceptance
# ============================================================================

class AcceptanceRule(TargetedRule):
    """Dimensional and operational limits a carrier enforces for a category.

    Ceilings are hard limits. Soft limits sit below the ceilings and flag
    cargo for approval (or a warning) instead of rejecting it. Destination
    terms are informational only.
    """
    name: Optional[str] = None

    min_length_cm: Optional[float] = Field(None, ge=0)
    min_width_cm: Optional[float] = Field(None, ge=0)
    min_height_cm: Optional[float] = Field(None, ge=0)
    min_cbm: Optional[float] = Field(None, ge=0)
    min_weight_kg: Optional[float] = Field(None, ge=0)
    min_is_hard: bool = False

    max_length_cm: Optional[float] = Field(None, ge=0)
    max_width_cm: Optional[float] = Field(None, ge=0)
    max_height_cm: Optional[float] = Field(None, ge=0)
    max_cbm: Optional[float] = Field(None, ge=0)
    max_weight_kg: Optional[float] = Field(None, ge=0)

    must_be_empty: bool = False
    must_be_self_propelled: bool = False
    allow_accessories: AccessoryPolicy = AccessoryPolicy.UNRESTRICTED
    complete_vehicles_only: bool = False
    allows_stacked: bool = True
    allows_piggy_back: bool = True

    soft_max_height_cm: Optional[float] = Field(None, ge=0)
    soft_height_requires_approval: bool = False
    soft_max_weight_kg: Optional[float] = Field(None, ge=0)
    soft_weight_requires_approval: bool = False

    is_free_out: bool = False
    requires_waiver: bool = False
    waiver_provided_by_carrier: bool = False

    notes: Optional[str] = None

    @field_validator("allow_accessories", mode="before")
    @classmethod
    def _default_accessories(cls, value: Any) -> Any:
        return AccessoryPolicy.UNRESTRICTED if value is None else value

    @model_validator(mode="after")
    def _check_min_max(self):
        for dimension in ("length_cm", "width_cm", "height_cm", "cbm", "weight_kg"):
            low = getattr(self, f"min_{dimension}")
            high = getattr(self, f"max_{dimension}")
            if low is not None and high is not None and low > high:
                raise ValueError(f"min_{dimension} {low} exceeds max_{dimension} {high}")
        return self


# ============================================================================
# Transforms
# ============================================================================

class OverwidthLmRecalcParams(FrozenModel):
    """Parameters of OVERWIDTH_LM_RECALC.

    Attributes:
        trigger_width_gt_cm: Transform fires when width is strictly greater
        divisor_cm: Lane width the pro-rata LM is divided by
    """
    transform_code: Literal["OVERWIDTH_LM_RECALC"] = "OVERWIDTH_LM_RECALC"
    trigger_width_gt_cm: float = Field(ge=0)
    divisor_cm: float = Field(250.0, gt=0)


# Becomes a Union discriminated on transform_code once a second transform exists
TransformParams = OverwidthLmRecalcParams


class TransformRule(TargetedRule):
    """Recomputes a derived cargo metric before pricing."""
    transform_code: TransformCode
    params: TransformParams

    @field_validator("transform_code", mode="before")
    @classmethod
    def _normalize_code(cls, value: Any) -> Any:
        return normalize_code(value) if isinstance(value, str) else value

    @model_validator(mode="before")
    @classmethod
    def _tag_params(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        code = data.get("transform_code")
        params = data.get("params") or {}
        if isinstance(params, dict):
            data["params"] = {**params, "transform_code": normalize_code(getattr(code, "value", code))}
        return data


# ============================================================================
# Surcharges
# ============================================================================

class SurchargeParamsBase(FrozenModel):
    """Fields every surcharge parameter variant accepts."""
    exclusive_group: Optional[str] = None

    @field_validator("exclusive_group", mode="before")
    @classmethod
    def _normalize_group(cls, value: Any) -> Optional[str]:
        if value is None or str(value).strip() == "":
            return None
        return normalize_code(value)


class FlatParams(SurchargeParamsBase):
    calc_mode: Literal["FLAT"] = "FLAT"
    amount: float


class PerUnitParams(SurchargeParamsBase):
    calc_mode: Literal["PER_UNIT"] = "PER_UNIT"
    amount: float


class PercentOfBasicFreightParams(SurchargeParamsBase):
    calc_mode: Literal["PERCENT_OF_BASIC_FREIGHT"] = "PERCENT_OF_BASIC_FREIGHT"
    percentage: float


class WeightTier(FrozenModel):
    """One weight bracket. A tier without max_kg is open-ended.

    Attributes:
        max_kg: Upper bound of the bracket (inclusive)
        amount: Amount charged for the bracket
        min_kg: Start of the bracket, used with per_ton_over
        per_ton_over: Extra amount per ton above min_kg
    """
    max_kg: Optional[float] = Field(None, ge=0)
    amount: float
    min_kg: Optional[float] = Field(None, ge=0)
    per_ton_over: Optional[float] = None


class WeightTierParams(SurchargeParamsBase):
    calc_mode: Literal["WEIGHT_TIER"] = "WEIGHT_TIER"
    tiers: Tuple[WeightTier, ...] = Field(min_length=1)

    @field_validator("tiers")
    @classmethod
    def _sort_tiers(cls, tiers: Tuple[WeightTier, ...]) -> Tuple[WeightTier, ...]:
        # Bounded tiers ascending, open-ended tiers last in declared order
        return tuple(sorted(tiers, key=lambda t: (t.max_kg is None, t.max_kg or 0.0)))


class PerTonAboveParams(SurchargeParamsBase):
    calc_mode: Literal["PER_TON_ABOVE"] = "PER_TON_ABOVE"
    amount: float = Field(validation_alias=AliasChoices("amount", "amount_per_ton"))
    threshold_kg: float = Field(0.0, ge=0)


class PerTankParams(SurchargeParamsBase):
    calc_mode: Literal["PER_TANK"] = "PER_TANK"
    amount: float


class PerLmParams(SurchargeParamsBase):
    calc_mode: Literal["PER_LM"] = "PER_LM"
    amount: float


class WidthStepBlocksParams(SurchargeParamsBase):
    calc_mode: Literal["WIDTH_STEP_BLOCKS"] = "WIDTH_STEP_BLOCKS"
    trigger_width_gt_cm: Optional[float] = Field(None, ge=0)
    threshold_cm: float = Field(250.0, ge=0)
    block_cm: float = Field(25.0, gt=0)
    rounding: Rounding = Rounding.CEIL
    qty_basis: QtyBasis = QtyBasis.LM
    amount_per_block: float


class WidthLmBasisParams(SurchargeParamsBase):
    calc_mode: Literal["WIDTH_LM_BASIS"] = "WIDTH_LM_BASIS"
    trigger_width_gt_cm: float = Field(250.0, ge=0)
    amount_per_lm: float
    use_chargeable_lm: bool = True


SurchargeParams = Annotated[
    Union[
        FlatParams,
        PerUnitParams,
        PercentOfBasicFreightParams,
        WeightTierParams,
        PerTonAboveParams,
        PerTankParams,
        PerLmParams,
        WidthStepBlocksParams,
        WidthLmBasisParams,
    ],
    Field(discriminator="calc_mode"),
]


def tag_params(calc_mode: Any, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Attach the calc_mode discriminator to a raw params mapping."""
    return {**(params or {}), "calc_mode": normalize_code(getattr(calc_mode, "value", calc_mode))}


class SurchargeRule(TargetedRule):
    """A surcharge event a carrier charges under given conditions.

    ``params`` is parsed into the variant matching ``calc_mode``; the raw
    mapping is kept in ``raw_params`` so article maps can override keys.
    """
    event_code: str
    name: str = ""
    calc_mode: CalcMode
    params: SurchargeParams
    raw_params: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _tag_params(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        params = data.get("params") or {}
        if isinstance(params, BaseModel):
            params = params.model_dump(exclude={"calc_mode"}, exclude_none=True)
        if not isinstance(params, dict):
            return data
        data.setdefault("raw_params", {k: v for k, v in params.items() if k != "calc_mode"})
        data["params"] = tag_params(data.get("calc_mode"), params)
        return data

    @field_validator("calc_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        return normalize_code(value) if isinstance(value, str) else value

    @field_validator("event_code", mode="before")
    @classmethod
    def _normalize_event(cls, value: Any) -> str:
        return normalize_code(value)

    @property
    def exclusive_group(self) -> Optional[str]:
        return self.params.exclusive_group


class ArticleMap(TargetedRule):
    """Maps a surcharge event code to a priced catalog article.

    Attributes:
        event_code: Surcharge event this article prices
        article_id: Catalog article identifier
        qty_mode: Quantity mode of the article line (calc_mode vocabulary)
        params: Optional overrides merged over the surcharge rule's own params
    """
    event_code: str
    article_id: Union[int, str]
    qty_mode: Optional[CalcMode] = None
    params: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_code", mode="before")
    @classmethod
    def _normalize_event(cls, value: Any) -> str:
        return normalize_code(value)

    @field_validator("qty_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return normalize_code(value) if isinstance(value, str) else value

    @field_validator("params", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or {}


class Clause(ScopedRule):
    """Legal, operational or liability note shown alongside a quotation."""
    clause_type: ClauseType = ClauseType.OPERATIONAL
    text: str


# ============================================================================
# Snapshot
# ============================================================================

class Carrier(FrozenModel):
    """Carrier identity. ``internal_comments`` is operator-only metadata."""
    id: str
    code: str = ""
    name: str = ""
    internal_comments: Optional[str] = None


class ExcludedRule(FrozenModel):
    """A rule dropped from a snapshot because it is misconfigured."""
    table: str
    rule_id: Optional[int] = None
    reason: str


class RuleSnapshot(FrozenModel):
    """Immutable, validated rule set of one carrier at one evaluation date.

    Built once per evaluation (or reused from the snapshot cache) and never
    mutated; every pipeline stage reads from it.
    """
    carrier: Carrier
    as_of: date
    category_groups: Tuple[CategoryGroup, ...] = ()
    port_groups: Tuple[PortGroup, ...] = ()
    classification_bands: Tuple[ClassificationBand, ...] = ()
    acceptance_rules: Tuple[AcceptanceRule, ...] = ()
    transform_rules: Tuple[TransformRule, ...] = ()
    surcharge_rules: Tuple[SurchargeRule, ...] = ()
    article_maps: Tuple[ArticleMap, ...] = ()
    clauses: Tuple[Clause, ...] = ()
    excluded: Tuple[ExcludedRule, ...] = ()

    def surcharge_rule(self, rule_id: int) -> Optional[SurchargeRule]:
        for rule in self.surcharge_rules:
            if rule.id == rule_id:
                return rule
        return None

    def category_group(self, group_id: int) -> Optional[CategoryGroup]:
        for group in self.category_groups:
            if group.id == group_id:
                return group
        return None
