"""Request and match-context models for carrier rule evaluation."""

from datetime import date
from typing import Any, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from carrier_rules.models.schema import normalize_code


class CargoFlags(BaseModel):
    """Boolean cargo declarations checked by acceptance and surcharge rules.

    Attributes:
        tank_truck: Unit is a tank truck (drives PER_TANK surcharges)
        non_self_propelled: Unit cannot drive on board by itself
        stacked: Units are stacked on top of each other
        piggy_back: Unit is carried on another unit
        empty: Unit is declared empty
        has_accessories: Unit carries accessories
        has_foreign_accessories: Accessories do not belong to the unit itself
        incomplete_vehicle: Unit is not a complete vehicle (parts, chassis, ...)
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    tank_truck: bool = False
    non_self_propelled: bool = False
    stacked: bool = False
    piggy_back: bool = False
    empty: bool = False
    has_accessories: bool = False
    has_foreign_accessories: bool = False
    incomplete_vehicle: bool = False


class EvaluationRequest(BaseModel):
    """Raw evaluation request as sent by the quotation subsystem.

    Geometry is in centimetres, weight in kilograms. ``cbm`` is derived
    from the geometry when not declared. ``unit_count`` falls back to the
    configured default.
    """
    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    carrier_id: str
    pod_port_id: Optional[str] = None
    vessel_name: Optional[str] = None
    vessel_class: Optional[str] = None
    declared_category: Optional[str] = None

    length_cm: float = Field(ge=0)
    width_cm: float = Field(ge=0)
    height_cm: float = Field(ge=0)
    cbm: Optional[float] = Field(None, ge=0)
    weight_kg: float = Field(ge=0)
    unit_count: Optional[int] = Field(None, gt=0)

    flags: CargoFlags = Field(default_factory=CargoFlags)
    basic_freight_amount: Optional[float] = Field(None, ge=0)
    loading_meters: Optional[float] = Field(None, ge=0)

    @field_validator("pod_port_id", "vessel_name", "vessel_class", "declared_category", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None or str(value).strip() == "":
            return None
        return value

    @field_validator("flags", mode="before")
    @classmethod
    def _none_flags(cls, value: Any) -> Any:
        return CargoFlags() if value is None else value


class MatchContext(BaseModel):
    """Immutable, normalized view of one cargo line at one evaluation date.

    The context is progressively enriched by the pipeline with
    ``model_copy(update=...)``; the declared geometry never changes.

    Attributes:
        carrier_id: Carrier whose rules are evaluated
        as_of: Evaluation date
        pod_port_id: Normalized port of discharge
        port_group_ids: Active port groups the port belongs to
        vessel_name: Normalized vessel name
        vessel_class: Normalized vessel class
        vehicle_category: Declared or classified vehicle category
        category_group_id: Resolved category group of the vehicle category
        length_cm: Declared length
        width_cm: Declared width
        height_cm: Declared height
        cbm: Declared or derived volume
        weight_kg: Declared weight
        unit_count: Number of identical units on the line
        flags: Cargo declarations
        basic_freight_amount: Basic freight used by percent-of-freight surcharges
        base_lm: Loading meters before any transform
        working_lm: Loading meters used for pricing (after transforms)
    """
    model_config = ConfigDict(frozen=True)

    carrier_id: str
    as_of: date
    pod_port_id: Optional[str] = None
    port_group_ids: FrozenSet[int] = frozenset()
    vessel_name: Optional[str] = None
    vessel_class: Optional[str] = None
    vehicle_category: Optional[str] = None
    category_group_id: Optional[int] = None

    length_cm: float = Field(ge=0)
    width_cm: float = Field(ge=0)
    height_cm: float = Field(ge=0)
    cbm: float = Field(ge=0)
    weight_kg: float = Field(ge=0)
    unit_count: int = Field(1, gt=0)

    flags: CargoFlags = Field(default_factory=CargoFlags)
    basic_freight_amount: Optional[float] = Field(None, ge=0)

    base_lm: float = Field(ge=0)
    working_lm: float = Field(ge=0)

    @field_validator("pod_port_id", "vessel_name", "vessel_class", "vehicle_category", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> Optional[str]:
        if value is None or str(value).strip() == "":
            return None
        return normalize_code(value)
