"""Context builder - normalizes raw evaluation input into a MatchContext."""

from datetime import date
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from carrier_rules.config.logging_config import get_logger
from carrier_rules.config.settings import Settings, get_settings
from carrier_rules.core.category_resolver import CategoryGroupResolver
from carrier_rules.core.errors import InvalidInputError
from carrier_rules.models.context_models import EvaluationRequest, MatchContext

logger = get_logger(__name__)


def parse_request(raw: Union[EvaluationRequest, Mapping[str, Any]]) -> EvaluationRequest:
    """Validate a raw request mapping.

    Args:
        raw: Request mapping or an already validated EvaluationRequest

    Returns:
        Validated EvaluationRequest

    Raises:
        InvalidInputError: If the request is malformed or carries negative values
    """
    if isinstance(raw, EvaluationRequest):
        return raw
    try:
        return EvaluationRequest.model_validate(raw)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid evaluation request: {e}") from e


def base_loading_meters(length_cm: float, width_cm: float, iso_width_cm: float = 250.0) -> float:
    """Compute the ISO base loading meters of a unit.

    ``(length_m * max(width_m, iso_width_m)) / iso_width_m``: a unit narrower
    than a lane still occupies the full lane.

    Args:
        length_cm: Unit length in centimetres
        width_cm: Unit width in centimetres
        iso_width_cm: Reference lane width in centimetres

    Returns:
        Loading meters
    """
    length_m = length_cm / 100.0
    width_m = width_cm / 100.0
    iso_width_m = iso_width_cm / 100.0
    return (length_m * max(width_m, iso_width_m)) / iso_width_m


def build_context(
    request: Union[EvaluationRequest, Mapping[str, Any]],
    as_of: date,
    resolver: Optional[CategoryGroupResolver] = None,
    settings: Optional[Settings] = None,
) -> MatchContext:
    """Build the immutable match context of one evaluation.

    Working LM is the declared loading meters when present, else the ISO
    base formula. The declared category (if any) is resolved to its
    category group, the port to its port groups.

    Args:
        request: Raw request mapping or validated request
        as_of: Evaluation date
        resolver: Group resolver of the carrier snapshot, if available
        settings: Settings override (defaults to the global settings)

    Returns:
        MatchContext ready for classification

    Raises:
        InvalidInputError: If the request is malformed
    """
    request = parse_request(request)
    settings = settings or get_settings()

    cbm = request.cbm
    if cbm is None:
        cbm = request.length_cm * request.width_cm * request.height_cm / 1_000_000

    if request.loading_meters is not None:
        base_lm = request.loading_meters
    else:
        base_lm = base_loading_meters(request.length_cm, request.width_cm, settings.iso_lm_width_cm)

    context = MatchContext(
        carrier_id=request.carrier_id,
        as_of=as_of,
        pod_port_id=request.pod_port_id,
        vessel_name=request.vessel_name,
        vessel_class=request.vessel_class,
        vehicle_category=request.declared_category,
        length_cm=request.length_cm,
        width_cm=request.width_cm,
        height_cm=request.height_cm,
        cbm=cbm,
        weight_kg=request.weight_kg,
        unit_count=request.unit_count or settings.default_unit_count,
        flags=request.flags,
        basic_freight_amount=request.basic_freight_amount,
        base_lm=base_lm,
        working_lm=base_lm,
    )

    if resolver is not None:
        context = resolver.enrich(context)

    logger.debug(
        f"Context built: carrier={context.carrier_id}, port={context.pod_port_id}, "
        f"category={context.vehicle_category}, lm={context.working_lm}"
    )
    return context
