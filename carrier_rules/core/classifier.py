"""Classification band matcher - assigns a vehicle category from volume and height."""

from typing import Iterable, List, Optional

from carrier_rules.config.logging_config import get_logger
from carrier_rules.config.messages import ERROR_UNCLASSIFIED
from carrier_rules.core.errors import UnclassifiedError
from carrier_rules.models.context_models import MatchContext
from carrier_rules.models.schema import ClassificationBand, RuleLogic
from carrier_rules.models.utils import applicable_rules

logger = get_logger(__name__)


def band_conditions(band: ClassificationBand, context: MatchContext) -> List[bool]:
    """Evaluate the conditions a band actually sets; unset bounds are skipped."""
    conditions = []
    if band.min_cbm is not None:
        conditions.append(context.cbm >= band.min_cbm)
    if band.max_cbm is not None:
        conditions.append(context.cbm <= band.max_cbm)
    if band.max_height_cm is not None:
        conditions.append(context.height_cm <= band.max_height_cm)
    return conditions


def band_matches(band: ClassificationBand, context: MatchContext) -> bool:
    """Check whether a band's conditions hold for the context.

    AND requires every present condition, OR at least one. A band without
    any condition matches unconditionally.

    Args:
        band: Classification band
        context: Current match context

    Returns:
        True if the band matches
    """
    conditions = band_conditions(band, context)
    if not conditions:
        return True
    if band.rule_logic == RuleLogic.OR:
        return any(conditions)
    return all(conditions)


class ClassificationBandMatcher:
    """Resolve a match context to a vehicle category.

    Bands are filtered by scope and validity and tried in the shared
    comparator order; the first band whose conditions hold decides.
    """

    def __init__(self, bands: Iterable[ClassificationBand]):
        self.bands = tuple(bands)

    def match(self, context: MatchContext) -> Optional[ClassificationBand]:
        for band in applicable_rules(self.bands, context):
            if band_matches(band, context):
                logger.debug(f"Classification band {band.id} matched -> {band.outcome_vehicle_category}")
                return band
        return None

    def classify(self, context: MatchContext) -> str:
        """Return the vehicle category of the first matching band.

        Raises:
            UnclassifiedError: If no band matches
        """
        band = self.match(context)
        if band is None:
            raise UnclassifiedError(
                f"{ERROR_UNCLASSIFIED} (carrier={context.carrier_id}, cbm={context.cbm}, "
                f"height_cm={context.height_cm})"
            )
        return band.outcome_vehicle_category
