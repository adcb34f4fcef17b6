"""Reason codes and message strings emitted by the rule engine.

Reason codes are stable identifiers returned to the quotation subsystem;
keep them centralized so callers can rely on the exact strings.
"""

# Hard ceilings
REASON_MAX_EXCEEDED = "max_{dimension}_exceeded"

# Floors
REASON_MIN_BELOW = "min_{dimension}_below"

# Operational flags
REASON_SELF_PROPELLED_REQUIRED = "must_be_self_propelled_required"
REASON_EMPTY_REQUIRED = "must_be_empty_required"
REASON_STACKED_NOT_ALLOWED = "stacked_not_allowed"
REASON_PIGGY_BACK_NOT_ALLOWED = "piggy_back_not_allowed"
REASON_ACCESSORIES_NOT_ALLOWED = "accessories_not_allowed"
REASON_FOREIGN_ACCESSORIES_NOT_ALLOWED = "foreign_accessories_not_allowed"
REASON_COMPLETE_VEHICLE_REQUIRED = "complete_vehicle_required"

# Soft limits
REASON_SOFT_APPROVAL = "soft_{dimension}_approval"
REASON_SOFT_EXCEEDED = "soft_{dimension}_exceeded"

# Surcharge review notes
NOTE_MISSING_BASIC_FREIGHT = "basic_freight_amount required for percent-of-freight surcharge"
NOTE_NO_ARTICLE_MAPPING = "no article mapping for event code"

# Errors
ERROR_UNCLASSIFIED = "No classification band matched and no vehicle category was declared"
ERROR_SNAPSHOT_NOT_FOUND = "No rule snapshot available for carrier {carrier_id}"
ERROR_INVALID_CARRIER_ID = "Invalid carrier id {carrier_id!r}: must be a plain file name"
