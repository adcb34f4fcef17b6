"""Exception hierarchy of the carrier rule engine."""

from typing import Optional


class CarrierRuleError(Exception):
    """Base class for every error raised by the rule engine."""


class ConfigurationError(CarrierRuleError):
    """A rule record is misconfigured and must be excluded from the snapshot.

    Attributes:
        table: Rule table the record belongs to
        rule_id: Identifier of the offending record, if known
        reason: Human-readable description of the problem
    """

    def __init__(self, table: str, rule_id: Optional[int], reason: str):
        self.table = table
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"{table}[{rule_id}]: {reason}")


class UnclassifiedError(CarrierRuleError):
    """No vehicle category was declared and no classification band matched."""


class MissingBasisError(CarrierRuleError):
    """A surcharge needs a calculation basis the request did not provide."""


class InvalidInputError(CarrierRuleError):
    """The evaluation request is malformed (negative geometry, bad unit count, ...)."""


class SnapshotNotFoundError(CarrierRuleError):
    """The rule repository holds no rules for the requested carrier."""
