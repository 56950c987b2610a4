"""Exceptions raised by the survival engine."""


class SurvivalError(Exception):
    """Base class for engine errors."""


class UnknownStratumError(SurvivalError, KeyError):
    """No curve exists for the requested stratum (never observed, or its pipeline failed)."""

    def __init__(self, stratum):
        self.stratum = stratum
        super().__init__(stratum)

    def __str__(self):
        return f"no survival curve for stratum {self.stratum!r}"


class InvalidQueryError(SurvivalError, ValueError):
    """Query arguments out of range (negative tenure, t < t0, horizon <= 0, bad key arity)."""


class SchemaError(SurvivalError, ValueError):
    """Input frame is missing required columns."""
