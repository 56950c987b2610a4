"""Life-table survival curves, conditional survival and revenue projection for subscribers."""

from .config import Config
from .curve import SurvivalCurve
from .engine import SurvivalModel, fit
from .errors import InvalidQueryError, SchemaError, SurvivalError, UnknownStratumError
from .life_table import build_life_table

__all__ = [
    "Config", "SurvivalCurve", "SurvivalModel", "fit", "build_life_table",
    "SurvivalError", "UnknownStratumError", "InvalidQueryError", "SchemaError",
]
