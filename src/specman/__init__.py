"""SpecMan workspace auditor package root."""

from specman.exceptions import (
    ConfigurationError,
    CorpusUnavailable,
    DataModelError,
    NeverRaise,
    NeverThrown,
    SpecmanError,
)
from specman.invariants import never

__all__ = [
    "__version__",
    "ConfigurationError",
    "CorpusUnavailable",
    "DataModelError",
    "NeverRaise",
    "NeverThrown",
    "SpecmanError",
    "never",
]

__version__ = "0.1.0"
