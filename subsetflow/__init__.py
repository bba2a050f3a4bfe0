"""SubsetFlow - consistent subset imports between Oracle databases."""

__version__ = "0.1.0"
__package_name__ = "subsetflow"

# Initialize logging with default configuration
from subsetflow.logging import configure_logging

configure_logging()

from .exceptions import (
    FatalRunError,
    PlanValidationError,
    ProfileError,
    StatementError,
    SubsetFlowError,
)

__all__ = [
    "SubsetFlowError",
    "FatalRunError",
    "StatementError",
    "PlanValidationError",
    "ProfileError",
]
