"""
Core utilities.

This module provides:
- Physical constants and numerical defaults
- Configuration loading and validation
- Logging
- The exception hierarchy
- Algorithm strategies
"""

from epmaquant.core import constants
from epmaquant.core import config
from epmaquant.core import logging_config
from epmaquant.core.exceptions import (
    QuantificationError,
    InvalidConfigurationError,
    MissingAlgorithmError,
    MissingStandardError,
    ConditionMismatchError,
    LayerAssignmentError,
    CorrectionDomainError,
)
from epmaquant.core.strategy import AlgorithmRole, AlgorithmUser, Strategy

__all__ = [
    # Modules
    "constants",
    "config",
    "logging_config",
    # Exceptions
    "QuantificationError",
    "InvalidConfigurationError",
    "MissingAlgorithmError",
    "MissingStandardError",
    "ConditionMismatchError",
    "LayerAssignmentError",
    "CorrectionDomainError",
    # Strategies
    "AlgorithmRole",
    "AlgorithmUser",
    "Strategy",
]
