"""
Exception hierarchy for quantification.

Configuration errors abort the computation they are raised in. Numeric domain
errors describe a single correction evaluation that could not be performed and
are usually converted into warnings by the solvers.
"""


class QuantificationError(Exception):
    """Base class for all quantification errors."""


class InvalidConfigurationError(QuantificationError, ValueError):
    """The inputs or algorithm setup make the calculation meaningless."""


class MissingAlgorithmError(InvalidConfigurationError):
    """A required algorithm role has no registered implementation."""


class MissingStandardError(InvalidConfigurationError):
    """An element has neither a standard, a k-ratio nor an unmeasured-element rule."""


class ConditionMismatchError(InvalidConfigurationError):
    """Standard and unknown were not measured under matching conditions."""


class LayerAssignmentError(InvalidConfigurationError):
    """Elements are not assigned consistently to the layers of a thin-film model."""


class CorrectionDomainError(QuantificationError, ArithmeticError):
    """A correction could not be evaluated for physical reasons (e.g. U0 <= 1)."""
