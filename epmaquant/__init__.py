"""
epmaquant: composition of bulk and layered samples from EPMA/EDS k-ratios

Iterative matrix-corrected quantification against standards, with rules for
unmeasured elements (oxygen by stoichiometry, element by difference) and a
thin film solver for layer mass-thicknesses.
"""

__version__ = "0.1.0"

# Core imports for convenience
from epmaquant.core import constants
from epmaquant.atomic.elements import as_element
from epmaquant.material.composition import Composition
from epmaquant.quant.conditions import MeasurementConditions
from epmaquant.quant.kratio import KRatioSet
from epmaquant.quant.solver import CompositionFromKRatios, QuantResult

__all__ = [
    "constants",
    "as_element",
    "Composition",
    "MeasurementConditions",
    "KRatioSet",
    "CompositionFromKRatios",
    "QuantResult",
]
