"""
Quantification: matrix corrections, iteration and solvers.

This module provides:
- Measurement conditions and k-ratio sets
- Matrix correction algorithms and mass absorption coefficients
- Iteration schemes and unmeasured-element rules
- Bulk, batch and layered (thin film) solvers
"""

from epmaquant.quant.conditions import MeasurementConditions
from epmaquant.quant.kratio import KRatioSet
from epmaquant.quant.mac import ConstantMAC, MassAbsorptionCoefficient, TabulatedMAC
from epmaquant.quant.coating import ConductiveCoating
from epmaquant.quant.correction import (
    CorrectionAlgorithm,
    CorrectionContext,
    CorrectionOutcome,
    NullCorrection,
    PhilibertCorrection,
    create_correction,
)
from epmaquant.quant.iteration import (
    IterationAlgorithm,
    SimpleIteration,
    WegsteinIteration,
    create_iteration,
)
from epmaquant.quant.rules import (
    UnmeasuredElementRule,
    ElementByDifference,
    ElementByFiat,
    OxygenByStoichiometry,
    WatersOfCrystallization,
    create_rule,
)
from epmaquant.quant.zaf import ComputeZAF, ZAFRatio
from epmaquant.quant.solver import CompositionFromKRatios, QuantResult
from epmaquant.quant.layered import (
    LayerResult,
    LayeredResult,
    STEMinSEMCorrection,
    assign_layers,
)
from epmaquant.quant.batch import BatchResult, quantify_map

__all__ = [
    "MeasurementConditions",
    "KRatioSet",
    "ConstantMAC",
    "MassAbsorptionCoefficient",
    "TabulatedMAC",
    "ConductiveCoating",
    "CorrectionAlgorithm",
    "CorrectionContext",
    "CorrectionOutcome",
    "NullCorrection",
    "PhilibertCorrection",
    "create_correction",
    "IterationAlgorithm",
    "SimpleIteration",
    "WegsteinIteration",
    "create_iteration",
    "UnmeasuredElementRule",
    "ElementByDifference",
    "ElementByFiat",
    "OxygenByStoichiometry",
    "WatersOfCrystallization",
    "create_rule",
    "ComputeZAF",
    "ZAFRatio",
    "CompositionFromKRatios",
    "QuantResult",
    "LayerResult",
    "LayeredResult",
    "STEMinSEMCorrection",
    "assign_layers",
    "BatchResult",
    "quantify_map",
]
