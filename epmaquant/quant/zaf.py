"""
Standard-side caching of matrix corrections.

:class:`ComputeZAF` evaluates ``C_std * ZAF_std`` once per transition when a
standard is registered. Every later evaluation for an unknown only computes
the unknown side, which matters when thousands of map pixels are quantified
against the same standards. A conductive coating on the standard or the
unknown contributes its transmission to the respective side.

Concurrency
-----------
The cache is read-only once every :meth:`ComputeZAF.add_standard` call has
completed. Register all standards before sharing an instance between
concurrent readers; no locking is performed. Unknown-side evaluations use
:meth:`CorrectionAlgorithm.zaf`, which keeps no per-call state on the
shared correction algorithm.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from epmaquant.atomic.structures import XRayTransition, XRayTransitionSet
from epmaquant.core.constants import DEFAULT_ZAF_MIN_WEIGHT
from epmaquant.core.exceptions import (
    InvalidConfigurationError,
    MissingAlgorithmError,
    MissingStandardError,
)
from epmaquant.core.logging_config import get_logger
from epmaquant.core.strategy import AlgorithmRole, AlgorithmUser, Strategy
from epmaquant.material.composition import Composition
from epmaquant.quant.coating import ConductiveCoating
from epmaquant.quant.conditions import MeasurementConditions
from epmaquant.quant.correction import CorrectionAlgorithm, PhilibertCorrection
from epmaquant.quant.mac import MassAbsorptionCoefficient

logger = get_logger("quant.zaf")


@dataclass
class ZAFRatio:
    """
    Weighted ``ZAF_unk / (C_std * ZAF_std)`` for one transition set.

    Attributes
    ----------
    value : float
        The ratio
    n_used : int
        Number of transitions that contributed
    skipped : list of str
        Reasons transitions were dropped
    fallback : bool
        True when no transition could be evaluated and ``1 / C_std`` was used
    """

    value: float
    n_used: int
    skipped: List[str] = field(default_factory=list)
    fallback: bool = False


@dataclass
class _StandardEntry:
    composition: Composition
    conditions: MeasurementConditions
    products: Dict[XRayTransition, float]
    coating: Optional[ConductiveCoating] = None


class ComputeZAF(AlgorithmUser):
    """
    Cache of standard-side corrections keyed by transition set.

    Parameters
    ----------
    min_weight : float
        Transitions whose family-normalized weight is below this are ignored
    strategy : Strategy, optional
        Overrides the default CORRECTION (and dependent) algorithms

    Notes
    -----
    Coating transmissions use the MASS_ABSORPTION algorithm registered here
    with :meth:`set_algorithm`, or else the one the correction algorithm uses.
    """

    def __init__(self, min_weight: float = DEFAULT_ZAF_MIN_WEIGHT, strategy: Optional[Strategy] = None):
        if not 0.0 < min_weight <= 1.0:
            raise InvalidConfigurationError(f"min_weight must be in (0, 1], got {min_weight}")
        super().__init__(strategy)
        self.min_weight = min_weight
        self._standards: Dict[XRayTransitionSet, _StandardEntry] = {}

    def default_strategy(self) -> Strategy:
        return Strategy({AlgorithmRole.CORRECTION: PhilibertCorrection()})

    @property
    def correction(self) -> CorrectionAlgorithm:
        return self.require_algorithm(AlgorithmRole.CORRECTION)

    def mass_absorption(self) -> MassAbsorptionCoefficient:
        """
        MAC used for coating transmissions.

        Raises
        ------
        MissingAlgorithmError
            If neither this object nor its correction has a MASS_ABSORPTION algorithm
        """
        mac = self.get_algorithm(AlgorithmRole.MASS_ABSORPTION)
        if mac is None:
            mac = self.correction.get_algorithm(AlgorithmRole.MASS_ABSORPTION)
        if mac is None:
            raise MissingAlgorithmError(
                "Coating transmission requires an algorithm for MASS_ABSORPTION"
            )
        return mac

    def _transmission(
        self,
        coating: Optional[ConductiveCoating],
        xrt: XRayTransition,
        conditions: MeasurementConditions,
    ) -> float:
        if coating is None:
            return 1.0
        return coating.transmission(xrt, conditions, self.mass_absorption())

    def dominant_transitions(self, xrts: XRayTransitionSet) -> List[XRayTransition]:
        """Transitions of ``xrts`` with normalized weight >= ``min_weight``."""
        return [xrt for xrt in xrts if xrts.normalized_weight(xrt) >= self.min_weight]

    def add_standard(
        self,
        xrts: XRayTransitionSet,
        composition: Composition,
        conditions: MeasurementConditions,
        coating: Optional[ConductiveCoating] = None,
    ) -> None:
        """
        Register (or replace) the standard used for ``xrts``.

        The cached product is ``C_std * ZAF_std * T_std`` where ``T_std`` is
        the transmission through the standard's coating.

        Raises
        ------
        InvalidConfigurationError
            If the standard does not contain the element
        """
        elm = xrts.element
        c_std = composition.weight_fraction(elm)
        if c_std <= 0.0:
            raise InvalidConfigurationError(
                f"Standard {composition.name} for {xrts.name} contains no {elm.symbol}"
            )
        ca = self.correction
        products: Dict[XRayTransition, float] = {}
        for xrt in self.dominant_transitions(xrts):
            tr_std = self._transmission(coating, xrt, conditions)
            outcome = ca.try_zaf(composition, xrt, conditions)
            if outcome.ok:
                products[xrt] = outcome.value * c_std * tr_std
            else:
                logger.warning(
                    f"Standard correction for {xrt} in {composition.name} failed "
                    f"({outcome.message}); using C_std alone"
                )
                products[xrt] = c_std * tr_std
        self._standards[xrts] = _StandardEntry(composition, conditions, products, coating)
        logger.debug(f"Cached standard {composition.name} for {xrts.name}")

    def has_standard(self, xrts: XRayTransitionSet) -> bool:
        return xrts in self._standards

    def standards(self) -> List[XRayTransitionSet]:
        return sorted(self._standards)

    def standard_composition(self, xrts: XRayTransitionSet) -> Composition:
        return self._entry(xrts).composition

    def standard_conditions(self, xrts: XRayTransitionSet) -> MeasurementConditions:
        return self._entry(xrts).conditions

    def standard_coating(self, xrts: XRayTransitionSet) -> Optional[ConductiveCoating]:
        return self._entry(xrts).coating

    def _entry(self, xrts: XRayTransitionSet) -> _StandardEntry:
        try:
            return self._standards[xrts]
        except KeyError:
            raise MissingStandardError(f"No standard has been registered for {xrts.name}") from None

    def compute_detailed(
        self,
        xrts: XRayTransitionSet,
        unknown: Composition,
        conditions: MeasurementConditions,
        coating: Optional[ConductiveCoating] = None,
    ) -> ZAFRatio:
        """
        Compute ``Σw·ZAF_unk·T_unk/(C_std·ZAF_std·T_std) / Σw`` with diagnostics.

        ``coating`` is the coating on the unknown.

        Raises
        ------
        MissingStandardError
            If no standard is registered for ``xrts``
        ConditionMismatchError
            If ``conditions`` do not match the standard's
        """
        entry = self._entry(xrts)
        entry.conditions.check_matches(conditions, xrts.name)
        c_std = entry.composition.weight_fraction(xrts.element)
        if xrts.element not in unknown:
            return ZAFRatio(1.0 / c_std, 0, fallback=True)

        ca = self.correction
        weights: List[float] = []
        ratios: List[float] = []
        skipped: List[str] = []
        for xrt, std_product in entry.products.items():
            outcome = ca.try_zaf(unknown, xrt, conditions)
            if outcome.ok:
                tr_unk = self._transmission(coating, xrt, conditions)
                weights.append(xrt.weight)
                ratios.append(outcome.value * tr_unk / std_product)
            else:
                skipped.append(f"{xrt}: {outcome.message}")
        if not weights or sum(weights) <= 0.0:
            return ZAFRatio(1.0 / c_std, 0, skipped, fallback=True)
        value = float(np.average(ratios, weights=weights))
        return ZAFRatio(value, len(ratios), skipped)

    def compute(
        self,
        xrts: XRayTransitionSet,
        unknown: Composition,
        conditions: MeasurementConditions,
        coating: Optional[ConductiveCoating] = None,
    ) -> float:
        """``ZAF_unk·T_unk / (C_std·ZAF_std·T_std)`` for ``xrts`` in ``unknown``."""
        return self.compute_detailed(xrts, unknown, conditions, coating).value

    def __len__(self) -> int:
        return len(self._standards)
