"""
Iteration schemes for the fixed-point composition solver.

Each step receives, for every measured transition set, the ratio
``ZAF_unk / (C_std * ZAF_std)`` evaluated at the current estimate and returns
the next estimate of the measured mass fractions.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import numpy as np

from epmaquant.atomic.structures import XRayTransitionSet
from epmaquant.core.constants import MASS_FRACTION_MAX, MASS_FRACTION_MIN
from epmaquant.core.exceptions import InvalidConfigurationError
from epmaquant.material.composition import Composition
from epmaquant.quant.kratio import KRatioSet

ZAFMap = Dict[XRayTransitionSet, float]


def bound(value: float, lower: float = MASS_FRACTION_MIN, upper: float = MASS_FRACTION_MAX) -> float:
    return float(np.clip(value, lower, upper))


class IterationAlgorithm(ABC):
    """
    Base class for iteration schemes.

    Call :meth:`initialize` once per solve, then :meth:`compute` once per
    iteration.
    """

    name = "abstract"

    def __init__(self):
        self._desired: Optional[KRatioSet] = None
        self._history: List[Composition] = []

    def initialize(self, desired: KRatioSet, estimate: Composition) -> None:
        self._desired = desired
        self._history = [estimate]

    @property
    def history(self) -> List[Composition]:
        return list(self._history)

    def previous_estimate(self) -> Composition:
        return self._history[-1]

    @abstractmethod
    def _perform(self, zaf_map: ZAFMap) -> Composition:
        """Next estimate of the measured elements."""

    def compute(self, zaf_map: ZAFMap) -> Composition:
        if self._desired is None:
            raise InvalidConfigurationError(f"{type(self).__name__} used before initialize()")
        res = self._perform(zaf_map)
        self._history.append(res)
        return res

    def _simple_step(self, zaf_map: ZAFMap) -> Composition:
        # C = k / (ZAF_unk / (C_std * ZAF_std))
        return Composition(
            {
                xrts.element: bound(self._desired.kratio(xrts) / zaf_map[xrts])
                for xrts in self._desired
                if xrts in zaf_map
            }
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SimpleIteration(IterationAlgorithm):
    """Successive approximation, C(n+1) = k / zaf_ratio(C(n))."""

    name = "simple"

    def _perform(self, zaf_map: ZAFMap) -> Composition:
        return self._simple_step(zaf_map)


class WegsteinIteration(IterationAlgorithm):
    """
    Wegstein's first-order accelerated iteration.

    Falls back to a simple step for the first two iterations and whenever the
    secant estimate of the derivative is unreliable (Springer's damping).
    """

    name = "wegstein"

    DERIVATIVE_RATIO = 10.0
    MIN_DENOMINATOR = 0.2

    def initialize(self, desired: KRatioSet, estimate: Composition) -> None:
        super().initialize(desired, estimate)
        self._history = []
        self._previous_map: Optional[ZAFMap] = None

    def _perform(self, zaf_map: ZAFMap) -> Composition:
        if len(self._history) < 2 or self._previous_map is None:
            res = self._simple_step(zaf_map)
        else:
            comp_n, comp_nm1 = self._history[-1], self._history[-2]
            fractions = {}
            for xrts in self._desired:
                if xrts not in zaf_map:
                    continue
                elm = xrts.element
                ka = self._desired.kratio(xrts)
                c_n = comp_n.weight_fraction(elm)
                c_nm1 = comp_nm1.weight_fraction(elm)
                f_n = 1.0 / zaf_map[xrts]
                prev = self._previous_map.get(xrts)
                if prev is not None and self.DERIVATIVE_RATIO * abs(c_n - c_nm1) > abs(
                    f_n - 1.0 / prev
                ):
                    slope = (f_n - 1.0 / prev) / (c_n - c_nm1)
                    den = 1.0 - ka * slope
                    if abs(den) > self.MIN_DENOMINATOR:
                        value = c_n + (ka * f_n - c_n) / den
                    else:
                        value = ka * f_n
                else:
                    value = ka * f_n
                fractions[elm] = bound(value)
            res = Composition(fractions)
        self._previous_map = dict(zaf_map)
        return res


_ITERATIONS = {
    SimpleIteration.name: SimpleIteration,
    WegsteinIteration.name: WegsteinIteration,
}


def create_iteration(name: str) -> IterationAlgorithm:
    """Instantiate an iteration algorithm by name ('simple' or 'wegstein')."""
    key = name.strip().lower()
    if key not in _ITERATIONS:
        raise InvalidConfigurationError(
            f"Unknown iteration algorithm {name!r}. Available: {sorted(_ITERATIONS)}"
        )
    return _ITERATIONS[key]()
