"""
Rules for elements that are present but not measured.

A rule takes the current composition estimate and returns a new one with its
element set from the other elements. The solvers apply the registered rules
in order once per iteration, after the measured elements have been updated.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from epmaquant.atomic.elements import H, O, Element, ElementLike, as_element
from epmaquant.core.exceptions import InvalidConfigurationError
from epmaquant.material.composition import Composition, to_ufloat
from epmaquant.material.oxidizer import Oxidizer


class UnmeasuredElementRule(ABC):
    """Computes the mass fraction of one element from the others."""

    def __init__(self, element: ElementLike):
        self._element = as_element(element)

    @property
    def element(self) -> Element:
        return self._element

    @abstractmethod
    def compute(self, comp: Composition) -> Composition:
        """Return ``comp`` with this rule's element recomputed."""


class ElementByDifference(UnmeasuredElementRule):
    """
    The element makes up the difference between the analytical total and 1.0.

    Nothing is added when the other elements already sum to 1.0 or more.
    """

    def compute(self, comp: Composition) -> Composition:
        res = comp.without_element(self._element)
        remainder = 1.0 - res.sum_weight_fraction_u()
        if remainder.nominal_value > 0.0:
            res = res.with_element(self._element, remainder)
        return res

    def __repr__(self) -> str:
        return f"ElementByDifference({self._element.symbol})"


class ElementByFiat(UnmeasuredElementRule):
    """Fix the element at a given mass fraction."""

    def __init__(self, element: ElementLike, value: float, uncertainty: float = 0.0):
        super().__init__(element)
        if value < 0.0:
            raise InvalidConfigurationError(f"Mass fraction by fiat must be >= 0, got {value}")
        self.value = float(value)
        self.uncertainty = float(uncertainty)

    def compute(self, comp: Composition) -> Composition:
        return comp.with_element(self._element, to_ufloat(self.value, self.uncertainty))

    def __repr__(self) -> str:
        return f"ElementByFiat({self._element.symbol}={self.value})"


class OxygenByStoichiometry(UnmeasuredElementRule):
    """
    O assigned to the cations as their oxides.

    Parameters
    ----------
    elements : iterable of elements, optional
        Cations expected in the material (informational; all cations in the
        composition are oxidized)
    oxidizer : Oxidizer, optional
        Oxidation states; defaults to :class:`Oxidizer` with common valences
    """

    def __init__(
        self, elements: Optional[Iterable[ElementLike]] = None, oxidizer: Optional[Oxidizer] = None
    ):
        super().__init__(O)
        self.elements = sorted(as_element(e) for e in (elements or []))
        self.oxidizer = oxidizer if oxidizer is not None else Oxidizer()

    def compute(self, comp: Composition) -> Composition:
        return self.oxidizer.compute(comp)

    def describe(self):
        """(element, oxide name) for every listed cation."""
        return [(e.symbol, self.oxidizer.oxide(e).name) for e in self.elements if e != O]

    def __repr__(self) -> str:
        return "OxygenByStoichiometry()"


class WatersOfCrystallization(OxygenByStoichiometry):
    """
    Measured O in excess of the stoichiometric O is assigned to water.

    H = 2 A(H) / A(O) * (O_measured - O_stoichiometric), added only when the
    excess is positive.
    """

    def __init__(
        self, elements: Optional[Iterable[ElementLike]] = None, oxidizer: Optional[Oxidizer] = None
    ):
        super().__init__(elements, oxidizer)
        self._element = H

    def compute(self, comp: Composition) -> Composition:
        res = comp.without_element(H)
        excess = comp.weight_fraction_u(O) - self.oxidizer.oxygen_u(res)
        if excess.nominal_value > 0.0:
            res = res.with_element(H, (2.0 * H.atomic_weight / O.atomic_weight) * excess)
        return res

    def __repr__(self) -> str:
        return "WatersOfCrystallization()"


def create_rule(entry: dict) -> UnmeasuredElementRule:
    """
    Build a rule from a config entry.

    Examples
    --------
    ``{'type': 'difference', 'element': 'Fe'}``,
    ``{'type': 'fiat', 'element': 'C', 'value': 0.01}``,
    ``{'type': 'oxygen_stoichiometry', 'elements': ['Si', 'Al'], 'oxidation_states': {'Fe': 2}}``
    """
    kind = entry.get("type")
    if kind == "difference":
        return ElementByDifference(entry["element"])
    if kind == "fiat":
        return ElementByFiat(entry["element"], entry["value"], entry.get("uncertainty", 0.0))
    if kind in ("oxygen_stoichiometry", "waters_of_crystallization"):
        oxidizer = Oxidizer(entry.get("oxidation_states"))
        cls = OxygenByStoichiometry if kind == "oxygen_stoichiometry" else WatersOfCrystallization
        return cls(entry.get("elements"), oxidizer)
    raise InvalidConfigurationError(f"Unknown unmeasured element rule: {kind!r}")
