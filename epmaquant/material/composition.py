"""
Immutable material compositions.

A :class:`Composition` maps elements to mass fractions carrying an
uncertainty (``uncertainties`` UFloat). The sum of the mass fractions is not
forced to 1.0: an analytical total above or below unity is meaningful in
quantitative microanalysis, so normalized values are derived on demand.

Every "modifying" operation returns a new object, which lets the iterative
solvers thread the current estimate through the loop without shared state.
"""

from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union
import warnings

import numpy as np
from uncertainties import UFloat, ufloat

from epmaquant.atomic.elements import Element, ElementLike, as_element

Number = Union[float, int, UFloat]


def to_ufloat(value: Number, uncertainty: float = 0.0) -> UFloat:
    """
    Convert a plain number (or a UFloat) into a UFloat.

    Exact values (zero uncertainty) are common here, so the warning
    ``uncertainties`` issues for them is suppressed.
    """
    if isinstance(value, UFloat):
        return value
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", message=".*std_dev==0", category=UserWarning)
        return ufloat(float(value), float(uncertainty))


class Composition:
    """
    An element to mass fraction map.

    Parameters
    ----------
    mass_fractions : mapping
        Element (or symbol / Z) to mass fraction (float or UFloat)
    name : str, optional
        Material name
    """

    def __init__(
        self, mass_fractions: Optional[Mapping[ElementLike, Number]] = None, name: Optional[str] = None
    ):
        fractions: Dict[Element, UFloat] = {}
        for elm, value in (mass_fractions or {}).items():
            fractions[as_element(elm)] = to_ufloat(value)
        self._fractions: Dict[Element, UFloat] = dict(sorted(fractions.items()))
        self._name = name

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def pure(cls, element: ElementLike) -> "Composition":
        """A pure element with mass fraction 1.0."""
        elm = as_element(element)
        return cls({elm: 1.0}, name=f"Pure {elm.symbol}")

    @classmethod
    def from_stoichiometry(
        cls, atoms: Mapping[ElementLike, float], name: Optional[str] = None
    ) -> "Composition":
        """
        Build a normalized composition from atom counts (e.g. {'Al': 2, 'O': 3}).

        Raises
        ------
        ValueError
            If any count is negative or all counts are zero
        """
        masses: Dict[Element, float] = {}
        for elm, n in atoms.items():
            if n < 0:
                raise ValueError(f"Negative atom count for {elm}: {n}")
            e = as_element(elm)
            masses[e] = n * e.atomic_weight
        total = sum(masses.values())
        if total <= 0.0:
            raise ValueError("Stoichiometry must contain at least one atom")
        return cls({e: m / total for e, m in masses.items()}, name=name)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        if self._name:
            return self._name
        return "".join(e.symbol for e in self._fractions) or "Empty"

    @property
    def elements(self) -> List[Element]:
        """Elements in order of atomic number."""
        return list(self._fractions)

    def sum_weight_fraction_u(self) -> UFloat:
        return sum(self._fractions.values(), to_ufloat(0.0))

    def sum_weight_fraction(self) -> float:
        """Un-normalized analytical total."""
        return sum(v.nominal_value for v in self._fractions.values())

    def weight_fraction_u(self, element: ElementLike, normalized: bool = False) -> UFloat:
        """
        Mass fraction with uncertainty.

        Elements not present return zero. Normalization divides value and
        uncertainty by the nominal analytical total.
        """
        value = self._fractions.get(as_element(element))
        if value is None:
            return to_ufloat(0.0)
        if normalized:
            total = self.sum_weight_fraction()
            if total > 0.0:
                return value / total
        return value

    def weight_fraction(self, element: ElementLike, normalized: bool = False) -> float:
        return self.weight_fraction_u(element, normalized).nominal_value

    def atomic_fraction(self, element: ElementLike) -> float:
        """Atomic (mole) fraction derived from the normalized mass fractions."""
        return self.atomic_fractions().get(as_element(element), 0.0)

    def atomic_fractions(self) -> Dict[Element, float]:
        elements = self.elements
        moles = self._nominal() / np.array([e.atomic_weight for e in elements])
        total = moles.sum()
        if total <= 0.0:
            return {e: 0.0 for e in elements}
        return dict(zip(elements, (moles / total).tolist()))

    def _nominal(self) -> np.ndarray:
        """Non-negative nominal mass fractions in atomic number order."""
        return np.clip([v.nominal_value for v in self._fractions.values()], 0.0, None)

    def mean_atomic_number(self) -> float:
        """Mass-fraction weighted mean Z."""
        total = self.sum_weight_fraction()
        if total <= 0.0:
            return 0.0
        z = np.array([e.atomic_number for e in self._fractions], dtype=float)
        nominal = np.array([v.nominal_value for v in self._fractions.values()])
        return float(np.dot(z, nominal) / total)

    # ------------------------------------------------------------------
    # Functional updates
    # ------------------------------------------------------------------

    def normalized(self) -> "Composition":
        """A copy whose mass fractions sum to 1.0 (unchanged if the total is not positive)."""
        total = self.sum_weight_fraction()
        if total <= 0.0:
            return self
        return Composition({e: v / total for e, v in self._fractions.items()}, self._name)

    def with_element(self, element: ElementLike, value: Number) -> "Composition":
        """A copy with ``element`` set to ``value`` (added or replaced)."""
        fractions = dict(self._fractions)
        fractions[as_element(element)] = to_ufloat(value)
        return Composition(fractions, self._name)

    def without_element(self, element: ElementLike) -> "Composition":
        fractions = dict(self._fractions)
        fractions.pop(as_element(element), None)
        return Composition(fractions, self._name)

    def renamed(self, name: str) -> "Composition":
        return Composition(self._fractions, name)

    # ------------------------------------------------------------------
    # Conversion / dunder
    # ------------------------------------------------------------------

    def as_dict(self, normalized: bool = False) -> Dict[str, float]:
        """Symbol to nominal mass fraction."""
        return {e.symbol: self.weight_fraction(e, normalized) for e in self._fractions}

    def items(self) -> Iterator[Tuple[Element, UFloat]]:
        return iter(self._fractions.items())

    def __contains__(self, element: object) -> bool:
        try:
            return as_element(element) in self._fractions  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False

    def __iter__(self) -> Iterator[Element]:
        return iter(self._fractions)

    def __len__(self) -> int:
        return len(self._fractions)

    def _key(self):
        return tuple(
            (e.atomic_number, v.nominal_value, v.std_dev) for e, v in self._fractions.items()
        )

    def __eq__(self, other: object) -> bool:
        # UFloat equality compares correlations, so compare value and sigma instead
        if not isinstance(other, Composition):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        body = ", ".join(f"{e.symbol}={v.nominal_value:.4f}" for e, v in self._fractions.items())
        return f"Composition({self.name}: {body})"
