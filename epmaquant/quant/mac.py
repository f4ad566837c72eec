"""
Mass absorption coefficients.

Implementations supply mu/rho (cm^2/g) of a pure element for a given x-ray
transition; the mixture rule for a composition is shared.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from epmaquant.atomic.elements import Element, ElementLike, as_element
from epmaquant.atomic.structures import LineFamily, XRayTransition
from epmaquant.core.exceptions import InvalidConfigurationError
from epmaquant.material.composition import Composition


class MassAbsorptionCoefficient(ABC):
    """
    Abstract source of mass absorption coefficients.
    """

    @abstractmethod
    def compute_element(self, absorber: Element, xrt: XRayTransition) -> float:
        """mu/rho of ``xrt`` in the pure element ``absorber`` (cm^2/g)."""

    def compute(self, comp: Composition, xrt: XRayTransition) -> float:
        """
        mu/rho of ``xrt`` in ``comp`` by the normalized mass-fraction mixture rule.
        """
        total = comp.sum_weight_fraction()
        if total <= 0.0:
            return 0.0
        return sum(
            max(value.nominal_value, 0.0) * self.compute_element(elm, xrt)
            for elm, value in comp.items()
        ) / total


@dataclass(frozen=True)
class ConstantMAC(MassAbsorptionCoefficient):
    """Every absorber has the same mu/rho."""

    value: float

    def __post_init__(self):
        if self.value < 0.0:
            raise InvalidConfigurationError(f"Mass absorption coefficient must be >= 0: {self.value}")

    def compute_element(self, absorber: Element, xrt: XRayTransition) -> float:
        return self.value


class TabulatedMAC(MassAbsorptionCoefficient):
    """
    Mass absorption coefficients looked up in a user table.

    Parameters
    ----------
    table : mapping
        ``{(emitter, family): {absorber: mu_rho}}``; emitter and absorber may
        be Elements or symbols and family a LineFamily or 'K'/'L'/'M'/'N'
    default : float, optional
        Value used for missing entries; without it a missing entry raises
    """

    def __init__(
        self,
        table: Mapping[Tuple[ElementLike, object], Mapping[ElementLike, float]],
        default: Optional[float] = None,
    ):
        self._table: Dict[Tuple[Element, LineFamily, Element], float] = {}
        for (emitter, family), row in table.items():
            fam = LineFamily[family.upper()] if isinstance(family, str) else LineFamily(family)
            for absorber, value in row.items():
                if value < 0.0:
                    raise InvalidConfigurationError(
                        f"Mass absorption coefficient must be >= 0: {emitter} {fam.name} in {absorber}"
                    )
                self._table[(as_element(emitter), fam, as_element(absorber))] = float(value)
        self.default = default

    def compute_element(self, absorber: Element, xrt: XRayTransition) -> float:
        key = (xrt.element, xrt.family, absorber)
        if key in self._table:
            return self._table[key]
        if self.default is None:
            raise InvalidConfigurationError(
                f"No mass absorption coefficient for {xrt.element.symbol} {xrt.family.name} in {absorber.symbol}"
            )
        return self.default

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        return f"TabulatedMAC({len(self._table)} entries, default={self.default})"
