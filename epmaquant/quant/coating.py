"""
Conductive coatings on standards and unknowns.

Insulating samples are coated with a thin conductive film (usually carbon)
that absorbs part of the emitted x-rays on the way to the detector. The
transmission through a coating of mass-thickness rho*z (g/cm^2) is

    T = exp(-(mu/rho) * rho*z / sin(take-off angle))

and the ratio ``T_unk / T_std`` enters the k-ratio of every transition.
"""

from dataclasses import dataclass
import math

from epmaquant.atomic.elements import ElementLike
from epmaquant.atomic.structures import XRayTransition
from epmaquant.core.exceptions import InvalidConfigurationError
from epmaquant.material.composition import Composition
from epmaquant.quant.conditions import MeasurementConditions
from epmaquant.quant.mac import MassAbsorptionCoefficient

# Typical evaporated carbon coating: 20 nm at 2.0 g/cm^3
DEFAULT_CARBON_MASS_THICKNESS = 4.0e-6  # g/cm^2


@dataclass(frozen=True)
class ConductiveCoating:
    """
    A homogeneous coating film.

    Attributes
    ----------
    composition : Composition
        Coating material
    mass_thickness : float
        rho*z in g/cm^2
    """

    composition: Composition
    mass_thickness: float

    def __post_init__(self):
        if self.mass_thickness < 0.0:
            raise InvalidConfigurationError(
                f"Coating mass-thickness must be >= 0, got {self.mass_thickness}"
            )

    @classmethod
    def of_element(cls, element: ElementLike, mass_thickness: float) -> "ConductiveCoating":
        return cls(Composition.pure(element), mass_thickness)

    @classmethod
    def carbon(cls, mass_thickness: float = DEFAULT_CARBON_MASS_THICKNESS) -> "ConductiveCoating":
        return cls.of_element("C", mass_thickness)

    def transmission(
        self,
        xrt: XRayTransition,
        conditions: MeasurementConditions,
        mac: MassAbsorptionCoefficient,
    ) -> float:
        """Fraction of ``xrt`` photons leaving the sample that pass the coating."""
        chi = mac.compute(self.composition, xrt) * conditions.csc_take_off
        return math.exp(-chi * self.mass_thickness)

    def __str__(self) -> str:
        name = self.composition.name or "coating"
        return f"{name} ({self.mass_thickness:.3g} g/cm^2)"
