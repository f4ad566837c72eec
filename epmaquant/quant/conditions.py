"""
Measurement conditions shared by standards and unknowns.
"""

from dataclasses import dataclass
import math

from epmaquant.core.constants import BEAM_ENERGY_TOLERANCE_KEV, TAKE_OFF_ANGLE_TOLERANCE_DEG
from epmaquant.core.exceptions import ConditionMismatchError, InvalidConfigurationError


@dataclass(frozen=True)
class MeasurementConditions:
    """
    Beam energy and detector geometry of one acquisition.

    Attributes
    ----------
    beam_energy_keV : float
        Incident electron energy E0 in keV
    take_off_angle_deg : float
        Detector take-off angle in degrees
    """

    beam_energy_keV: float
    take_off_angle_deg: float

    def __post_init__(self):
        if self.beam_energy_keV <= 0.0:
            raise InvalidConfigurationError(
                f"Beam energy must be positive, got {self.beam_energy_keV} keV"
            )
        if not 0.0 < self.take_off_angle_deg < 90.0:
            raise InvalidConfigurationError(
                f"Take-off angle must be between 0 and 90 degrees, got {self.take_off_angle_deg}"
            )

    @property
    def take_off_angle_rad(self) -> float:
        return math.radians(self.take_off_angle_deg)

    @property
    def csc_take_off(self) -> float:
        """1/sin(take-off angle), the path-length factor for absorption."""
        return 1.0 / math.sin(self.take_off_angle_rad)

    def matches(self, other: "MeasurementConditions") -> bool:
        return (
            abs(self.beam_energy_keV - other.beam_energy_keV) <= BEAM_ENERGY_TOLERANCE_KEV
            and abs(self.take_off_angle_deg - other.take_off_angle_deg)
            <= TAKE_OFF_ANGLE_TOLERANCE_DEG
        )

    def check_matches(self, other: "MeasurementConditions", context: str = "") -> None:
        """
        Raise if ``other`` was not measured under the same conditions.

        Raises
        ------
        ConditionMismatchError
            If beam energy differs by more than 0.01 keV or the take-off angle
            by more than 1 degree
        """
        if not self.matches(other):
            where = f" for {context}" if context else ""
            raise ConditionMismatchError(
                f"Measurement conditions differ{where}: "
                f"E0 {self.beam_energy_keV} vs {other.beam_energy_keV} keV, "
                f"TOA {self.take_off_angle_deg} vs {other.take_off_angle_deg} deg"
            )

    def __str__(self) -> str:
        return f"E0={self.beam_energy_keV:g} keV, TOA={self.take_off_angle_deg:g} deg"
