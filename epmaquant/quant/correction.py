"""
Matrix correction algorithms.

A :class:`CorrectionAlgorithm` reports the ratio of emitted to generated
intensity for transitions of a shell in a (composition, shell, conditions)
:class:`CorrectionContext`. :meth:`~CorrectionAlgorithm.zaf` builds a fresh
context per call and leaves the instance untouched, so one algorithm may be
shared between threads. :meth:`~CorrectionAlgorithm.initialize` binds a
context for step-by-step use. The predicted k-ratio of an unknown against a
standard is::

    k = C_unk * ZAF_unk / (C_std * ZAF_std)

Physically impossible requests (edge energy at or above the beam energy)
raise :class:`~epmaquant.core.exceptions.CorrectionDomainError`.
:meth:`~CorrectionAlgorithm.try_zaf` turns those into a
:class:`CorrectionOutcome` so callers can skip a transition instead of
aborting, while configuration errors still propagate.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import math
from typing import Dict, Mapping, Optional, Tuple

from uncertainties import UFloat

from epmaquant.atomic.structures import AtomicShell, XRayTransition
from epmaquant.core.exceptions import CorrectionDomainError, InvalidConfigurationError
from epmaquant.core.logging_config import get_logger
from epmaquant.core.strategy import AlgorithmRole, AlgorithmUser, Strategy
from epmaquant.material.composition import Composition
from epmaquant.quant.conditions import MeasurementConditions
from epmaquant.quant.mac import ConstantMAC

logger = get_logger("quant.correction")

# Philibert-Duncumb-Heinrich constants
PHILIBERT_SIGMA_NUMERATOR = 4.5e5
PHILIBERT_EXPONENT = 1.65
PHILIBERT_H_COEFF = 1.2

# Used by PhilibertCorrection when no MAC table is configured
DEFAULT_MAC_CM2_G = 100.0


@dataclass(frozen=True)
class CorrectionOutcome:
    """
    Result of a single correction evaluation.

    Attributes
    ----------
    value : float or None
        ZAF factor when the evaluation succeeded
    message : str or None
        Why the evaluation failed
    """

    value: Optional[float] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.value is not None

    @classmethod
    def success(cls, value: float) -> "CorrectionOutcome":
        return cls(value=value)

    @classmethod
    def failure(cls, message: str) -> "CorrectionOutcome":
        return cls(message=message)


@dataclass(frozen=True)
class CorrectionContext:
    """
    A material, excited shell and conditions with any derived quantities.

    Contexts are immutable so one algorithm instance can evaluate many
    contexts concurrently.
    """

    composition: Composition
    shell: AtomicShell
    conditions: MeasurementConditions
    params: Mapping[str, float] = field(default_factory=dict, compare=False)


class CorrectionAlgorithm(AlgorithmUser, ABC):
    """
    Base class for ZAF-type matrix corrections.

    Subclasses implement :meth:`_factors`, returning the atomic number,
    absorption and fluorescence factors for one transition in a
    :class:`CorrectionContext`, and may override :meth:`_prepare` to
    precompute context dependent quantities.
    """

    name = "abstract"

    def __init__(self, strategy: Optional[Strategy] = None):
        super().__init__(strategy)
        self._context: Optional[CorrectionContext] = None

    def context(
        self, comp: Composition, shell: AtomicShell, conditions: MeasurementConditions
    ) -> CorrectionContext:
        """
        Build the evaluation context for a material, shell and conditions.

        Raises
        ------
        CorrectionDomainError
            If the shell cannot be ionized at this beam energy
        InvalidConfigurationError
            If the composition does not contain the shell's element
        """
        if shell.element not in comp:
            raise InvalidConfigurationError(
                f"{comp.name} does not contain {shell.element.symbol}"
            )
        if shell.edge_energy_keV >= conditions.beam_energy_keV:
            raise CorrectionDomainError(
                f"{shell} edge ({shell.edge_energy_keV} keV) is not below "
                f"the beam energy ({conditions.beam_energy_keV} keV)"
            )
        return CorrectionContext(comp, shell, conditions, self._prepare(comp, shell, conditions))

    def _prepare(
        self, comp: Composition, shell: AtomicShell, conditions: MeasurementConditions
    ) -> Dict[str, float]:
        return {}

    def initialize(
        self, comp: Composition, shell: AtomicShell, conditions: MeasurementConditions
    ) -> bool:
        """
        Bind the algorithm to a material, excited shell and conditions.

        The bound context is used by :meth:`correction_factors` and
        :meth:`compute_zaf_correction`. :meth:`zaf` and :meth:`try_zaf` never
        touch it.

        Returns
        -------
        bool
            True if the bound context changed

        Raises
        ------
        CorrectionDomainError
            If the shell cannot be ionized at this beam energy
        InvalidConfigurationError
            If the composition does not contain the shell's element
        """
        ctx = self.context(comp, shell, conditions)
        changed = ctx != self._context
        if changed:
            self._context = ctx
        return changed

    def _require_context(self, xrt: XRayTransition) -> CorrectionContext:
        ctx = self._context
        if ctx is None:
            raise InvalidConfigurationError(f"{type(self).__name__} used before initialize()")
        if xrt.shell != ctx.shell:
            raise InvalidConfigurationError(
                f"{xrt} does not belong to the initialized shell {ctx.shell}"
            )
        return ctx

    @abstractmethod
    def _factors(self, ctx: CorrectionContext, xrt: XRayTransition) -> Tuple[float, float, float]:
        """(Z, A, F) for ``xrt`` in ``ctx``."""

    def correction_factors(self, xrt: XRayTransition) -> Tuple[float, float, float]:
        return self._factors(self._require_context(xrt), xrt)

    @staticmethod
    def _checked(zaf: float, xrt: XRayTransition) -> float:
        if not math.isfinite(zaf) or zaf <= 0.0:
            raise CorrectionDomainError(f"Non-physical ZAF correction {zaf} for {xrt}")
        return zaf

    def compute_zaf_correction(self, xrt: XRayTransition) -> float:
        """Ratio of emitted to generated intensity for ``xrt`` in the bound context."""
        z, a, f = self.correction_factors(xrt)
        return self._checked(z * a * f, xrt)

    def zaf(self, comp: Composition, xrt: XRayTransition, conditions: MeasurementConditions) -> float:
        """ZAF factor of ``xrt`` in ``comp``, evaluated in a private context."""
        ctx = self.context(comp, xrt.shell, conditions)
        z, a, f = self._factors(ctx, xrt)
        return self._checked(z * a * f, xrt)

    def try_zaf(
        self, comp: Composition, xrt: XRayTransition, conditions: MeasurementConditions
    ) -> CorrectionOutcome:
        """
        Evaluate the ZAF factor, converting domain errors into a failed outcome.
        """
        try:
            return CorrectionOutcome.success(self.zaf(comp, xrt, conditions))
        except CorrectionDomainError as e:
            logger.debug(f"Correction for {xrt} in {comp.name} failed: {e}")
            return CorrectionOutcome.failure(str(e))

    def relative_zaf(
        self,
        comp: Composition,
        xrt: XRayTransition,
        conditions: MeasurementConditions,
        standard: Composition,
    ) -> Tuple[float, float, float, float]:
        """
        Correction factors of ``comp`` relative to ``standard``.

        Returns
        -------
        tuple
            (Z, A, F, ZAF) as unknown/standard ratios
        """
        z_std, a_std, f_std = self._factors(self.context(standard, xrt.shell, conditions), xrt)
        z, a, f = self._factors(self.context(comp, xrt.shell, conditions), xrt)
        z_r, a_r, f_r = z / z_std, a / a_std, f / f_std
        return z_r, a_r, f_r, z_r * a_r * f_r

    def kratio(
        self,
        standard: Composition,
        unknown: Composition,
        xrt: XRayTransition,
        conditions: MeasurementConditions,
    ) -> UFloat:
        """Predicted k-ratio of ``xrt`` measured on ``unknown`` against ``standard``."""
        elm = xrt.element
        c_std = standard.weight_fraction(elm)
        if c_std <= 0.0:
            raise InvalidConfigurationError(f"Standard {standard.name} contains no {elm.symbol}")
        zaf_std = self.zaf(standard, xrt, conditions)
        zaf_unk = self.zaf(unknown, xrt, conditions)
        return unknown.weight_fraction_u(elm) * zaf_unk / (c_std * zaf_std)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class NullCorrection(CorrectionAlgorithm):
    """No matrix correction (ZAF = 1)."""

    name = "null"

    def _factors(self, ctx: CorrectionContext, xrt: XRayTransition) -> Tuple[float, float, float]:
        return 1.0, 1.0, 1.0


class PhilibertCorrection(CorrectionAlgorithm):
    """
    Absorption correction after Philibert, Duncumb and Heinrich.

    f(chi) = (1 + h) / ((1 + chi/sigma) * (1 + h * (1 + chi/sigma)))

    with sigma = 4.5e5 / (E0^1.65 - Ec^1.65) and h the mass-fraction weighted
    mean of 1.2 A / Z^2. chi = (mu/rho) / sin(take-off angle) uses the
    MASS_ABSORPTION algorithm. Atomic number and fluorescence factors are 1.
    """

    name = "philibert"

    def default_strategy(self) -> Strategy:
        return Strategy({AlgorithmRole.MASS_ABSORPTION: ConstantMAC(DEFAULT_MAC_CM2_G)})

    def _prepare(
        self, comp: Composition, shell: AtomicShell, conditions: MeasurementConditions
    ) -> Dict[str, float]:
        e0 = conditions.beam_energy_keV
        ec = shell.edge_energy_keV
        sigma = PHILIBERT_SIGMA_NUMERATOR / (e0**PHILIBERT_EXPONENT - ec**PHILIBERT_EXPONENT)
        total = comp.sum_weight_fraction()
        if total > 0.0:
            h = sum(
                max(v.nominal_value, 0.0)
                * PHILIBERT_H_COEFF
                * elm.atomic_weight
                / elm.atomic_number**2
                for elm, v in comp.items()
            ) / total
        else:
            h = 0.0
        return {"sigma": sigma, "h": h}

    def chi(self, comp: Composition, xrt: XRayTransition, conditions: MeasurementConditions) -> float:
        mac = self.require_algorithm(AlgorithmRole.MASS_ABSORPTION)
        return mac.compute(comp, xrt) * conditions.csc_take_off

    def _factors(self, ctx: CorrectionContext, xrt: XRayTransition) -> Tuple[float, float, float]:
        x = self.chi(ctx.composition, xrt, ctx.conditions) / ctx.params["sigma"]
        h = ctx.params["h"]
        f_chi = (1.0 + h) / ((1.0 + x) * (1.0 + h * (1.0 + x)))
        return 1.0, f_chi, 1.0


_CORRECTIONS = {
    NullCorrection.name: NullCorrection,
    PhilibertCorrection.name: PhilibertCorrection,
}


def create_correction(name: str, strategy: Optional[Strategy] = None) -> CorrectionAlgorithm:
    """
    Instantiate a correction algorithm by name ('philibert' or 'null').

    Raises
    ------
    InvalidConfigurationError
        For an unknown name
    """
    key = name.strip().lower()
    if key not in _CORRECTIONS:
        raise InvalidConfigurationError(
            f"Unknown correction algorithm {name!r}. Available: {sorted(_CORRECTIONS)}"
        )
    return _CORRECTIONS[key](strategy)
