"""
Thin-film quantification of stacked layers (STEM-in-SEM geometry).

Each layer has an unknown composition and mass-thickness. Every element is
assigned to exactly one layer and layers are numbered 1..N from the beam
entry surface. X-rays generated in a layer are absorbed by that layer and by
every layer above it, so each iteration evaluates, with the previous estimate,

    f = prod_{above} exp(-chi_l * rhoz_l) * (1 - exp(-chi * rhoz)) / (chi * rhoz)

where chi = (mu/rho) / sin(take-off angle), and then updates

    contribution = C_std * ZAF_std * k / f
    rhoz_layer   = sum of contributions (+ O by stoichiometry)
    C            = contribution / rhoz_layer
"""

from dataclasses import dataclass, field
import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
from uncertainties import UFloat

from epmaquant.atomic.elements import O, Element, ElementLike, as_element
from epmaquant.atomic.structures import XRayTransition
from epmaquant.core.constants import (
    DEFAULT_LAYER_MAX_ITERATIONS,
    DEFAULT_LAYER_TOLERANCE,
    DEFAULT_MIN_OVERVOLTAGE,
)
from epmaquant.core.exceptions import InvalidConfigurationError, LayerAssignmentError
from epmaquant.core.logging_config import get_logger
from epmaquant.core.strategy import AlgorithmRole, AlgorithmUser, Strategy
from epmaquant.material.composition import Composition, to_ufloat
from epmaquant.material.oxidizer import Oxidizer
from epmaquant.quant.conditions import MeasurementConditions
from epmaquant.quant.correction import DEFAULT_MAC_CM2_G, PhilibertCorrection
from epmaquant.quant.kratio import KRatioSet
from epmaquant.quant.mac import ConstantMAC
from epmaquant.quant.result_base import ResultTableMixin

logger = get_logger("quant.layered")


def assign_layers(layers: Sequence[Iterable[ElementLike]]) -> Dict[Element, int]:
    """
    Convert a front-to-back list of element collections into a layer map.

    Parameters
    ----------
    layers : sequence of iterables
        ``layers[0]`` holds the elements of the top (beam entry) layer

    Returns
    -------
    dict
        Element to 1-based layer index

    Raises
    ------
    LayerAssignmentError
        If an element appears in more than one layer or a layer is empty
    """
    res: Dict[Element, int] = {}
    for index, elements in enumerate(layers, start=1):
        members = [as_element(e) for e in elements]
        if not members:
            raise LayerAssignmentError(f"Layer {index} does not contain any elements")
        for elm in members:
            if elm in res and res[elm] != index:
                raise LayerAssignmentError(
                    f"{elm.symbol} is assigned to layers {res[elm]} and {index}"
                )
            res[elm] = index
    return res


@dataclass
class LayerResult:
    """
    Composition and mass-thickness of one layer.

    Attributes
    ----------
    index : int
        1-based layer number counted from the surface
    composition : Composition
        Normalized layer composition
    mass_thickness_u : UFloat
        Mass-thickness estimate with uncertainty
    """

    index: int
    composition: Composition
    mass_thickness_u: UFloat

    @property
    def mass_thickness(self) -> float:
        return self.mass_thickness_u.nominal_value


@dataclass
class LayeredResult(ResultTableMixin):
    """Result of :meth:`STEMinSEMCorrection.multi_layer`."""

    layers: List[LayerResult]
    kratios: KRatioSet
    iterations: int
    converged: bool
    warnings: List[str] = field(default_factory=list)

    def layer(self, index: int) -> LayerResult:
        """Layer by 1-based index."""
        if not 1 <= index <= len(self.layers):
            raise IndexError(f"Layer index {index} outside [1, {len(self.layers)}]")
        return self.layers[index - 1]

    @property
    def total_mass_thickness(self) -> float:
        return sum(lyr.mass_thickness for lyr in self.layers)

    def to_table(self, title: str = "Layered Quantification Result") -> str:
        kr = {xrts.element.symbol: self.kratios.kratio(xrts) for xrts in self.kratios}
        status = "converged" if self.converged else "NOT converged"
        lines = [self._format_header(title), f"Iterations: {self.iterations} ({status})"]
        for lyr in self.layers:
            lines.append(self._format_separator())
            lines.append(
                f"Layer {lyr.index}: rho*z = {lyr.mass_thickness:.4e} "
                f"+/- {lyr.mass_thickness_u.std_dev:.1e}"
            )
            lines.extend(self._format_composition_table(lyr.composition, kr))
        lines.extend(self._format_warnings(self.warnings))
        lines.append(self._format_footer())
        return "\n".join(lines)


class STEMinSEMCorrection(AlgorithmUser):
    """
    Layered thin-film solver.

    Parameters
    ----------
    conditions : MeasurementConditions
        Conditions of the unknown (and of the standards)
    standards : mapping, optional
        Element to standard composition; pure elements are used otherwise
    strategy : Strategy, optional
        Overrides the CORRECTION and MASS_ABSORPTION algorithms
    max_iterations : int
        Iteration cap
    tolerance : float
        Relative change in every layer's mass-thickness accepted as converged
    """

    def __init__(
        self,
        conditions: MeasurementConditions,
        standards: Optional[Mapping[ElementLike, Composition]] = None,
        strategy: Optional[Strategy] = None,
        max_iterations: int = DEFAULT_LAYER_MAX_ITERATIONS,
        tolerance: float = DEFAULT_LAYER_TOLERANCE,
    ):
        if max_iterations < 1:
            raise InvalidConfigurationError("max_iterations must be at least 1")
        super().__init__(strategy)
        self.conditions = conditions
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self._standards: Dict[Element, Composition] = {}
        for elm, comp in (standards or {}).items():
            self.add_standard(elm, comp)

    def default_strategy(self) -> Strategy:
        return Strategy(
            {
                AlgorithmRole.CORRECTION: PhilibertCorrection(),
                AlgorithmRole.MASS_ABSORPTION: ConstantMAC(DEFAULT_MAC_CM2_G),
            }
        )

    def add_standard(self, element: ElementLike, composition: Composition) -> None:
        elm = as_element(element)
        if composition.weight_fraction(elm) <= 0.0:
            raise InvalidConfigurationError(f"Standard {composition.name} contains no {elm.symbol}")
        self._standards[elm] = composition

    def standard(self, element: ElementLike) -> Composition:
        """The standard for ``element`` (the pure element unless one was added)."""
        elm = as_element(element)
        return self._standards.get(elm, Composition.pure(elm))

    @property
    def elements(self) -> List[Element]:
        return sorted(self._standards)

    def _chi(self, comp: Composition, xrt: XRayTransition) -> float:
        mac = self.require_algorithm(AlgorithmRole.MASS_ABSORPTION)
        return mac.compute(comp, xrt) * self.conditions.csc_take_off

    @staticmethod
    def _self_absorption(chi: float, rhoz: float) -> float:
        x = chi * rhoz
        if x <= 0.0:
            return 1.0
        return -math.expm1(-x) / x

    def _validate(
        self, krs: KRatioSet, layers: Mapping[Element, int], n_layers: int
    ) -> None:
        filled = set()
        for elm, index in layers.items():
            if not 1 <= index <= n_layers:
                raise LayerAssignmentError(
                    f"{elm.symbol} is assigned to layer {index}, outside [1, {n_layers}]"
                )
            if not krs.is_available(elm):
                raise LayerAssignmentError(f"{elm.symbol} is not represented by a k-ratio")
            filled.add(index)
        empty = [str(i) for i in range(1, n_layers + 1) if i not in filled]
        if empty:
            raise LayerAssignmentError(f"Layer(s) {', '.join(empty)} contain no elements")
        unassigned = [e.symbol for e in krs.elements if e not in layers]
        if unassigned:
            raise LayerAssignmentError(
                f"K-ratios for {', '.join(unassigned)} are not assigned to any layer"
            )

    def multi_layer(
        self,
        krs: KRatioSet,
        layers: Mapping[ElementLike, int],
        oxidizers: Optional[Mapping[int, Oxidizer]] = None,
        n_layers: Optional[int] = None,
    ) -> LayeredResult:
        """
        Solve for the composition and mass-thickness of each layer.

        Parameters
        ----------
        krs : KRatioSet
            Measured k-ratios; one transition set per element is used
        layers : mapping
            Element to 1-based layer index (see :func:`assign_layers`)
        oxidizers : mapping, optional
            Layer index to Oxidizer for layers whose O is computed by stoichiometry
        n_layers : int, optional
            Number of layers; defaults to the largest index in ``layers``

        Returns
        -------
        LayeredResult

        Raises
        ------
        LayerAssignmentError
            For an index outside [1, n_layers], an empty layer, an element
            without a k-ratio or a k-ratio without a layer
        """
        layer_of = {as_element(e): int(i) for e, i in layers.items()}
        if not layer_of:
            raise LayerAssignmentError("No elements were assigned to layers")
        if n_layers is None:
            n_layers = max(layer_of.values())
        self._validate(krs, layer_of, n_layers)
        oxidizers = dict(oxidizers or {})
        for index in oxidizers:
            if not 1 <= index <= n_layers:
                raise LayerAssignmentError(f"Oxidizer given for layer {index}, outside [1, {n_layers}]")

        warnings: List[str] = []
        e0 = self.conditions.beam_energy_keV
        used = krs.preferred_kratio_set(e0, DEFAULT_MIN_OVERVOLTAGE)

        # C_std * ZAF_std of the weighiest transition, computed once
        ca = self.require_algorithm(AlgorithmRole.CORRECTION)
        std_factor: Dict[Element, float] = {}
        for xrts in used:
            elm = xrts.element
            xrt = xrts.weighiest_transition
            std = self.standard(elm)
            outcome = ca.try_zaf(std, xrt, self.conditions)
            if outcome.ok:
                zaf = outcome.value
            else:
                zaf = 1.0
                msg = f"Standard correction for {xrt} failed ({outcome.message}); using ZAF = 1"
                warnings.append(msg)
                logger.warning(msg)
            std_factor[elm] = std.weight_fraction(elm, normalized=True) * zaf

        rhoz = np.zeros(n_layers)
        comps = [Composition() for _ in range(n_layers)]
        rhoz_u: List[UFloat] = [to_ufloat(0.0)] * n_layers
        converged = False
        iteration = 0
        for iteration in range(1, self.max_iterations + 1):
            contributions: List[Dict[Element, UFloat]] = [{} for _ in range(n_layers)]
            for xrts in used:
                elm = xrts.element
                lyr = layer_of[elm] - 1
                xrt = xrts.weighiest_transition
                f = 1.0
                if iteration > 1:
                    f = self._self_absorption(self._chi(comps[lyr], xrt), rhoz[lyr])
                    for above in range(lyr):
                        f *= math.exp(-self._chi(comps[above], xrt) * rhoz[above])
                contributions[lyr][elm] = (std_factor[elm] / f) * used.kratio_u(xrts)

            new_rhoz = np.zeros(n_layers)
            new_comps = []
            for lyr in range(n_layers):
                contrib = contributions[lyr]
                oxidizer = oxidizers.get(lyr + 1)
                if oxidizer is not None:
                    contrib[O] = oxidizer.oxygen_u(Composition(contrib))
                total = sum(contrib.values(), to_ufloat(0.0))
                rhoz_u[lyr] = total
                new_rhoz[lyr] = total.nominal_value
                if total.nominal_value > 0.0:
                    new_comps.append(
                        Composition({e: v / total.nominal_value for e, v in contrib.items()})
                    )
                else:
                    new_comps.append(Composition({e: 0.0 for e in contrib}))

            done = iteration > 1 and bool(
                np.all(np.abs(new_rhoz - rhoz) <= self.tolerance * new_rhoz)
            )
            logger.debug(f"Iteration {iteration}: rho*z = {np.array2string(new_rhoz, precision=4)}")
            rhoz = new_rhoz
            comps = new_comps
            if done:
                converged = True
                break

        for lyr in range(n_layers):
            if rhoz[lyr] <= 0.0:
                msg = f"Layer {lyr + 1} has zero mass-thickness (no positive k-ratios)"
                warnings.append(msg)
                logger.warning(msg)
        if not converged:
            msg = f"Layer mass-thicknesses did not converge within {self.max_iterations} iterations"
            warnings.append(msg)
            logger.warning(msg)

        layers_out = [
            LayerResult(index=i + 1, composition=comps[i], mass_thickness_u=rhoz_u[i])
            for i in range(n_layers)
        ]
        logger.info(
            f"Solved {n_layers} layer(s) in {iteration} iterations (converged={converged})"
        )
        return LayeredResult(
            layers=layers_out,
            kratios=used,
            iterations=iteration,
            converged=converged,
            warnings=warnings,
        )

    def one_layer(self, krs: KRatioSet) -> LayerResult:
        """Every measured element in a single free-standing film."""
        return self.multi_layer(krs, {elm: 1 for elm in krs.elements}).layer(1)

    def two_layer(
        self,
        krs: KRatioSet,
        layer1: Iterable[ElementLike],
        layer2: Iterable[ElementLike],
    ) -> LayeredResult:
        """``layer1`` on top of ``layer2``."""
        return self.multi_layer(krs, assign_layers([layer1, layer2]))
