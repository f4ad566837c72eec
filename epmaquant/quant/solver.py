"""
Iterative solver converting measured k-ratios into a composition.

The composition of the unknown controls the matrix correction that relates
its k-ratios to mass fractions, so the composition is found by fixed-point
iteration:

1. Seed the estimate with ``k * C_std`` (or a caller supplied estimate)
2. Evaluate ``ZAF_unk / (C_std * ZAF_std)`` for each measured line at the
   current estimate
3. Let the iteration algorithm produce the next measured mass fractions
4. Apply the unmeasured-element rules in registration order
5. Stop when the largest relative change drops below the tolerance or the
   iteration cap is reached
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from epmaquant.atomic.elements import Element, ElementLike, as_element
from epmaquant.atomic.structures import XRayTransitionSet
from epmaquant.core.constants import (
    DEFAULT_CONVERGENCE_TOLERANCE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MIN_OVERVOLTAGE,
    DEFAULT_SOLVER_MIN_WEIGHT,
    EPSILON,
    KRATIO_NEGATIVE_SIGMA,
)
from epmaquant.core.exceptions import InvalidConfigurationError, MissingStandardError
from epmaquant.core.logging_config import get_logger
from epmaquant.core.strategy import AlgorithmRole, AlgorithmUser, Strategy
from epmaquant.material.composition import Composition, to_ufloat
from epmaquant.quant.coating import ConductiveCoating
from epmaquant.quant.conditions import MeasurementConditions
from epmaquant.quant.correction import CorrectionAlgorithm, PhilibertCorrection
from epmaquant.quant.iteration import SimpleIteration
from epmaquant.quant.kratio import KRatioSet
from epmaquant.quant.result_base import ResultTableMixin
from epmaquant.quant.rules import UnmeasuredElementRule
from epmaquant.quant.zaf import ComputeZAF

logger = get_logger("quant.solver")


@dataclass
class QuantResult(ResultTableMixin):
    """
    Result of a composition-from-k-ratios calculation.

    Attributes
    ----------
    composition : Composition
        Mass fractions with propagated uncertainties
    kratios : KRatioSet
        The k-ratios actually used (one transition set per measured element)
    iterations : int
        Number of iterations performed
    converged : bool
        False when the iteration cap was reached first
    warnings : list of str
        Skipped transitions, clamped k-ratios and convergence problems
    history : list of Composition
        Estimate after each iteration, starting with the seed
    """

    composition: Composition
    kratios: KRatioSet
    iterations: int
    converged: bool
    warnings: List[str] = field(default_factory=list)
    history: List[Composition] = field(default_factory=list)

    @property
    def analytical_total(self) -> float:
        return self.composition.sum_weight_fraction()

    def mass_fractions(self, normalized: bool = False) -> Dict[str, float]:
        return self.composition.as_dict(normalized)

    def to_table(self, title: str = "Quantification Result") -> str:
        kr = {xrts.element.symbol: self.kratios.kratio(xrts) for xrts in self.kratios}
        status = "converged" if self.converged else "NOT converged"
        lines = [
            self._format_header(title),
            f"Iterations: {self.iterations} ({status})",
        ]
        lines.extend(self._format_composition_table(self.composition, kr))
        lines.extend(self._format_warnings(self.warnings))
        lines.append(self._format_footer())
        return "\n".join(lines)


class CompositionFromKRatios(AlgorithmUser):
    """
    Bulk solver for the composition of an unknown from measured k-ratios.

    Parameters
    ----------
    max_iterations : int
        Iteration cap
    convergence_tolerance : float
        Largest relative change in any mass fraction accepted as converged
    min_weight : float
        Minimum family-normalized weight of a transition to be used
    normalize : bool
        Normalize the estimate after every iteration and the final result
    min_overvoltage : float
        Overvoltage a line family needs before it is preferred
    strategy : Strategy, optional
        Overrides the default CORRECTION and ITERATION algorithms
    """

    def __init__(
        self,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        convergence_tolerance: float = DEFAULT_CONVERGENCE_TOLERANCE,
        min_weight: float = DEFAULT_SOLVER_MIN_WEIGHT,
        normalize: bool = False,
        min_overvoltage: float = DEFAULT_MIN_OVERVOLTAGE,
        strategy: Optional[Strategy] = None,
    ):
        if max_iterations < 1:
            raise InvalidConfigurationError("max_iterations must be at least 1")
        if not 0.0 <= convergence_tolerance < 1.0:
            raise InvalidConfigurationError("convergence_tolerance must be in [0, 1)")
        if not 0.0 < min_weight <= 1.0:
            raise InvalidConfigurationError("min_weight must be in (0, 1]")
        super().__init__(strategy)
        self.max_iterations = max_iterations
        self.convergence_tolerance = convergence_tolerance
        self.min_weight = min_weight
        self.normalize = normalize
        self.min_overvoltage = min_overvoltage
        self._standards: Dict[XRayTransitionSet, tuple] = {}
        self._rules: List[UnmeasuredElementRule] = []
        self._user_selected: Dict[Element, XRayTransitionSet] = {}
        self._zaf: Optional[ComputeZAF] = None
        self._unknown_coating: Optional[ConductiveCoating] = None

    def default_strategy(self) -> Strategy:
        return Strategy(
            {
                AlgorithmRole.CORRECTION: PhilibertCorrection(),
                AlgorithmRole.ITERATION: SimpleIteration(),
            }
        )

    def apply_strategy(self, strategy: Strategy) -> None:
        """Apply ``strategy`` here and to the correction algorithm's own dependencies."""
        super().apply_strategy(strategy)
        correction = self.get_algorithm(AlgorithmRole.CORRECTION)
        if correction is not None:
            correction.apply_strategy(strategy)
        self._zaf = None

    def set_algorithm(self, role: AlgorithmRole, impl) -> None:
        super().set_algorithm(role, impl)
        self._zaf = None

    @property
    def correction(self) -> CorrectionAlgorithm:
        return self.require_algorithm(AlgorithmRole.CORRECTION)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def add_standard(
        self,
        xrts: XRayTransitionSet,
        composition: Composition,
        conditions: MeasurementConditions,
        coating: Optional[ConductiveCoating] = None,
    ) -> None:
        """
        Register (or replace) the standard for a transition set.

        ``coating`` is the conductive coating on the standard, if any.

        Raises
        ------
        InvalidConfigurationError
            If the standard does not contain the element
        """
        if composition.weight_fraction(xrts.element) <= 0.0:
            raise InvalidConfigurationError(
                f"Standard {composition.name} for {xrts.name} contains no {xrts.element.symbol}"
            )
        self._standards[xrts] = (composition, conditions, coating)
        self._zaf = None

    @property
    def standards(self) -> Dict[XRayTransitionSet, Composition]:
        return {xrts: entry[0] for xrts, entry in self._standards.items()}

    def set_unknown_coating(self, coating: Optional[ConductiveCoating]) -> None:
        """Coating on the unknown; ``None`` for an uncoated sample."""
        self._unknown_coating = coating

    @property
    def unknown_coating(self) -> Optional[ConductiveCoating]:
        return self._unknown_coating

    def add_unmeasured_element_rule(self, rule: UnmeasuredElementRule) -> None:
        """Add a rule; a previous rule for the same element is replaced."""
        self._rules = [r for r in self._rules if r.element != rule.element]
        self._rules.append(rule)

    def clear_unmeasured_element_rules(self) -> None:
        self._rules.clear()

    @property
    def rules(self) -> List[UnmeasuredElementRule]:
        return list(self._rules)

    def is_unmeasured_element(self, element: ElementLike) -> bool:
        elm = as_element(element)
        return any(r.element == elm for r in self._rules)

    def add_user_selected_transition(self, element: ElementLike, xrts: XRayTransitionSet) -> None:
        """Quantify ``element`` with ``xrts`` instead of the automatic choice."""
        elm = as_element(element)
        if xrts.element != elm:
            raise InvalidConfigurationError(f"{xrts.name} is not a transition set of {elm.symbol}")
        self._user_selected[elm] = xrts

    def clear_user_selected_transitions(self) -> None:
        self._user_selected.clear()

    def _has_standard_for(self, elm: Element) -> bool:
        return any(xrts.element == elm for xrts in self._standards)

    def _has_standard_in(self, krs: KRatioSet, elm: Element) -> bool:
        return any(xrts in self._standards for xrts in krs.transition_sets(elm))

    def _engine(self) -> ComputeZAF:
        if self._zaf is None:
            engine = ComputeZAF(
                self.min_weight, Strategy({AlgorithmRole.CORRECTION: self.correction})
            )
            mac = self.get_algorithm(AlgorithmRole.MASS_ABSORPTION)
            if mac is not None:
                engine.set_algorithm(AlgorithmRole.MASS_ABSORPTION, mac)
            for xrts, (comp, cond, coating) in self._standards.items():
                engine.add_standard(xrts, comp, cond, coating)
            self._zaf = engine
        return self._zaf

    # ------------------------------------------------------------------
    # Validation and selection
    # ------------------------------------------------------------------

    def is_ready(self, krs: KRatioSet) -> bool:
        """True when every element in ``krs`` has a standard or a rule."""
        return all(
            self._has_standard_for(elm) or self.is_unmeasured_element(elm) for elm in krs.elements
        )

    def validate(self, krs: KRatioSet, conditions: MeasurementConditions) -> None:
        """
        Check that ``krs`` can be quantified under ``conditions``.

        Raises
        ------
        MissingAlgorithmError
            If no CORRECTION or ITERATION algorithm is registered
        MissingStandardError
            Naming every element without a standard or rule
        ConditionMismatchError
            If a standard was measured under different conditions
        InvalidConfigurationError
            If a user-selected transition set was not measured or has no standard
        """
        self.require_algorithm(AlgorithmRole.CORRECTION)
        self.require_algorithm(AlgorithmRole.ITERATION)

        missing = [
            elm.symbol
            for elm in krs.elements
            if not (self._has_standard_for(elm) or self.is_unmeasured_element(elm))
        ]
        if missing:
            raise MissingStandardError(f"Missing standards for {', '.join(missing)}")

        for elm, xrts in self._user_selected.items():
            if not krs.is_available(elm) or self.is_unmeasured_element(elm):
                continue
            if xrts not in krs:
                raise InvalidConfigurationError(f"Selected transition set {xrts.name} was not measured")
            if xrts not in self._standards:
                raise MissingStandardError(f"No standard for selected transition set {xrts.name}")

        for xrts in krs:
            if xrts in self._standards:
                self._standards[xrts][1].check_matches(conditions, xrts.name)

    def select_kratios(self, krs: KRatioSet, conditions: MeasurementConditions) -> KRatioSet:
        """
        Choose one transition set per measured element.

        User selections win. Otherwise only sets with a standard are
        considered and the K, L, M, N preference of
        :meth:`KRatioSet.preferred_datum` is applied. Elements governed by an
        unmeasured-element rule are left out.
        """
        with_standards = KRatioSet()
        for xrts, value in krs.items():
            if xrts in self._standards:
                with_standards.add(xrts, value)

        res = KRatioSet()
        for elm in krs.elements:
            if self.is_unmeasured_element(elm):
                continue
            xrts = self._user_selected.get(elm)
            if xrts is None or xrts not in krs:
                xrts = with_standards.preferred_datum(
                    elm, conditions.beam_energy_keV, self.min_overvoltage
                )
            if xrts is None:
                raise MissingStandardError(f"No measured transition set of {elm.symbol} has a standard")
            res.add(xrts, krs.raw_kratio(xrts))
        return res

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def apply_rules(self, comp: Composition) -> Composition:
        for rule in self._rules:
            comp = rule.compute(comp)
        return comp

    def estimate_initial_composition(self, krs: KRatioSet) -> Composition:
        """``k * C_std`` (normalized standard) for each element, rules applied, normalized."""
        fractions = {}
        for xrts in krs:
            std = self._standards[xrts][0]
            fractions[xrts.element] = std.weight_fraction(xrts.element, normalized=True) * krs.kratio_u(xrts)
        return self.apply_rules(Composition(fractions)).normalized()

    def zaf_ratio(
        self, xrts: XRayTransitionSet, comp: Composition, conditions: MeasurementConditions
    ) -> float:
        """Weighted ``ZAF_unk / (C_std * ZAF_std)`` for ``xrts`` at ``comp``."""
        return self._engine().compute(xrts, comp, conditions, self._unknown_coating)

    @staticmethod
    def _max_relative_change(prev: Composition, nxt: Composition) -> float:
        elements = sorted(set(prev.elements) | set(nxt.elements))
        p = np.array([prev.weight_fraction(e) for e in elements])
        n = np.array([nxt.weight_fraction(e) for e in elements])
        scale = np.maximum(np.abs(p), np.abs(n))
        mask = scale > EPSILON
        if not np.any(mask):
            return 0.0
        return float(np.max(np.abs(n[mask] - p[mask]) / scale[mask]))

    def iterate(
        self, krs: KRatioSet, conditions: MeasurementConditions, seed: Composition
    ) -> QuantResult:
        """
        Run the fixed-point loop from ``seed``.

        ``krs`` must hold exactly one positive k-ratio per measured element.
        The returned composition carries no propagated uncertainty.
        """
        engine = self._engine()
        ia = self.require_algorithm(AlgorithmRole.ITERATION)
        ia.initialize(krs, seed)

        warnings: List[str] = []
        history = [seed]
        prev = seed
        converged = False
        iteration = 0
        for iteration in range(1, self.max_iterations + 1):
            zaf_map = {}
            for xrts in krs:
                detail = engine.compute_detailed(xrts, prev, conditions, self._unknown_coating)
                for msg in detail.skipped:
                    if msg not in warnings:
                        warnings.append(msg)
                        logger.warning(f"Skipped transition {msg}")
                if detail.fallback and detail.skipped:
                    msg = f"No usable transition for {xrts.name}; using 1/C_std"
                    if msg not in warnings:
                        warnings.append(msg)
                zaf_map[xrts] = detail.value

            nxt = self.apply_rules(ia.compute(zaf_map))
            if self.normalize:
                nxt = nxt.normalized()
            delta = self._max_relative_change(prev, nxt)
            logger.debug(f"Iteration {iteration}: max relative change = {delta:.3e}")
            history.append(nxt)
            prev = nxt
            if delta < self.convergence_tolerance:
                converged = True
                break

        if not converged:
            msg = (
                f"Composition did not converge within {self.max_iterations} iterations "
                f"(tolerance {self.convergence_tolerance:g})"
            )
            warnings.append(msg)
            logger.warning(msg)

        return QuantResult(
            composition=prev,
            kratios=krs,
            iterations=iteration,
            converged=converged,
            warnings=warnings,
            history=history,
        )

    def compute(
        self,
        krs: KRatioSet,
        conditions: MeasurementConditions,
        initial_estimate: Optional[Composition] = None,
    ) -> QuantResult:
        """
        Compute the composition of the unknown.

        Parameters
        ----------
        krs : KRatioSet
            Measured k-ratios, possibly several line families per element
        conditions : MeasurementConditions
            Conditions of the unknown; must match every standard
        initial_estimate : Composition, optional
            Seed for the iteration instead of ``k * C_std``

        Returns
        -------
        QuantResult

        Raises
        ------
        InvalidConfigurationError
            (or a subclass) for missing standards, algorithms or mismatched
            conditions
        """
        self.validate(krs, conditions)

        positive = KRatioSet()
        non_positive = KRatioSet()
        for xrts, value in krs.items():
            (positive if value.nominal_value > 0.0 else non_positive).add(xrts, value)

        # Elements whose standardized measurements are all non-positive are
        # clamped to zero even when another, unstandardized family is positive
        for elm in positive.elements:
            if not self._has_standard_in(positive, elm) and self._has_standard_in(non_positive, elm):
                for xrts in positive.transition_sets(elm):
                    positive.remove(xrts)

        selected = self.select_kratios(positive, conditions)
        estimate = self.estimate_initial_composition(selected)
        if initial_estimate is None:
            seed = estimate
        else:
            seed = initial_estimate
            for elm in estimate.elements:
                if elm not in seed:
                    seed = seed.with_element(elm, estimate.weight_fraction_u(elm))
            seed = self.apply_rules(seed)

        run = self.iterate(selected, conditions, seed)

        # C = C_iter * (k / k_nominal) carries the fractional uncertainty of k
        final = {}
        for xrts in selected:
            c = run.composition.weight_fraction(xrts.element)
            k = selected.kratio_u(xrts)
            final[xrts.element] = to_ufloat(c, c * k.std_dev / k.nominal_value)
        result = self.apply_rules(Composition(final))

        used = selected.copy()
        warnings = list(run.warnings)
        # standardized transition sets first
        for xrts, raw in sorted(non_positive.items(), key=lambda item: item[0] not in self._standards):
            elm = xrts.element
            if elm in result or self.is_unmeasured_element(elm) or used.is_available(elm):
                continue
            used.add(xrts, raw)
            result = result.with_element(elm, to_ufloat(0.0, raw.std_dev))
            if raw.nominal_value < -KRATIO_NEGATIVE_SIGMA * raw.std_dev:
                msg = (
                    f"K-ratio for {xrts.name} is {raw.nominal_value:.4g} +/- {raw.std_dev:.2g}, "
                    f"more than {KRATIO_NEGATIVE_SIGMA:g} sigma below zero; clamped to 0"
                )
                warnings.append(msg)
                logger.warning(msg)

        if self.normalize:
            result = result.normalized()

        logger.info(
            f"Quantified {len(result)} elements in {run.iterations} iterations "
            f"(total {result.sum_weight_fraction():.4f}, converged={run.converged})"
        )
        return QuantResult(
            composition=result,
            kratios=used,
            iterations=run.iterations,
            converged=run.converged,
            warnings=warnings,
            history=run.history,
        )
