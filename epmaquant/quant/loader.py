"""
Build solver objects from validated configuration dictionaries.

Example configuration (YAML)::

    conditions:
      beam_energy_keV: 15.0
      take_off_angle_deg: 40.0
    standards:
      - element: Fe
        family: K
        composition: {Fe: 1.0}
        coating: {element: C, mass_thickness: 2.0e-6}
    kratios:
      - element: Fe
        family: K
        value: 0.512
        uncertainty: 0.004
    rules:
      - type: difference
        element: Ni
    coating: {element: C, mass_thickness: 4.0e-6}
    solver:
      correction: philibert
      iteration: simple
      max_iterations: 10
    mac:
      default: 100.0
      table:
        Fe K: {Fe: 71.4, Ni: 93.3}
"""

from typing import Any, Dict, List, Optional, Tuple

from epmaquant.atomic import xray_data
from epmaquant.atomic.elements import Element, as_element
from epmaquant.atomic.structures import LineFamily, XRayTransitionSet
from epmaquant.core.constants import (
    DEFAULT_CONVERGENCE_TOLERANCE,
    DEFAULT_LAYER_MAX_ITERATIONS,
    DEFAULT_LAYER_TOLERANCE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MIN_OVERVOLTAGE,
    DEFAULT_SOLVER_MIN_WEIGHT,
)
from epmaquant.core.config import validate_layer_config, validate_quant_config
from epmaquant.core.exceptions import InvalidConfigurationError
from epmaquant.core.logging_config import get_logger
from epmaquant.core.strategy import AlgorithmRole, Strategy
from epmaquant.material.composition import Composition
from epmaquant.material.oxidizer import Oxidizer
from epmaquant.quant.coating import ConductiveCoating
from epmaquant.quant.conditions import MeasurementConditions
from epmaquant.quant.correction import create_correction
from epmaquant.quant.iteration import create_iteration
from epmaquant.quant.kratio import KRatioSet
from epmaquant.quant.layered import STEMinSEMCorrection, assign_layers
from epmaquant.quant.mac import ConstantMAC, MassAbsorptionCoefficient, TabulatedMAC
from epmaquant.quant.rules import create_rule
from epmaquant.quant.solver import CompositionFromKRatios

logger = get_logger("quant.loader")


def build_conditions(data: Dict[str, Any]) -> MeasurementConditions:
    return MeasurementConditions(
        beam_energy_keV=float(data["beam_energy_keV"]),
        take_off_angle_deg=float(data["take_off_angle_deg"]),
    )


def default_family(element: Element, beam_energy_keV: float) -> LineFamily:
    """The most energetic family whose edge the beam excites with margin."""
    families = xray_data.families(element)
    for family in families:
        xrts = xray_data.transition_set(element, family)
        if xrts.weighiest_transition.shell.overvoltage(beam_energy_keV) > DEFAULT_MIN_OVERVOLTAGE:
            return family
    return families[-1]


def build_transition_set(entry: Dict[str, Any], beam_energy_keV: float) -> XRayTransitionSet:
    """Transition set from ``element`` and optional ``family`` keys."""
    elm = as_element(entry["element"])
    family = entry.get("family")
    if family is None:
        family = default_family(elm, beam_energy_keV)
    try:
        return xray_data.transition_set(elm, family)
    except KeyError as e:
        raise InvalidConfigurationError(str(e.args[0])) from None


def build_kratios(entries: List[Dict[str, Any]], conditions: MeasurementConditions) -> KRatioSet:
    krs = KRatioSet()
    for entry in entries:
        xrts = build_transition_set(entry, conditions.beam_energy_keV)
        krs.add(xrts, float(entry["value"]), float(entry.get("uncertainty", 0.0)))
    return krs


def build_composition(data: Dict[str, float], name: Optional[str] = None) -> Composition:
    return Composition({sym: float(v) for sym, v in data.items()}, name=name)


def build_coating(data: Optional[Dict[str, Any]]) -> Optional[ConductiveCoating]:
    """
    Coating from ``{'element': 'C', 'mass_thickness': 4e-6}`` or a
    ``composition`` mapping in place of ``element``; ``None`` when absent.
    """
    if not data:
        return None
    mass_thickness = float(data["mass_thickness"])
    if "composition" in data:
        return ConductiveCoating(build_composition(data["composition"], data.get("name")), mass_thickness)
    return ConductiveCoating.of_element(data["element"], mass_thickness)


def build_mac(config: Dict[str, Any]) -> Optional[MassAbsorptionCoefficient]:
    """
    MAC from the optional ``mac`` section.

    ``{'value': 100.0}`` gives a constant; ``{'table': {...}, 'default': x}``
    a tabulated set keyed by ``'<element> <family>'``.
    """
    section = config.get("mac")
    if not section:
        return None
    if "table" in section:
        table = {}
        for key, row in section["table"].items():
            parts = key.split()
            if len(parts) != 2:
                raise InvalidConfigurationError(f"MAC table key must look like 'Fe K', got {key!r}")
            table[(parts[0], parts[1])] = row
        return TabulatedMAC(table, default=section.get("default"))
    if "value" in section:
        return ConstantMAC(float(section["value"]))
    raise InvalidConfigurationError("'mac' section needs either 'value' or 'table'")


def build_strategy(config: Dict[str, Any]) -> Strategy:
    """CORRECTION and ITERATION algorithms named in the ``solver`` section."""
    solver_cfg = config.get("solver", {})
    mac = build_mac(config)
    mac_strategy = Strategy({AlgorithmRole.MASS_ABSORPTION: mac}) if mac is not None else None
    return Strategy(
        {
            AlgorithmRole.CORRECTION: create_correction(
                solver_cfg.get("correction", "philibert"), mac_strategy
            ),
            AlgorithmRole.ITERATION: create_iteration(solver_cfg.get("iteration", "simple")),
        }
    )


def build_solver(
    config: Dict[str, Any]
) -> Tuple[CompositionFromKRatios, KRatioSet, MeasurementConditions]:
    """
    Build a bulk solver, the measured k-ratios and the unknown's conditions.

    Raises
    ------
    ValueError
        If the configuration is invalid
    """
    validate_quant_config(config)
    conditions = build_conditions(config["conditions"])
    solver_cfg = config.get("solver", {})
    solver = CompositionFromKRatios(
        max_iterations=int(solver_cfg.get("max_iterations", DEFAULT_MAX_ITERATIONS)),
        convergence_tolerance=float(solver_cfg.get("tolerance", DEFAULT_CONVERGENCE_TOLERANCE)),
        min_weight=float(solver_cfg.get("min_weight", DEFAULT_SOLVER_MIN_WEIGHT)),
        normalize=bool(solver_cfg.get("normalize", False)),
        min_overvoltage=float(solver_cfg.get("min_overvoltage", DEFAULT_MIN_OVERVOLTAGE)),
        strategy=build_strategy(config),
    )

    for std in config["standards"]:
        std_conditions = (
            build_conditions(std["conditions"]) if "conditions" in std else conditions
        )
        xrts = build_transition_set(std, std_conditions.beam_energy_keV)
        comp = build_composition(std["composition"], std.get("name"))
        solver.add_standard(xrts, comp, std_conditions, build_coating(std.get("coating")))

    solver.set_unknown_coating(build_coating(config.get("coating")))
    mac = build_mac(config)
    if mac is not None:
        solver.set_algorithm(AlgorithmRole.MASS_ABSORPTION, mac)

    for rule in config.get("rules", []):
        solver.add_unmeasured_element_rule(create_rule(rule))

    for sel in config.get("selected_transitions", []):
        xrts = build_transition_set(sel, conditions.beam_energy_keV)
        solver.add_user_selected_transition(xrts.element, xrts)

    krs = build_kratios(config["kratios"], conditions)
    logger.info(
        f"Built solver with {len(solver.standards)} standards, "
        f"{len(solver.rules)} rules and {len(krs)} k-ratios"
    )
    return solver, krs, conditions


def build_layered(config: Dict[str, Any]):
    """
    Build a layered solver.

    Returns
    -------
    tuple
        (STEMinSEMCorrection, KRatioSet, layer map, oxidizers by layer)
    """
    validate_layer_config(config)
    conditions = build_conditions(config["conditions"])
    layer_cfg = config.get("solver", {})

    mac = build_mac(config)
    mac_strategy = Strategy({AlgorithmRole.MASS_ABSORPTION: mac}) if mac is not None else None
    strategy = Strategy(
        {
            AlgorithmRole.CORRECTION: create_correction(
                layer_cfg.get("correction", "philibert"), mac_strategy
            ),
        }
    )
    if mac is not None:
        strategy.add_algorithm(AlgorithmRole.MASS_ABSORPTION, mac)

    solver = STEMinSEMCorrection(
        conditions,
        strategy=strategy,
        max_iterations=int(layer_cfg.get("max_iterations", DEFAULT_LAYER_MAX_ITERATIONS)),
        tolerance=float(layer_cfg.get("tolerance", DEFAULT_LAYER_TOLERANCE)),
    )
    for std in config.get("standards", []):
        solver.add_standard(std["element"], build_composition(std["composition"], std.get("name")))

    layers = assign_layers([layer["elements"] for layer in config["layers"]])
    oxidizers: Dict[int, Oxidizer] = {}
    for index, layer in enumerate(config["layers"], start=1):
        if layer.get("oxidize", False):
            oxidizers[index] = Oxidizer(layer.get("oxidation_states"))

    krs = build_kratios(config["kratios"], conditions)
    return solver, krs, layers, oxidizers
