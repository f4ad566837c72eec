"""
Pytest configuration and shared fixtures for epmaquant tests.

This module provides:
- Measurement conditions and common transition sets
- Solvers with identity (null) and Philibert corrections
- Factory fixtures for generating synthetic k-ratios
- Sample configuration dictionaries and files
"""

import pytest
import yaml

from epmaquant.atomic import xray_data
from epmaquant.core.strategy import AlgorithmRole, Strategy
from epmaquant.material.composition import Composition
from epmaquant.quant.conditions import MeasurementConditions
from epmaquant.quant.correction import NullCorrection, PhilibertCorrection
from epmaquant.quant.kratio import KRatioSet
from epmaquant.quant.solver import CompositionFromKRatios


@pytest.fixture
def conditions():
    """15 keV, 40 degree take-off angle."""
    return MeasurementConditions(beam_energy_keV=15.0, take_off_angle_deg=40.0)


@pytest.fixture
def fe_k():
    return xray_data.transition_set("Fe", "K")


@pytest.fixture
def ni_k():
    return xray_data.transition_set("Ni", "K")


@pytest.fixture
def si_k():
    return xray_data.transition_set("Si", "K")


@pytest.fixture
def al_k():
    return xray_data.transition_set("Al", "K")


@pytest.fixture
def null_strategy():
    """Identity matrix correction."""
    return Strategy({AlgorithmRole.CORRECTION: NullCorrection()})


@pytest.fixture
def fe_ni_solver(conditions, fe_k, ni_k, null_strategy):
    """Solver with pure Fe and Ni standards and no matrix correction."""
    solver = CompositionFromKRatios(strategy=null_strategy)
    solver.add_standard(fe_k, Composition.pure("Fe"), conditions)
    solver.add_standard(ni_k, Composition.pure("Ni"), conditions)
    return solver


@pytest.fixture
def philibert_solver(conditions, fe_k, ni_k):
    """Solver with pure Fe and Ni standards and the Philibert absorption correction."""
    solver = CompositionFromKRatios(
        max_iterations=50,
        convergence_tolerance=1e-10,
        strategy=Strategy({AlgorithmRole.CORRECTION: PhilibertCorrection()}),
    )
    solver.add_standard(fe_k, Composition.pure("Fe"), conditions)
    solver.add_standard(ni_k, Composition.pure("Ni"), conditions)
    return solver


@pytest.fixture
def make_kratios():
    """
    Factory for KRatioSets.

    Usage: ``make_kratios({fe_k: 0.5, ni_k: (0.5, 0.01)})``
    """

    def _make(values):
        krs = KRatioSet()
        for xrts, value in values.items():
            if isinstance(value, tuple):
                krs.add(xrts, value[0], value[1])
            else:
                krs.add(xrts, value)
        return krs

    return _make


@pytest.fixture
def sample_config_dict():
    """Bulk quantification config for a 50/50 Fe-Ni alloy."""
    return {
        "conditions": {"beam_energy_keV": 15.0, "take_off_angle_deg": 40.0},
        "standards": [
            {"element": "Fe", "family": "K", "composition": {"Fe": 1.0}},
            {"element": "Ni", "family": "K", "composition": {"Ni": 1.0}},
        ],
        "kratios": [
            {"element": "Fe", "family": "K", "value": 0.5, "uncertainty": 0.005},
            {"element": "Ni", "family": "K", "value": 0.5, "uncertainty": 0.005},
        ],
        "solver": {"correction": "null", "iteration": "simple", "max_iterations": 10},
    }


@pytest.fixture
def sample_layer_config_dict():
    """Two layer config: Cr film on a Ni film."""
    return {
        "conditions": {"beam_energy_keV": 15.0, "take_off_angle_deg": 40.0},
        "kratios": [
            {"element": "Cr", "family": "K", "value": 0.02},
            {"element": "Ni", "family": "K", "value": 0.05},
        ],
        "layers": [{"elements": ["Cr"]}, {"elements": ["Ni"]}],
        "solver": {"correction": "null"},
        "mac": {"value": 0.0},
    }


@pytest.fixture
def temp_config_file(tmp_path, sample_config_dict):
    """Sample bulk config written to a YAML file."""
    path = tmp_path / "quant.yaml"
    with open(path, "w") as f:
        yaml.dump(sample_config_dict, f)
    return path
