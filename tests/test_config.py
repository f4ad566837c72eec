"""
Tests for configuration management and the config-to-solver loader.
"""

import json
import math
import tempfile
from pathlib import Path

import pytest

from epmaquant.atomic.elements import as_element
from epmaquant.atomic.structures import LineFamily
from epmaquant.core.config import (
    load_config,
    save_config,
    validate_conditions_config,
    validate_layer_config,
    validate_quant_config,
)
from epmaquant.core.exceptions import InvalidConfigurationError
from epmaquant.quant.correction import NullCorrection
from epmaquant.quant.iteration import WegsteinIteration
from epmaquant.quant.coating import ConductiveCoating
from epmaquant.quant.loader import (
    build_coating,
    build_layered,
    build_mac,
    build_solver,
    build_transition_set,
    default_family,
)
from epmaquant.quant.mac import ConstantMAC, TabulatedMAC
from epmaquant.core.strategy import AlgorithmRole


def test_load_config_yaml(temp_config_file):
    """Test loading YAML configuration."""
    config = load_config(temp_config_file)
    assert "conditions" in config
    assert "standards" in config
    assert config["conditions"]["beam_energy_keV"] == 15.0


def test_load_config_json(sample_config_dict):
    """Test loading JSON configuration."""
    config_fd, config_path = tempfile.mkstemp(suffix=".json")

    try:
        with open(config_path, "w") as f:
            json.dump(sample_config_dict, f)

        config = load_config(config_path)
        assert config["kratios"][0]["value"] == 0.5
    finally:
        Path(config_path).unlink()


def test_load_config_not_found():
    """Test loading non-existent config file."""
    with pytest.raises(FileNotFoundError):
        load_config("nonexistent.yaml")


def test_load_config_invalid_format(tmp_path):
    """Test loading invalid file format."""
    path = tmp_path / "config.txt"
    path.write_text("not yaml or json")
    with pytest.raises(ValueError, match="Unsupported config file format"):
        load_config(path)


def test_load_config_not_a_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError, match="must be a mapping"):
        load_config(path)


def test_save_config_yaml(sample_config_dict, tmp_path):
    """Test saving YAML configuration."""
    path = tmp_path / "saved.yaml"
    save_config(sample_config_dict, path)
    assert path.exists()

    # Verify it can be loaded back
    loaded = load_config(path)
    assert loaded["standards"] == sample_config_dict["standards"]


def test_save_config_json(sample_config_dict, tmp_path):
    """Test saving JSON configuration."""
    path = tmp_path / "saved.json"
    save_config(sample_config_dict, path)
    loaded = load_config(path)
    assert loaded["solver"] == sample_config_dict["solver"]


def test_save_config_unknown_suffix(sample_config_dict, tmp_path):
    save_config(sample_config_dict, tmp_path / "saved.cfg")
    assert (tmp_path / "saved.yaml").exists()


def test_validate_quant_config_valid(sample_config_dict):
    assert validate_quant_config(sample_config_dict) is True


def test_validate_conditions_missing_section():
    with pytest.raises(ValueError, match="must contain 'conditions' section"):
        validate_conditions_config({"standards": []})


def test_validate_conditions_missing_field():
    with pytest.raises(ValueError, match="missing required field"):
        validate_conditions_config({"conditions": {"beam_energy_keV": 15.0}})


def test_validate_conditions_invalid_values():
    with pytest.raises(ValueError, match="must be positive"):
        validate_conditions_config(
            {"conditions": {"beam_energy_keV": -1.0, "take_off_angle_deg": 40.0}}
        )
    with pytest.raises(ValueError, match="between 0 and 90"):
        validate_conditions_config(
            {"conditions": {"beam_energy_keV": 15.0, "take_off_angle_deg": 95.0}}
        )


def test_validate_quant_config_missing_sections(sample_config_dict):
    config = dict(sample_config_dict)
    del config["standards"]
    with pytest.raises(ValueError, match="'standards'"):
        validate_quant_config(config)

    config = dict(sample_config_dict)
    config["kratios"] = []
    with pytest.raises(ValueError, match="non-empty list"):
        validate_quant_config(config)


def test_validate_quant_config_bad_entries(sample_config_dict):
    config = dict(sample_config_dict)
    config["kratios"] = [{"element": "Fe"}]
    with pytest.raises(ValueError, match="missing required field: value"):
        validate_quant_config(config)

    config["kratios"] = [{"element": "Fe", "value": 0.5, "uncertainty": -0.1}]
    with pytest.raises(ValueError, match="non-negative"):
        validate_quant_config(config)

    config = dict(sample_config_dict)
    config["standards"] = [{"element": "Fe", "composition": {}}]
    with pytest.raises(ValueError, match="non-empty composition"):
        validate_quant_config(config)


def test_validate_quant_config_invalid_choices(sample_config_dict):
    config = dict(sample_config_dict)
    config["rules"] = [{"type": "guess", "element": "O"}]
    with pytest.raises(ValueError, match="Invalid rule type"):
        validate_quant_config(config)

    config = dict(sample_config_dict)
    config["solver"] = {"correction": "xpp"}
    with pytest.raises(ValueError, match="Invalid correction"):
        validate_quant_config(config)

    config["solver"] = {"iteration": "newton"}
    with pytest.raises(ValueError, match="Invalid iteration"):
        validate_quant_config(config)

    config["solver"] = {"max_iterations": 0}
    with pytest.raises(ValueError, match="at least 1"):
        validate_quant_config(config)


def test_validate_layer_config(sample_layer_config_dict):
    assert validate_layer_config(sample_layer_config_dict) is True

    config = dict(sample_layer_config_dict)
    config["layers"] = [{"elements": ["Cr"]}, {"elements": []}]
    with pytest.raises(ValueError, match="Layer 2"):
        validate_layer_config(config)

    del config["layers"]
    with pytest.raises(ValueError, match="'layers'"):
        validate_layer_config(config)


def test_default_family():
    assert default_family(as_element("Fe"), 15.0) == LineFamily.K
    assert default_family(as_element("Mo"), 15.0) == LineFamily.L


def test_build_transition_set():
    xrts = build_transition_set({"element": "Fe", "family": "L"}, 15.0)
    assert xrts.name == "Fe L"
    assert build_transition_set({"element": "Fe"}, 15.0).name == "Fe K"
    with pytest.raises(InvalidConfigurationError):
        build_transition_set({"element": "W", "family": "K"}, 15.0)


def test_build_mac():
    assert build_mac({}) is None

    mac = build_mac({"mac": {"value": 250.0}})
    assert isinstance(mac, ConstantMAC)

    mac = build_mac({"mac": {"table": {"Fe K": {"Fe": 71.4, "Ni": 93.3}}, "default": 100.0}})
    assert isinstance(mac, TabulatedMAC)
    assert len(mac) == 2

    with pytest.raises(InvalidConfigurationError, match="'Fe K'"):
        build_mac({"mac": {"table": {"FeK": {"Fe": 71.4}}}})
    with pytest.raises(InvalidConfigurationError):
        build_mac({"mac": {"scale": 2.0}})


def test_build_solver(sample_config_dict):
    solver, krs, conditions = build_solver(sample_config_dict)
    assert conditions.beam_energy_keV == 15.0
    assert len(krs) == 2
    assert isinstance(solver.get_algorithm(AlgorithmRole.CORRECTION), NullCorrection)

    res = solver.compute(krs, conditions)
    assert res.converged
    assert res.composition.weight_fraction("Fe") == pytest.approx(0.5)
    assert res.composition.weight_fraction_u("Fe").std_dev == pytest.approx(0.005)


def test_build_solver_with_rules(sample_config_dict):
    config = dict(sample_config_dict)
    config["kratios"] = [{"element": "Fe", "family": "K", "value": 0.6}]
    config["rules"] = [{"type": "difference", "element": "Ni"}]
    config["solver"] = {"correction": "null", "iteration": "wegstein"}
    solver, krs, conditions = build_solver(config)
    assert isinstance(solver.get_algorithm(AlgorithmRole.ITERATION), WegsteinIteration)

    res = solver.compute(krs, conditions)
    assert res.composition.weight_fraction("Ni") == pytest.approx(0.4)


def test_build_solver_standard_conditions(sample_config_dict):
    config = dict(sample_config_dict)
    config["standards"] = [
        dict(sample_config_dict["standards"][0]),
        dict(
            sample_config_dict["standards"][1],
            conditions={"beam_energy_keV": 20.0, "take_off_angle_deg": 40.0},
        ),
    ]
    solver, krs, conditions = build_solver(config)
    with pytest.raises(InvalidConfigurationError):
        solver.compute(krs, conditions)


def test_build_layered(sample_layer_config_dict):
    solver, krs, layers, oxidizers = build_layered(sample_layer_config_dict)
    assert {e.symbol: i for e, i in layers.items()} == {"Cr": 1, "Ni": 2}
    assert oxidizers == {}

    res = solver.multi_layer(krs, layers, oxidizers)
    assert res.layer(1).mass_thickness == pytest.approx(0.02)
    assert res.layer(2).mass_thickness == pytest.approx(0.05)


def test_build_layered_oxidized(sample_layer_config_dict):
    config = dict(sample_layer_config_dict)
    config["layers"] = [{"elements": ["Cr"], "oxidize": True}, {"elements": ["Ni"]}]
    _, _, _, oxidizers = build_layered(config)
    assert list(oxidizers) == [1]


if __name__ == "__main__":
    pytest.main([__file__])


def test_validate_coating_entries(sample_config_dict):
    config = dict(sample_config_dict)
    config["coating"] = {"element": "C"}
    with pytest.raises(ValueError, match="mass_thickness"):
        validate_quant_config(config)

    config["coating"] = {"element": "C", "mass_thickness": -1.0e-6}
    with pytest.raises(ValueError, match="non-negative"):
        validate_quant_config(config)

    config = dict(sample_config_dict)
    config["standards"] = [
        dict(sample_config_dict["standards"][0], coating={"mass_thickness": 2.0e-6})
    ]
    with pytest.raises(ValueError, match="'element' or a 'composition'"):
        validate_quant_config(config)


def test_build_coating():
    assert build_coating(None) is None
    carbon = build_coating({"element": "C", "mass_thickness": 4.0e-6})
    assert carbon == ConductiveCoating.carbon(4.0e-6)
    gold = build_coating({"composition": {"Au": 1.0}, "mass_thickness": 2.0e-5, "name": "Gold"})
    assert gold.composition.name == "Gold"
    assert gold.mass_thickness == 2.0e-5


def test_build_solver_with_coating(sample_config_dict):
    config = dict(sample_config_dict)
    config["coating"] = {"element": "C", "mass_thickness": 1.0e-5}
    config["mac"] = {"value": 1000.0}
    solver, krs, conditions = build_solver(config)
    assert solver.unknown_coating == ConductiveCoating.carbon(1.0e-5)
    assert isinstance(solver.get_algorithm(AlgorithmRole.MASS_ABSORPTION), ConstantMAC)

    t = math.exp(-1000.0 * conditions.csc_take_off * 1.0e-5)
    res = solver.compute(krs, conditions)
    assert res.composition.weight_fraction("Fe") == pytest.approx(0.5 / t)
