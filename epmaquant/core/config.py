"""
Configuration management for epmaquant.

Provides utilities for loading and validating YAML/JSON configuration files
describing measurement conditions, standards, measured k-ratios, unmeasured
element rules and solver settings.
"""

import json
from pathlib import Path
from typing import Dict, Any, Union
import logging

import yaml

logger = logging.getLogger(__name__)

VALID_RULE_TYPES = ["difference", "fiat", "oxygen_stoichiometry", "waters_of_crystallization"]
VALID_CORRECTIONS = ["philibert", "null"]
VALID_ITERATIONS = ["simple", "wegstein"]


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters
    ----------
    config_path : str or Path
        Path to configuration file (.yaml, .yml, or .json)

    Returns
    -------
    dict
        Configuration dictionary

    Raises
    ------
    FileNotFoundError
        If config file does not exist
    ValueError
        If file format is not supported
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    suffix = config_path.suffix.lower()

    with open(config_path, "r") as f:
        if suffix in [".yaml", ".yml"]:
            config = yaml.safe_load(f)
        elif suffix == ".json":
            config = json.load(f)
        else:
            raise ValueError(
                f"Unsupported config file format: {suffix}. " "Use .yaml, .yml, or .json"
            )

    if not isinstance(config, dict):
        raise ValueError(f"Configuration in {config_path} must be a mapping")

    logger.info(f"Loaded configuration from {config_path}")
    return config


def validate_conditions_config(config: Dict[str, Any]) -> bool:
    """
    Validate the 'conditions' section.

    Raises
    ------
    ValueError
        If configuration is invalid
    """
    if "conditions" not in config:
        raise ValueError("Configuration must contain 'conditions' section")

    cond = config["conditions"]
    for field in ["beam_energy_keV", "take_off_angle_deg"]:
        if field not in cond:
            raise ValueError(f"Conditions config missing required field: {field}")

    if cond["beam_energy_keV"] <= 0:
        raise ValueError("Beam energy must be positive")

    if not 0.0 < cond["take_off_angle_deg"] < 90.0:
        raise ValueError("Take-off angle must be between 0 and 90 degrees")

    return True


def _validate_coating(coating: Any, where: str) -> None:
    if not isinstance(coating, dict):
        raise ValueError(f"Coating of {where} must be a mapping")
    if "mass_thickness" not in coating:
        raise ValueError(f"Coating of {where} missing required field: mass_thickness")
    if coating["mass_thickness"] < 0:
        raise ValueError(f"Coating mass-thickness of {where} must be non-negative")
    if "element" not in coating and "composition" not in coating:
        raise ValueError(f"Coating of {where} needs an 'element' or a 'composition'")


def _validate_kratios(kratios: Any) -> None:
    if not isinstance(kratios, list) or not kratios:
        raise ValueError("'kratios' must be a non-empty list")
    for entry in kratios:
        for field in ["element", "value"]:
            if field not in entry:
                raise ValueError(f"K-ratio entry missing required field: {field}")
        if entry.get("uncertainty", 0.0) < 0:
            raise ValueError(f"K-ratio uncertainty for {entry['element']} must be non-negative")


def validate_quant_config(config: Dict[str, Any]) -> bool:
    """
    Validate a bulk quantification configuration.

    Parameters
    ----------
    config : dict
        Configuration dictionary

    Returns
    -------
    bool
        True if valid

    Raises
    ------
    ValueError
        If configuration is invalid
    """
    validate_conditions_config(config)

    if "standards" not in config:
        raise ValueError("Configuration must contain 'standards' section")
    if not isinstance(config["standards"], list):
        raise ValueError("'standards' must be a list")
    for std in config["standards"]:
        for field in ["element", "composition"]:
            if field not in std:
                raise ValueError(f"Standard entry missing required field: {field}")
        if not isinstance(std["composition"], dict) or not std["composition"]:
            raise ValueError(f"Standard for {std['element']} needs a non-empty composition")
        if "coating" in std:
            _validate_coating(std["coating"], f"standard for {std['element']}")

    if "coating" in config:
        _validate_coating(config["coating"], "the unknown")

    if "kratios" not in config:
        raise ValueError("Configuration must contain 'kratios' section")
    _validate_kratios(config["kratios"])

    for rule in config.get("rules", []):
        if rule.get("type") not in VALID_RULE_TYPES:
            raise ValueError(
                f"Invalid rule type: {rule.get('type')}. " f"Must be one of: {VALID_RULE_TYPES}"
            )

    solver = config.get("solver", {})
    if solver.get("correction", "philibert") not in VALID_CORRECTIONS:
        raise ValueError(
            f"Invalid correction: {solver['correction']}. " f"Must be one of: {VALID_CORRECTIONS}"
        )
    if solver.get("iteration", "simple") not in VALID_ITERATIONS:
        raise ValueError(
            f"Invalid iteration: {solver['iteration']}. " f"Must be one of: {VALID_ITERATIONS}"
        )
    if solver.get("max_iterations", 1) < 1:
        raise ValueError("max_iterations must be at least 1")

    return True


def validate_layer_config(config: Dict[str, Any]) -> bool:
    """
    Validate a layered (thin film) quantification configuration.

    Raises
    ------
    ValueError
        If configuration is invalid
    """
    validate_conditions_config(config)

    if "kratios" not in config:
        raise ValueError("Configuration must contain 'kratios' section")
    _validate_kratios(config["kratios"])

    if "layers" not in config:
        raise ValueError("Configuration must contain 'layers' section")
    layers = config["layers"]
    if not isinstance(layers, list) or not layers:
        raise ValueError("'layers' must be a non-empty list")
    for i, layer in enumerate(layers, start=1):
        if "elements" not in layer or not layer["elements"]:
            raise ValueError(f"Layer {i} must list at least one element")

    return True


def save_config(config: Dict[str, Any], config_path: Union[str, Path]) -> None:
    """
    Save configuration to YAML or JSON file.

    Parameters
    ----------
    config : dict
        Configuration dictionary
    config_path : str or Path
        Path to output file. Unknown suffixes are written as YAML.
    """
    config_path = Path(config_path)
    suffix = config_path.suffix.lower()

    if suffix not in [".yaml", ".yml", ".json"]:
        config_path = config_path.with_suffix(".yaml")
        suffix = ".yaml"

    with open(config_path, "w") as f:
        if suffix == ".json":
            json.dump(config, f, indent=2)
        else:
            yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Saved configuration to {config_path}")
