"""
Material compositions and oxide stoichiometry.
"""

from epmaquant.material.composition import Composition
from epmaquant.material.oxidizer import Oxidizer

__all__ = ["Composition", "Oxidizer"]
