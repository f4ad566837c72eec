"""
Oxygen by stoichiometry.

The :class:`Oxidizer` assigns each cation a valence and derives the oxide
that balances it against O(-2), e.g. Al(+3) -> Al2O3 and Si(+4) -> SiO2.
"""

from math import gcd
from typing import Dict, Optional

from uncertainties import UFloat

from epmaquant.atomic.elements import O, Element, ElementLike, as_element
from epmaquant.core.logging_config import get_logger
from epmaquant.material.composition import Composition, to_ufloat

logger = get_logger("material.oxidizer")

# Common oxidation states; elements not listed are treated as unoxidized (0)
DEFAULT_OXIDATION_STATES: Dict[str, int] = {
    "H": 1, "Li": 1, "Be": 2, "B": 3, "C": 4, "N": 5, "O": -2,
    "Na": 1, "Mg": 2, "Al": 3, "Si": 4, "P": 5, "S": 6,
    "K": 1, "Ca": 2, "Sc": 3, "Ti": 4, "V": 5, "Cr": 3, "Mn": 2,
    "Fe": 3, "Co": 2, "Ni": 2, "Cu": 2, "Zn": 2, "Ga": 3, "Ge": 4, "As": 5,
    "Rb": 1, "Sr": 2, "Y": 3, "Zr": 4, "Nb": 5, "Mo": 6, "Ag": 1, "Cd": 2,
    "In": 3, "Sn": 4, "Sb": 3, "Cs": 1, "Ba": 2, "La": 3, "Ce": 4, "Nd": 3,
    "Hf": 4, "Ta": 5, "W": 6, "Pb": 2, "Bi": 3, "Th": 4, "U": 4,
}

OXYGEN_NAME = "Remainder O"


class Oxidizer:
    """
    Oxidation-state table used to compute oxygen by stoichiometry.

    Parameters
    ----------
    oxidation_states : dict, optional
        Overrides for the default valences, keyed by element or symbol
    """

    def __init__(self, oxidation_states: Optional[Dict[ElementLike, int]] = None):
        self._states: Dict[Element, int] = {
            as_element(sym): v for sym, v in DEFAULT_OXIDATION_STATES.items()
        }
        for elm, valence in (oxidation_states or {}).items():
            self.set_oxidation_state(elm, valence)

    def oxidation_state(self, element: ElementLike) -> int:
        return self._states.get(as_element(element), 0)

    def set_oxidation_state(self, element: ElementLike, valence: int) -> None:
        """
        Set the valence of an element.

        Raises
        ------
        ValueError
            For a negative cation valence or an O valence other than -2
        """
        elm = as_element(element)
        if elm == O:
            if valence != -2:
                raise ValueError("The oxidation state of O is fixed at -2")
        elif valence < 0:
            raise ValueError(f"Oxidation state of {elm.symbol} must be non-negative")
        self._states[elm] = int(valence)

    def _reduced(self, elm: Element):
        e = self.oxidation_state(elm)
        o = -self.oxidation_state(O)
        d = gcd(e, o)
        return e // d, o // d

    def oxide(self, element: ElementLike) -> Composition:
        """
        The oxide of ``element`` (e.g. Al2O3); the bare element if valence is 0.
        """
        elm = as_element(element)
        if self.oxidation_state(elm) <= 0:
            return Composition.pure(elm).renamed(elm.symbol)
        n_o, n_elm = self._reduced(elm)
        name = (
            f"{elm.symbol}{n_elm if n_elm > 1 else ''}O{n_o if n_o > 1 else ''}"
        )
        return Composition.from_stoichiometry({elm: n_elm, O: n_o}, name=name)

    def oxygen_per_cation(self, element: ElementLike) -> float:
        """Mass of O bound per unit mass of ``element`` in its oxide."""
        elm = as_element(element)
        if elm == O or self.oxidation_state(elm) <= 0:
            return 0.0
        ox = self.oxide(elm)
        return ox.weight_fraction(O) / ox.weight_fraction(elm)

    def oxygen_u(self, comp: Composition) -> UFloat:
        """Stoichiometric O mass fraction implied by the cations in ``comp``."""
        oxy = to_ufloat(0.0)
        for elm, value in comp.items():
            if elm != O:
                oxy = oxy + self.oxygen_per_cation(elm) * value
        return oxy

    def compute(self, comp: Composition) -> Composition:
        """Replace the O in ``comp`` with O computed by stoichiometry."""
        return comp.with_element(O, self.oxygen_u(comp))

    def to_oxide_fractions(self, comp: Composition) -> Dict[str, UFloat]:
        """
        Express ``comp`` as oxide mass fractions.

        O not accounted for by the cations is reported under ``OXYGEN_NAME``.
        """
        res: Dict[str, UFloat] = {}
        oxy = comp.weight_fraction_u(O)
        for elm, value in comp.items():
            if elm == O:
                continue
            ox = self.oxide(elm)
            q = value / ox.weight_fraction(elm)
            oxy = oxy - q * ox.weight_fraction(O)
            res[ox.name] = q
        if abs(oxy.nominal_value) > 1.0e-6:
            res[OXYGEN_NAME] = oxy
        return res
