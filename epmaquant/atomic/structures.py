"""
Data structures for x-ray emission data.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import FrozenSet, Iterable, Iterator, Optional

from epmaquant.atomic.elements import Element


class LineFamily(IntEnum):
    """X-ray line families ordered from most to least energetic."""

    K = 0
    L = 1
    M = 2
    N = 3


@dataclass(frozen=True, order=True)
class AtomicShell:
    """
    An atomic shell that can be ionized by the electron beam.

    Attributes
    ----------
    element : Element
        Element the shell belongs to
    family : LineFamily
        Line family of x-rays filling a vacancy in this shell
    name : str
        Shell name (e.g. 'K', 'LIII', 'MV')
    edge_energy_keV : float
        Ionization (edge) energy in keV
    """

    element: Element
    family: LineFamily
    name: str
    edge_energy_keV: float

    def overvoltage(self, beam_energy_keV: float) -> float:
        """Ratio of beam energy to edge energy (U0)."""
        return beam_energy_keV / self.edge_energy_keV

    def __str__(self) -> str:
        return f"{self.element.symbol} {self.name}"


@dataclass(frozen=True, order=True)
class XRayTransition:
    """
    A characteristic x-ray transition.

    Attributes
    ----------
    shell : AtomicShell
        Shell in which the vacancy is filled (the ionized shell)
    name : str
        Siegbahn name (e.g. 'Ka1', 'Lb1')
    energy_keV : float
        Photon energy in keV
    weight : float
        Line weight normalized so that the strongest line in the family is 1.0
    """

    shell: AtomicShell
    name: str
    energy_keV: float
    weight: float

    @property
    def element(self) -> Element:
        return self.shell.element

    @property
    def family(self) -> LineFamily:
        return self.shell.family

    @property
    def edge_energy_keV(self) -> float:
        return self.shell.edge_energy_keV

    def __str__(self) -> str:
        return f"{self.element.symbol} {self.name}"


class XRayTransitionSet:
    """
    A set of x-ray transitions of a single element measured together.

    Used as the key identifying which line(s) a k-ratio was measured on.

    Parameters
    ----------
    transitions : iterable of XRayTransition
        The transitions; must be non-empty and share one element
    name : str, optional
        Display name (defaults to the weighiest transition's family, e.g. 'Fe K')
    """

    def __init__(self, transitions: Iterable[XRayTransition], name: Optional[str] = None):
        trs: FrozenSet[XRayTransition] = frozenset(transitions)
        if not trs:
            raise ValueError("An XRayTransitionSet must contain at least one transition")
        elements = {xrt.element for xrt in trs}
        if len(elements) != 1:
            symbols = ", ".join(sorted(e.symbol for e in elements))
            raise ValueError(f"Transitions in one set must share an element, got: {symbols}")
        self._transitions = trs
        self._element = elements.pop()
        self._ordered = tuple(sorted(trs, key=lambda t: (-t.weight, t.name)))
        self._name = name

    @property
    def element(self) -> Element:
        return self._element

    @property
    def transitions(self) -> FrozenSet[XRayTransition]:
        return self._transitions

    @property
    def weighiest_transition(self) -> XRayTransition:
        """The transition with the largest weight."""
        return self._ordered[0]

    @property
    def family(self) -> LineFamily:
        return self.weighiest_transition.family

    @property
    def sum_weight(self) -> float:
        return sum(t.weight for t in self._transitions)

    @property
    def name(self) -> str:
        if self._name:
            return self._name
        return f"{self._element.symbol} {self.family.name}"

    def normalized_weight(self, xrt: XRayTransition) -> float:
        """Weight of ``xrt`` relative to the weighiest transition in this set."""
        return xrt.weight / self.weighiest_transition.weight

    def _key(self):
        return (
            self._element.atomic_number,
            int(self.family),
            tuple(sorted((t.name, t.energy_keV) for t in self._transitions)),
        )

    def __iter__(self) -> Iterator[XRayTransition]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._transitions)

    def __contains__(self, xrt: object) -> bool:
        return xrt in self._transitions

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, XRayTransitionSet):
            return NotImplemented
        return self._transitions == other._transitions

    def __hash__(self) -> int:
        return hash(self._transitions)

    def __lt__(self, other: "XRayTransitionSet") -> bool:
        return self._key() < other._key()

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        names = ", ".join(t.name for t in self._ordered)
        return f"XRayTransitionSet({self._element.symbol}: {names})"
