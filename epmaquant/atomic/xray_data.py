"""
Built-in x-ray line data.

A compact table of the principal characteristic lines for elements commonly
quantified by EPMA/EDS. Energies and edges are in keV; weights are relative to
the strongest line of the family.
"""

from collections import defaultdict
from typing import Dict, List, Tuple, Union

from epmaquant.atomic.elements import Element, ElementLike, as_element
from epmaquant.atomic.structures import AtomicShell, LineFamily, XRayTransition, XRayTransitionSet

# symbol -> [(shell, edge_keV, [(line, energy_keV, weight), ...]), ...]
_LINE_DATA: Dict[str, List[Tuple[str, float, List[Tuple[str, float, float]]]]] = {
    "C": [("K", 0.2838, [("Ka", 0.2774, 1.0)])],
    "N": [("K", 0.4016, [("Ka", 0.3924, 1.0)])],
    "O": [("K", 0.5317, [("Ka", 0.5249, 1.0)])],
    "F": [("K", 0.6854, [("Ka", 0.6768, 1.0)])],
    "Na": [("K", 1.0721, [("Ka", 1.0410, 1.0), ("Kb", 1.0711, 0.01)])],
    "Mg": [("K", 1.3050, [("Ka", 1.2536, 1.0), ("Kb", 1.3022, 0.01)])],
    "Al": [("K", 1.5596, [("Ka1", 1.4866, 1.0), ("Ka2", 1.4863, 0.5), ("Kb1", 1.5575, 0.013)])],
    "Si": [("K", 1.8389, [("Ka1", 1.7398, 1.0), ("Ka2", 1.7394, 0.5), ("Kb1", 1.8359, 0.028)])],
    "P": [("K", 2.1455, [("Ka1", 2.0137, 1.0), ("Ka2", 2.0127, 0.5), ("Kb1", 2.1391, 0.04)])],
    "S": [("K", 2.4720, [("Ka1", 2.3078, 1.0), ("Ka2", 2.3066, 0.5), ("Kb1", 2.4640, 0.06)])],
    "Cl": [("K", 2.8224, [("Ka1", 2.6224, 1.0), ("Ka2", 2.6208, 0.5), ("Kb1", 2.8156, 0.08)])],
    "K": [("K", 3.6074, [("Ka1", 3.3138, 1.0), ("Ka2", 3.3111, 0.5), ("Kb1", 3.5896, 0.11)])],
    "Ca": [("K", 4.0381, [("Ka1", 3.6917, 1.0), ("Ka2", 3.6881, 0.5), ("Kb1", 4.0127, 0.12)])],
    "Ti": [
        ("K", 4.9664, [("Ka1", 4.5109, 1.0), ("Ka2", 4.5049, 0.5), ("Kb1", 4.9318, 0.13)]),
        ("LIII", 0.4555, [("La", 0.4522, 1.0)]),
    ],
    "Cr": [
        ("K", 5.9892, [("Ka1", 5.4147, 1.0), ("Ka2", 5.4055, 0.5), ("Kb1", 5.9467, 0.13)]),
        ("LIII", 0.5745, [("La", 0.5728, 1.0)]),
    ],
    "Mn": [
        ("K", 6.5390, [("Ka1", 5.8988, 1.0), ("Ka2", 5.8877, 0.5), ("Kb1", 6.4904, 0.13)]),
        ("LIII", 0.6387, [("La", 0.6374, 1.0)]),
    ],
    "Fe": [
        ("K", 7.1120, [("Ka1", 6.4039, 1.0), ("Ka2", 6.3908, 0.5), ("Kb1", 7.0580, 0.13)]),
        ("LIII", 0.7079, [("La", 0.7050, 1.0)]),
        ("LII", 0.7210, [("Lb1", 0.7185, 0.3)]),
    ],
    "Co": [
        ("K", 7.7089, [("Ka1", 6.9303, 1.0), ("Ka2", 6.9153, 0.5), ("Kb1", 7.6494, 0.13)]),
        ("LIII", 0.7780, [("La", 0.7762, 1.0)]),
    ],
    "Ni": [
        ("K", 8.3328, [("Ka1", 7.4781, 1.0), ("Ka2", 7.4609, 0.5), ("Kb1", 8.2647, 0.13)]),
        ("LIII", 0.8547, [("La", 0.8515, 1.0)]),
        ("LII", 0.8719, [("Lb1", 0.8688, 0.3)]),
    ],
    "Cu": [
        ("K", 8.9789, [("Ka1", 8.0478, 1.0), ("Ka2", 8.0278, 0.5), ("Kb1", 8.9053, 0.13)]),
        ("LIII", 0.9327, [("La", 0.9297, 1.0)]),
        ("LII", 0.9523, [("Lb1", 0.9498, 0.3)]),
    ],
    "Zn": [
        ("K", 9.6586, [("Ka1", 8.6389, 1.0), ("Ka2", 8.6158, 0.5), ("Kb1", 9.5720, 0.13)]),
        ("LIII", 1.0197, [("La", 1.0116, 1.0)]),
    ],
    "Mo": [
        ("K", 20.0000, [("Ka1", 17.4793, 1.0), ("Ka2", 17.3743, 0.5), ("Kb1", 19.6083, 0.15)]),
        ("LIII", 2.5202, [("La", 2.2932, 1.0)]),
        ("LII", 2.6251, [("Lb1", 2.3948, 0.5)]),
    ],
    "Ag": [
        ("K", 25.5140, [("Ka1", 22.1629, 1.0), ("Ka2", 21.9903, 0.5), ("Kb1", 24.9424, 0.16)]),
        ("LIII", 3.3511, [("La", 2.9843, 1.0)]),
    ],
    "W": [
        ("LIII", 10.2068, [("La", 8.3976, 1.0)]),
        ("LII", 11.5440, [("Lb1", 9.6724, 0.6)]),
        ("MV", 1.8092, [("Ma", 1.7754, 1.0)]),
    ],
    "Au": [
        ("LIII", 11.9187, [("La", 9.7133, 1.0)]),
        ("LII", 13.7336, [("Lb1", 11.4423, 0.6)]),
        ("MV", 2.2057, [("Ma", 2.1229, 1.0)]),
    ],
    "Pb": [
        ("LIII", 13.0352, [("La", 10.5515, 1.0)]),
        ("LII", 15.2000, [("Lb1", 12.6137, 0.6)]),
        ("MV", 2.4840, [("Ma", 2.3455, 1.0)]),
    ],
}


def _family_of(shell: str) -> LineFamily:
    return LineFamily[shell[0]]


def _build_transitions() -> Dict[Element, Tuple[XRayTransition, ...]]:
    res: Dict[Element, Tuple[XRayTransition, ...]] = {}
    for symbol, shells in _LINE_DATA.items():
        elm = as_element(symbol)
        trs = []
        for shell_name, edge, lines in shells:
            shell = AtomicShell(elm, _family_of(shell_name), shell_name, edge)
            for line, energy, weight in lines:
                if energy >= edge:
                    raise RuntimeError(f"{symbol} {line} lies above its {shell_name} edge")
                trs.append(XRayTransition(shell, line, energy, weight))
        res[elm] = tuple(trs)
    return res


_TRANSITIONS = _build_transitions()


def available_elements() -> List[Element]:
    """Elements with built-in line data."""
    return sorted(_TRANSITIONS)


def transitions(element: ElementLike) -> Tuple[XRayTransition, ...]:
    """
    Return all built-in transitions of an element.

    Raises
    ------
    KeyError
        If the element has no line data
    """
    elm = as_element(element)
    if elm not in _TRANSITIONS:
        raise KeyError(f"No x-ray line data for {elm.symbol}")
    return _TRANSITIONS[elm]


def families(element: ElementLike) -> List[LineFamily]:
    """Line families available for an element, K first."""
    return sorted({t.family for t in transitions(element)})


def transition_set(element: ElementLike, family: Union[LineFamily, str]) -> XRayTransitionSet:
    """
    Build the transition set for one line family of an element.

    Parameters
    ----------
    element : Element, str or int
        Element
    family : LineFamily or str
        'K', 'L', 'M' or 'N'

    Returns
    -------
    XRayTransitionSet
    """
    if isinstance(family, str):
        family = LineFamily[family.strip().upper()]
    trs = [t for t in transitions(element) if t.family == family]
    if not trs:
        raise KeyError(f"No {family.name} lines for {as_element(element).symbol}")
    return XRayTransitionSet(trs)


def all_transition_sets(element: ElementLike) -> List[XRayTransitionSet]:
    """One transition set per available line family."""
    by_family = defaultdict(list)
    for t in transitions(element):
        by_family[t.family].append(t)
    return [XRayTransitionSet(by_family[fam]) for fam in sorted(by_family)]
