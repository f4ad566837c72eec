"""
Measured k-ratios.

A k-ratio is the intensity of a line (or set of lines) measured on the unknown
divided by the intensity of the same line(s) measured on a standard under the
same conditions.
"""

from typing import Dict, Iterator, List, Optional, Union

from uncertainties import UFloat

from epmaquant.atomic.elements import Element, ElementLike, as_element
from epmaquant.atomic.structures import XRayTransition, XRayTransitionSet
from epmaquant.material.composition import to_ufloat


class KRatioSet:
    """
    Map from :class:`XRayTransitionSet` to a k-ratio with uncertainty.

    Each transition set appears at most once; adding it again replaces the
    previous value. Several transition sets (line families) may be stored for
    one element.
    """

    def __init__(self):
        self._data: Dict[XRayTransitionSet, UFloat] = {}

    def add(
        self,
        xrts: XRayTransitionSet,
        kratio: Union[float, UFloat],
        uncertainty: float = 0.0,
    ) -> None:
        """
        Add (or replace) the k-ratio measured on ``xrts``.

        Parameters
        ----------
        xrts : XRayTransitionSet
            Measured line(s)
        kratio : float or UFloat
            K-ratio; may be slightly negative for an absent element
        uncertainty : float
            One-sigma uncertainty when ``kratio`` is a plain float
        """
        if uncertainty < 0.0:
            raise ValueError(f"K-ratio uncertainty must be non-negative, got {uncertainty}")
        self._data[xrts] = to_ufloat(kratio, uncertainty)

    def remove(self, xrts: XRayTransitionSet) -> None:
        self._data.pop(xrts, None)

    def raw_kratio(self, xrts: XRayTransitionSet) -> UFloat:
        """The k-ratio as measured, possibly negative (zero if absent)."""
        return self._data.get(xrts, to_ufloat(0.0))

    def kratio_u(self, xrts: XRayTransitionSet) -> UFloat:
        """The k-ratio forced non-negative, keeping its uncertainty."""
        raw = self.raw_kratio(xrts)
        if raw.nominal_value >= 0.0:
            return raw
        return to_ufloat(0.0, raw.std_dev)

    def kratio(self, xrts: XRayTransitionSet) -> float:
        return self.kratio_u(xrts).nominal_value

    def kratio_for_transition(self, xrt: XRayTransition) -> float:
        """K-ratio of the first stored set containing ``xrt`` (0.0 if none)."""
        for xrts, value in self._data.items():
            if xrt in xrts:
                return max(0.0, value.nominal_value)
        return 0.0

    def is_available(self, key: Union[XRayTransitionSet, ElementLike]) -> bool:
        if isinstance(key, XRayTransitionSet):
            return key in self._data
        elm = as_element(key)
        return any(xrts.element == elm for xrts in self._data)

    @property
    def elements(self) -> List[Element]:
        return sorted({xrts.element for xrts in self._data})

    def transition_sets(self, element: Optional[ElementLike] = None) -> List[XRayTransitionSet]:
        """All stored transition sets, optionally restricted to one element."""
        if element is None:
            return sorted(self._data)
        elm = as_element(element)
        return sorted(xrts for xrts in self._data if xrts.element == elm)

    def kratio_sum(self) -> float:
        """Sum of the non-negative k-ratios."""
        return sum(max(0.0, v.nominal_value) for v in self._data.values())

    def optimal_datum(self, element: ElementLike) -> Optional[XRayTransitionSet]:
        """The transition set of ``element`` with the smallest uncertainty."""
        best = None
        best_sigma = None
        for xrts in self.transition_sets(element):
            sigma = self._data[xrts].std_dev
            if best is None or sigma < best_sigma:
                best, best_sigma = xrts, sigma
        return best

    def optimal_kratio_set(self) -> "KRatioSet":
        """One entry per element, the one with the smallest uncertainty."""
        res = KRatioSet()
        for elm in self.elements:
            xrts = self.optimal_datum(elm)
            res._data[xrts] = self._data[xrts]
        return res

    def preferred_datum(
        self, element: ElementLike, beam_energy_keV: float, min_overvoltage: float
    ) -> Optional[XRayTransitionSet]:
        """
        Choose the line family to quantify ``element`` with.

        Families are considered K, then L, then M, then N. The first family
        whose weighiest transition is excited with
        ``beam_energy_keV > min_overvoltage * edge`` wins; inside a family the
        set with the largest summed weight is taken. When no family passes the
        test, the family excited with the highest overvoltage is used.
        """
        candidates = self.transition_sets(element)
        if not candidates:
            return None

        def overvoltage(xrts: XRayTransitionSet) -> float:
            return xrts.weighiest_transition.shell.overvoltage(beam_energy_keV)

        by_family: Dict[int, List[XRayTransitionSet]] = {}
        for xrts in candidates:
            by_family.setdefault(int(xrts.family), []).append(xrts)
        for family in sorted(by_family):
            passing = [x for x in by_family[family] if overvoltage(x) > min_overvoltage]
            if passing:
                return max(passing, key=lambda x: (x.sum_weight, -len(x)))
        return max(candidates, key=lambda x: (overvoltage(x), x.sum_weight))

    def preferred_kratio_set(self, beam_energy_keV: float, min_overvoltage: float) -> "KRatioSet":
        """One entry per element, chosen by :meth:`preferred_datum` (raw values kept)."""
        res = KRatioSet()
        for elm in self.elements:
            xrts = self.preferred_datum(elm, beam_energy_keV, min_overvoltage)
            res._data[xrts] = self._data[xrts]
        return res

    def difference(self, other: "KRatioSet") -> float:
        """Root sum of squared differences over the transition sets both contain."""
        total = 0.0
        for xrts, value in self._data.items():
            if other.is_available(xrts):
                total += (value.nominal_value - other.kratio(xrts)) ** 2
        return total**0.5

    def copy(self) -> "KRatioSet":
        res = KRatioSet()
        res._data.update(self._data)
        return res

    def items(self):
        return sorted(self._data.items(), key=lambda item: item[0])

    def __contains__(self, xrts: object) -> bool:
        return xrts in self._data

    def __iter__(self) -> Iterator[XRayTransitionSet]:
        return iter(sorted(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        body = ", ".join(
            f"{xrts.name}={v.nominal_value:.4f}+/-{v.std_dev:.4f}" for xrts, v in self.items()
        )
        return f"KRatioSet({body})"
