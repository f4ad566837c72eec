"""
Elements and characteristic x-ray line data.
"""

from epmaquant.atomic.elements import Element, as_element, by_symbol, by_atomic_number
from epmaquant.atomic.structures import AtomicShell, LineFamily, XRayTransition, XRayTransitionSet
from epmaquant.atomic import xray_data

__all__ = [
    "Element",
    "as_element",
    "by_symbol",
    "by_atomic_number",
    "AtomicShell",
    "LineFamily",
    "XRayTransition",
    "XRayTransitionSet",
    "xray_data",
]
