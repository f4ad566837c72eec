"""
Shared result formatting utilities for quantification results.

Used by:
- QuantResult (solver.py)
- LayeredResult (layered.py)
- BatchResult (batch.py)
"""

from typing import Dict, List, Optional

from epmaquant.material.composition import Composition

# Table formatting constants
TABLE_WIDTH = 70
TABLE_SEP = "-" * TABLE_WIDTH
TABLE_HEADER = "=" * TABLE_WIDTH


class ResultTableMixin:
    """
    Mixin providing shared table formatting for result classes.
    """

    @staticmethod
    def _format_header(title: str) -> str:
        """Format a table header with title."""
        return f"{TABLE_HEADER}\n{title}\n{TABLE_HEADER}"

    @staticmethod
    def _format_separator() -> str:
        """Return a horizontal separator line."""
        return TABLE_SEP

    @staticmethod
    def _format_footer() -> str:
        """Return a table footer."""
        return TABLE_HEADER

    @staticmethod
    def _format_param_row(label: str, value: float, fmt: str = ".4f") -> str:
        """Format a single label/value row."""
        return f"{label:<20} {value:>12{fmt}}"

    def _format_composition_table(
        self, comp: Composition, kratios: Optional[Dict[str, float]] = None
    ) -> List[str]:
        """
        Format composition table rows.

        Parameters
        ----------
        comp : Composition
            Composition to tabulate
        kratios : dict, optional
            K-ratio used per element symbol

        Returns
        -------
        list of str
            Formatted table rows
        """
        lines = [TABLE_SEP]
        lines.append(
            f"{'Element':<8} {'Mass frac.':>11} {'Std':>9} {'Norm.':>9} {'Atomic':>9} {'k-ratio':>10}"
        )
        lines.append(TABLE_SEP)

        atomic = comp.atomic_fractions()
        for elm in comp.elements:
            value = comp.weight_fraction_u(elm)
            norm = comp.weight_fraction(elm, normalized=True)
            k = (kratios or {}).get(elm.symbol)
            k_str = f"{k:>10.4f}" if k is not None else f"{'-':>10}"
            lines.append(
                f"{elm.symbol:<8} {value.nominal_value:>11.4f} {value.std_dev:>9.4f} "
                f"{norm:>9.4f} {atomic[elm]:>9.4f} {k_str}"
            )

        lines.append(TABLE_SEP)
        lines.append(self._format_param_row("Total", comp.sum_weight_fraction()))
        return lines

    @staticmethod
    def _format_warnings(warnings: List[str]) -> List[str]:
        if not warnings:
            return []
        lines = [TABLE_SEP, f"Warnings ({len(warnings)}):"]
        lines.extend(f"  - {w}" for w in warnings)
        return lines
