"""
Quantification of many k-ratio sets (map pixels, line scans) against one
set of standards.

Standards are validated once, before the first pixel, so configuration
problems abort the whole run. Failures confined to a single pixel are
recorded and the run continues.
"""

from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Mapping, Optional

import numpy as np
import pandas as pd

from epmaquant.atomic.structures import XRayTransitionSet
from epmaquant.core.exceptions import InvalidConfigurationError, QuantificationError
from epmaquant.core.logging_config import get_logger
from epmaquant.quant.conditions import MeasurementConditions
from epmaquant.quant.kratio import KRatioSet
from epmaquant.quant.result_base import ResultTableMixin
from epmaquant.quant.solver import CompositionFromKRatios, QuantResult

logger = get_logger("quant.batch")


@dataclass
class BatchResult(ResultTableMixin):
    """
    Results of :func:`quantify_map`.

    Attributes
    ----------
    results : dict
        Label to :class:`QuantResult` for every pixel that was quantified
    failures : dict
        Label to error message for pixels that could not be quantified
    """

    results: Dict[Hashable, QuantResult] = field(default_factory=dict)
    failures: Dict[Hashable, str] = field(default_factory=dict)

    @property
    def n_pixels(self) -> int:
        return len(self.results) + len(self.failures)

    @property
    def n_failed(self) -> int:
        return len(self.failures)

    @property
    def n_unconverged(self) -> int:
        return sum(1 for r in self.results.values() if not r.converged)

    @property
    def n_warnings(self) -> int:
        return sum(len(r.warnings) for r in self.results.values())

    def to_dataframe(self, normalized: bool = False) -> pd.DataFrame:
        """
        One row per quantified pixel.

        Columns are the element symbols (mass fractions, missing elements
        as 0), followed by ``total``, ``iterations``, ``converged`` and
        ``n_warnings``.
        """
        rows = {}
        for label, res in self.results.items():
            row = dict(res.mass_fractions(normalized=normalized))
            row["total"] = res.analytical_total
            row["iterations"] = res.iterations
            row["converged"] = res.converged
            row["n_warnings"] = len(res.warnings)
            rows[label] = row
        df = pd.DataFrame.from_dict(rows, orient="index")
        if df.empty:
            return df
        meta = ["total", "iterations", "converged", "n_warnings"]
        elements = [c for c in df.columns if c not in meta]
        df[elements] = df[elements].fillna(0.0)
        df.index.name = "pixel"
        return df[elements + meta]

    def to_table(self, title: str = "Batch Quantification Summary") -> str:
        lines = [self._format_header(title)]
        lines.append(f"{'Pixels':<20} {self.n_pixels:>12d}")
        lines.append(f"{'Failed':<20} {self.n_failed:>12d}")
        lines.append(f"{'Not converged':<20} {self.n_unconverged:>12d}")
        lines.append(f"{'Warnings':<20} {self.n_warnings:>12d}")
        if self.results:
            totals = np.array([r.analytical_total for r in self.results.values()])
            lines.append(self._format_separator())
            lines.append(self._format_param_row("Mean total", float(totals.mean())))
            lines.append(self._format_param_row("Std total", float(totals.std())))
            lines.append(self._format_param_row("Min total", float(totals.min())))
            lines.append(self._format_param_row("Max total", float(totals.max())))
        lines.extend(
            self._format_warnings([f"{label}: {msg}" for label, msg in self.failures.items()])
        )
        lines.append(self._format_footer())
        return "\n".join(lines)


def _union(kratio_sets: Mapping[Hashable, KRatioSet]) -> KRatioSet:
    """Every transition set measured in any pixel, with a placeholder k-ratio."""
    res = KRatioSet()
    for krs in kratio_sets.values():
        for xrts in krs:
            if xrts not in res:
                res.add(xrts, 1.0)
    return res


def quantify_map(
    solver: CompositionFromKRatios,
    kratio_sets: Mapping[Hashable, KRatioSet],
    conditions: MeasurementConditions,
    progress_every: Optional[int] = None,
) -> BatchResult:
    """
    Quantify each k-ratio set with the same solver and conditions.

    Parameters
    ----------
    solver : CompositionFromKRatios
        Configured solver; its standard cache is shared by every pixel
    kratio_sets : mapping
        Pixel label to measured k-ratios
    conditions : MeasurementConditions
        Conditions of every pixel
    progress_every : int, optional
        Log progress at INFO level every this many pixels

    Returns
    -------
    BatchResult

    Raises
    ------
    InvalidConfigurationError
        If the standards cannot serve the measured transition sets
    """
    if not kratio_sets:
        raise InvalidConfigurationError("No k-ratio sets to quantify")
    solver.validate(_union(kratio_sets), conditions)

    batch = BatchResult()
    for i, (label, krs) in enumerate(kratio_sets.items(), start=1):
        try:
            batch.results[label] = solver.compute(krs, conditions)
        except QuantificationError as e:
            batch.failures[label] = str(e)
            logger.warning(f"Pixel {label} failed: {e}")
        if progress_every and i % progress_every == 0:
            logger.info(f"Quantified {i}/{len(kratio_sets)} pixels")

    logger.info(
        f"Quantified {len(batch.results)} of {batch.n_pixels} pixels "
        f"({batch.n_failed} failed, {batch.n_unconverged} not converged)"
    )
    return batch


def kratio_sets_from_dataframe(
    df: pd.DataFrame, columns: Mapping[str, XRayTransitionSet], sigma_suffix: str = "_sigma"
) -> Dict[Hashable, KRatioSet]:
    """
    Build per-row k-ratio sets from a table of measurements.

    Parameters
    ----------
    df : DataFrame
        One row per pixel; index values become pixel labels
    columns : mapping
        Column name to :class:`XRayTransitionSet`
    sigma_suffix : str
        A column named ``<column><suffix>`` supplies the 1-sigma uncertainty

    Returns
    -------
    dict
        Pixel label to KRatioSet
    """
    missing: List[str] = [c for c in columns if c not in df.columns]
    if missing:
        raise InvalidConfigurationError(f"Missing k-ratio columns: {', '.join(missing)}")
    res: Dict[Hashable, KRatioSet] = {}
    for label, row in df.iterrows():
        krs = KRatioSet()
        for col, xrts in columns.items():
            sigma_col = f"{col}{sigma_suffix}"
            sigma = float(row[sigma_col]) if sigma_col in df.columns else 0.0
            krs.add(xrts, float(row[col]), sigma)
        res[label] = krs
    return res
