"""
Module for extracting daughter tracking efficiencies

The 5D status histograms hold, per (R, pT, mass) bin, how many accepted K0s
had daughters with/without ITS (or inner-barrel) hits. Projecting onto one
kinematic variable and the two status axes gives the efficiency curves.
"""

from __future__ import annotations

import logging
from typing import Dict, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from .exceptions import EfficiencyError
from .histogram_registry import EVENT_COUNTER, H5_IB, H5_ITS, HistogramRegistry, SparseHistogram

# Central 1σ interval
CONFIDENCE_LEVEL = 0.6827

STATUS_HISTOGRAMS = {
    "ITS": (H5_ITS, "neg_its", "pos_its"),
    "IB": (H5_IB, "neg_ib", "pos_ib"),
}

VARIABLES = ("radius", "pt", "mass")

REQUIREMENTS = ("both", "neg", "pos", "any")


def clopper_pearson(n_pass: np.ndarray, n_total: np.ndarray,
                    cl: float = CONFIDENCE_LEVEL) -> Tuple[np.ndarray, np.ndarray]:
    """
    Clopper-Pearson interval for binomial efficiencies

    Args:
        n_pass: Passing counts
        n_total: Total counts
        cl: Confidence level of the central interval

    Returns:
        (lower, upper) bounds; NaN where n_total == 0
    """
    n_pass = np.asarray(n_pass, dtype=float)
    n_total = np.asarray(n_total, dtype=float)
    alpha = 1.0 - cl
    with np.errstate(invalid="ignore", divide="ignore"):
        lower = np.where(n_pass > 0,
                         stats.beta.ppf(alpha / 2, n_pass, n_total - n_pass + 1), 0.0)
        upper = np.where(n_pass < n_total,
                         stats.beta.ppf(1 - alpha / 2, n_pass + 1, n_total - n_pass), 1.0)
    empty = n_total <= 0
    lower = np.where(empty, np.nan, lower)
    upper = np.where(empty, np.nan, upper)
    return lower, upper


class EfficiencyCalculator:
    """Class for computing ITS / inner-barrel daughter efficiencies"""

    def __init__(self, registry: HistogramRegistry):
        self.registry = registry
        self.logger = logging.getLogger("K0sTrackingEff.EfficiencyCalculator")

    def _status_histogram(self, status: str) -> Tuple[SparseHistogram, str, str]:
        if status not in STATUS_HISTOGRAMS:
            raise EfficiencyError(
                f"Unknown status type '{status}'. Choose from {sorted(STATUS_HISTOGRAMS)}"
            )
        name, neg_axis, pos_axis = STATUS_HISTOGRAMS[status]
        if name not in self.registry:
            raise EfficiencyError(f"Histogram '{name}' is not booked")
        return self.registry.get(name), neg_axis, pos_axis

    @staticmethod
    def _passing(counts: np.ndarray, require: str) -> np.ndarray:
        # counts has shape (n_bins, 2, 2) indexed [bin, neg, pos]
        if require == "both":
            return counts[:, 1, 1]
        if require == "neg":
            return counts[:, 1, :].sum(axis=1)
        if require == "pos":
            return counts[:, :, 1].sum(axis=1)
        return counts.sum(axis=(1, 2)) - counts[:, 0, 0]

    def efficiency_vs(self, variable: str, status: str = "ITS",
                      require: str = "both") -> pd.DataFrame:
        """
        Efficiency of the daughter hit requirement versus one V0 variable

        Args:
            variable: "radius", "pt" or "mass"
            status: "ITS" (any ITS hit) or "IB" (inner-barrel hit)
            require: Which daughters must have the hit: "both", "neg",
                "pos" or "any"

        Returns:
            DataFrame with bin edges, n_total, n_pass, efficiency, err_low,
            err_high (one row per in-range bin)

        Raises:
            EfficiencyError: On unknown variable, status or requirement
        """
        if variable not in VARIABLES:
            raise EfficiencyError(f"Unknown variable '{variable}'. Choose from {VARIABLES}")
        if require not in REQUIREMENTS:
            raise EfficiencyError(f"Unknown requirement '{require}'. Choose from {REQUIREMENTS}")

        h5, neg_axis, pos_axis = self._status_histogram(status)
        projection = h5.project(variable, neg_axis, pos_axis)
        counts = projection.values()

        n_total = counts.sum(axis=(1, 2))
        n_pass = self._passing(counts, require)
        with np.errstate(invalid="ignore", divide="ignore"):
            efficiency = np.where(n_total > 0, n_pass / n_total, np.nan)
        lower, upper = clopper_pearson(n_pass, n_total)

        edges = projection.axes[0].edges
        table = pd.DataFrame({
            "low": edges[:-1],
            "high": edges[1:],
            "n_total": n_total,
            "n_pass": n_pass,
            "efficiency": efficiency,
            "err_low": efficiency - lower,
            "err_high": upper - efficiency,
        })
        self.logger.debug(
            f"{status} efficiency vs {variable} ({require}): "
            f"{int(n_pass.sum())}/{int(n_total.sum())}"
        )
        return table

    def integrated_efficiency(self, status: str = "ITS", require: str = "both") -> float:
        """Efficiency over all accepted candidates; NaN if there are none"""
        if require not in REQUIREMENTS:
            raise EfficiencyError(f"Unknown requirement '{require}'. Choose from {REQUIREMENTS}")
        h5, neg_axis, pos_axis = self._status_histogram(status)
        # projecting onto the status axes keeps kinematic under/overflow
        counts = h5.project(neg_axis, pos_axis).values()
        n_total = counts.sum()
        if n_total == 0:
            return float("nan")
        n_pass = self._passing(counts[np.newaxis, ...], require)[0]
        return float(n_pass / n_total)

    def event_counts(self) -> Dict[str, int]:
        counter = self.registry.get(EVENT_COUNTER)
        values = counter.values()
        return {label: int(values[i]) for i, label in enumerate(counter.axes[0])}

    def summary(self) -> Dict[str, float]:
        """
        Integrated efficiencies and event counts

        Returns:
            Dictionary with n_total_events, n_selected_events, n_v0,
            eff_its_both, eff_ib_both
        """
        events = self.event_counts()
        h5_its, _, _ = self._status_histogram("ITS")
        summary = {
            "n_total_events": events.get("Total", 0),
            "n_selected_events": events.get("Selected", 0),
            "n_v0": int(h5_its.sum()),
            "eff_its_both": self.integrated_efficiency("ITS", "both"),
            "eff_ib_both": self.integrated_efficiency("IB", "both"),
        }
        for key, value in summary.items():
            self.logger.info(f"  {key}: {value}")
        return summary
