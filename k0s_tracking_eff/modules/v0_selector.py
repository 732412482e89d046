"""
K0s candidate selection

SelectionCuts holds the configurable thresholds. K0sSelector applies them either
to a single V0 record or column-wise to a whole V0 table with a logged cut flow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

import awkward as ak
import numpy as np

from .data_model import Collision, Track, V0Candidate, is_missing, is_set
from .exceptions import BranchMissingError, ConfigurationError


def _flag_mask(column: ak.Array) -> np.ndarray:
    """Row-wise is_set over a flag column: None, NaN and zero are unset"""
    values = ak.to_numpy(ak.fill_none(ak.values_astype(column, np.float64), np.nan))
    return ~np.isnan(values) & (values != 0)


@dataclass(frozen=True)
class SelectionCuts:
    """
    Tunable K0s selection.

    Attributes:
        v0cospa: Minimum V0 pointing-angle cosine
        rapidity: Maximum |y| under the K0s hypothesis
        nsigma_tpc: Maximum TPC nSigma(pi) of each daughter
        event_selection: Require sel8 before processing V0s
        symmetric_nsigma: Cut on |nSigma| instead of the upper bound only
        replicate_neg_its_status: Copy the negative daughter's ITS flag
            into the positive one (reproduces legacy output)
    """

    v0cospa: float = 0.995
    rapidity: float = 0.5
    nsigma_tpc: float = 10.0
    event_selection: bool = True
    symmetric_nsigma: bool = False
    replicate_neg_its_status: bool = False

    def __post_init__(self) -> None:
        if not -1.0 <= self.v0cospa <= 1.0:
            raise ConfigurationError(f"v0cospa must be in [-1, 1], got {self.v0cospa}")
        if self.rapidity <= 0.0:
            raise ConfigurationError(f"rapidity must be positive, got {self.rapidity}")
        if self.nsigma_tpc <= 0.0:
            raise ConfigurationError(f"nsigma_tpc must be positive, got {self.nsigma_tpc}")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "SelectionCuts":
        """
        Build cuts from a (possibly partial) mapping, keeping defaults for
        absent keys.

        Raises:
            ConfigurationError: On unknown keys or wrongly typed values
        """
        known = set(cls.__dataclass_fields__)
        unknown = set(values) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown selection parameter(s): {sorted(unknown)}. "
                f"Allowed: {sorted(known)}"
            )
        kwargs: Dict[str, Any] = {}
        for key, value in values.items():
            default = getattr(cls, key)
            if isinstance(default, bool):
                if not isinstance(value, bool):
                    raise ConfigurationError(f"{key} must be a boolean, got {value!r}")
                kwargs[key] = value
            else:
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ConfigurationError(f"{key} must be a number, got {value!r}")
                kwargs[key] = float(value)
        return cls(**kwargs)

    def replace(self, **overrides: Any) -> "SelectionCuts":
        """Return a copy with the non-None overrides applied"""
        values = asdict(self)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return SelectionCuts(**values)


class K0sSelector:
    """
    Apply the K0s candidate cuts.

    The same cuts are available per candidate (``accept_v0``) and on a whole
    columnar V0 table (``apply_v0_cuts``). Both reject candidates with missing
    or NaN inputs.
    """

    def __init__(self, cuts: Optional[SelectionCuts] = None) -> None:
        self.cuts: SelectionCuts = cuts if cuts is not None else SelectionCuts()
        self.logger = logging.getLogger("K0sTrackingEff.K0sSelector")

    def _pid_ok(self, nsigma: Optional[float]) -> bool:
        if is_missing(nsigma):
            return False
        if self.cuts.symmetric_nsigma:
            return abs(nsigma) <= self.cuts.nsigma_tpc
        return nsigma <= self.cuts.nsigma_tpc

    def accept_v0(self,
                  v0: V0Candidate,
                  pos_track: Optional[Track],
                  neg_track: Optional[Track],
                  collision: Collision) -> bool:
        """
        Decide whether a V0 candidate passes the K0s selection.

        Args:
            v0: V0 candidate
            pos_track: Positive daughter, None if it could not be resolved
            neg_track: Negative daughter, None if it could not be resolved
            collision: Parent collision (cosPA is relative to its vertex)

        Returns:
            True if the candidate passes all cuts
        """
        if pos_track is None or neg_track is None or collision is None:
            return False
        if any(is_missing(x) for x in (v0.radius, v0.pt, v0.mass)):
            return False

        # V0 cuts
        if is_missing(v0.cos_pa) or v0.cos_pa < self.cuts.v0cospa:
            return False
        if is_missing(v0.rapidity) or abs(v0.rapidity) > self.cuts.rapidity:
            return False

        # Daughter cuts
        if not (is_set(pos_track.has_tpc) and is_set(neg_track.has_tpc)):
            return False
        if not self._pid_ok(pos_track.tpc_nsigma_pi) or not self._pid_ok(neg_track.tpc_nsigma_pi):
            return False
        return True

    def apply_v0_cuts(self, v0s: ak.Array) -> ak.Array:
        """
        Apply the candidate cuts to a flat V0 table with joined daughter columns.

        Required fields: cos_pa, rapidity, pos_has_tpc, neg_has_tpc,
        pos_tpc_nsigma_pi, neg_tpc_nsigma_pi.

        Args:
            v0s: Awkward array of V0 rows

        Returns:
            Rows passing all cuts

        Raises:
            BranchMissingError: If a required field is absent
        """
        required = ["cos_pa", "rapidity", "pos_has_tpc", "neg_has_tpc",
                    "pos_tpc_nsigma_pi", "neg_tpc_nsigma_pi"]
        for field in required:
            if field not in v0s.fields:
                raise BranchMissingError(field)

        n_before = len(v0s)
        cutflow = [("all", n_before)]

        # None entries fail every cut
        cos_pa = ak.fill_none(v0s["cos_pa"], np.nan)
        rapidity = ak.fill_none(v0s["rapidity"], np.nan)
        mask = np.ones(n_before, dtype=bool)
        for field in ("radius", "pt", "mass"):
            if field in v0s.fields:
                mask = mask & ~np.isnan(ak.to_numpy(ak.fill_none(v0s[field], np.nan)))

        mask = mask & ak.to_numpy(cos_pa >= self.cuts.v0cospa)
        cutflow.append(("cosPA", int(np.sum(mask))))

        mask = mask & ak.to_numpy(abs(rapidity) <= self.cuts.rapidity)
        cutflow.append(("rapidity", int(np.sum(mask))))

        mask = mask & _flag_mask(v0s["pos_has_tpc"]) & _flag_mask(v0s["neg_has_tpc"])
        cutflow.append(("TPC", int(np.sum(mask))))

        for charge in ("pos", "neg"):
            nsigma = ak.fill_none(v0s[f"{charge}_tpc_nsigma_pi"], np.nan)
            if self.cuts.symmetric_nsigma:
                nsigma = abs(nsigma)
            mask = mask & ak.to_numpy(nsigma <= self.cuts.nsigma_tpc)
        cutflow.append(("nSigmaTPC", int(np.sum(mask))))

        for step, n_pass in cutflow[1:]:
            frac = 100 * n_pass / n_before if n_before else 0.0
            self.logger.info(f"  {step:>10}: {n_before} → {n_pass} ({frac:.1f}%)")

        return v0s[mask]
