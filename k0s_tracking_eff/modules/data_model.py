"""
Read-only event records consumed by the K0s tracking-efficiency task

The host supplies one Collision per event together with its V0 candidates and
the global track table. Records are frozen: the task only reads them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

# Innermost ITS layers forming the inner barrel
N_INNER_BARREL_LAYERS = 3


@dataclass(frozen=True)
class Collision:
    """Reconstructed primary vertex with the event-quality flag"""

    pos_x: float
    pos_y: float
    pos_z: float
    sel8: Optional[bool] = None


@dataclass(frozen=True)
class Track:
    """
    V0 daughter track with detector-hit and PID information.

    Attributes:
        has_tpc: Track has TPC clusters
        has_its: Track has ITS clusters
        its_cluster_map: Bitmask of hit ITS layers (bit i = layer i)
        tpc_nsigma_pi: TPC dE/dx deviation from the pion hypothesis
    """

    has_tpc: Optional[bool] = None
    has_its: Optional[bool] = None
    its_cluster_map: Optional[int] = None
    tpc_nsigma_pi: Optional[float] = None


@dataclass(frozen=True)
class V0Candidate:
    """
    Two-prong decay vertex with kinematics under the K0s hypothesis.

    cos_pa is the pointing-angle cosine with respect to the parent collision
    vertex; radius is the transverse decay radius in cm.
    """

    pos_track_index: int
    neg_track_index: int
    cos_pa: Optional[float] = None
    radius: Optional[float] = None
    pt: Optional[float] = None
    rapidity: Optional[float] = None
    mass: Optional[float] = None


@dataclass(frozen=True)
class V0Classification:
    """Quantities recorded for one accepted V0"""

    radius: float
    pt: float
    mass: float
    neg_has_its: bool
    pos_has_its: bool
    neg_ib_hits: int
    pos_ib_hits: int

    @property
    def neg_has_ib(self) -> bool:
        return self.neg_ib_hits > 0

    @property
    def pos_has_ib(self) -> bool:
        return self.pos_ib_hits > 0


def inner_barrel_hits(its_cluster_map: Optional[int],
                      n_layers: int = N_INNER_BARREL_LAYERS) -> int:
    """
    Count hit layers among the innermost ``n_layers`` of the ITS.

    Args:
        its_cluster_map: ITS layer bitmask, None when unavailable
        n_layers: Number of inner layers to test

    Returns:
        Number of hit layers in [0, n_layers]
    """
    if is_missing(its_cluster_map):
        return 0
    cluster_map = int(its_cluster_map)
    return sum(1 for layer in range(n_layers) if cluster_map & (1 << layer))


def is_missing(value) -> bool:
    """True for None or a NaN float"""
    if value is None:
        return True
    try:
        return math.isnan(value)
    except TypeError:
        return False


def is_set(flag) -> bool:
    """Truth of a detector or event flag; None and NaN count as unset"""
    return not is_missing(flag) and bool(flag)
