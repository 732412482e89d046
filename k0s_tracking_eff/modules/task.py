"""
Per-event K0s tracking-efficiency task: event counting, V0 selection and
daughter ITS classification into the histogram registry
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from .data_model import (
    Collision,
    Track,
    V0Candidate,
    V0Classification,
    inner_barrel_hits,
    is_set,
)
from .histogram_registry import EVENT_COUNTER, H5_IB, H5_ITS, HistogramRegistry
from .v0_selector import K0sSelector, SelectionCuts


def _daughter(tracks: Sequence[Track], index: int) -> Optional[Track]:
    """Resolve a daughter by global track index; None if it cannot be found"""
    if index is None or index < 0:
        return None
    try:
        return tracks[index]
    except (IndexError, KeyError, TypeError):
        return None


class K0sTrackingEfficiencyTask:
    """
    Per-event K0s selection and daughter ITS classification.

    The task keeps no per-event state: everything it produces goes into the
    injected HistogramRegistry, which serializes concurrent fills.

    Attributes:
        registry: Histogram sink owned by the caller
        selector: K0s candidate selector
    """

    def __init__(self, registry: HistogramRegistry,
                 cuts: Optional[SelectionCuts] = None) -> None:
        self.registry: HistogramRegistry = registry
        self.selector: K0sSelector = K0sSelector(cuts)
        self.logger = logging.getLogger("K0sTrackingEff.Task")

    @property
    def cuts(self) -> SelectionCuts:
        return self.selector.cuts

    def accept_v0(self, v0: V0Candidate, pos_track: Optional[Track],
                  neg_track: Optional[Track], collision: Collision) -> bool:
        return self.selector.accept_v0(v0, pos_track, neg_track, collision)

    def classify_and_record(self, v0: V0Candidate, pos_track: Track,
                            neg_track: Track) -> V0Classification:
        """
        Fill all V0-level histograms for an accepted candidate.

        Args:
            v0: Accepted V0 candidate
            pos_track: Positive daughter
            neg_track: Negative daughter

        Returns:
            The recorded quantities
        """
        fill = self.registry.fill

        fill("Test/h_R", v0.radius)
        fill("Test/h_pT", v0.pt)
        fill("Test/h_mass", v0.mass)

        neg_has_its = is_set(neg_track.has_its)
        if self.cuts.replicate_neg_its_status:
            pos_has_its = neg_has_its
        else:
            pos_has_its = is_set(pos_track.has_its)
        fill("Test/h_negITSStatus", neg_has_its)
        fill("Test/h_posITSStatus", pos_has_its)

        fill(H5_ITS, v0.radius, v0.pt, v0.mass, neg_has_its, pos_has_its)

        result = V0Classification(
            radius=v0.radius,
            pt=v0.pt,
            mass=v0.mass,
            neg_has_its=neg_has_its,
            pos_has_its=pos_has_its,
            neg_ib_hits=inner_barrel_hits(neg_track.its_cluster_map),
            pos_ib_hits=inner_barrel_hits(pos_track.its_cluster_map),
        )
        fill("Test/h_negIBStatus", result.neg_has_ib)
        fill("Test/h_posIBStatus", result.pos_has_ib)
        fill("Test/h_negIBhits", result.neg_ib_hits)
        fill("Test/h_posIBhits", result.pos_ib_hits)

        fill(H5_IB, v0.radius, v0.pt, v0.mass, result.neg_has_ib, result.pos_has_ib)
        return result

    def process(self, collision: Collision, v0s: Iterable[V0Candidate],
                tracks: Sequence[Track]) -> int:
        """
        Process one event.

        Args:
            collision: The event's collision
            v0s: V0 candidates belonging to this collision
            tracks: Track table addressed by the V0 daughter indices

        Returns:
            Number of accepted V0 candidates
        """
        self.registry.fill(EVENT_COUNTER, "Total")
        if self.cuts.event_selection and not is_set(collision.sel8):
            return 0
        self.registry.fill(EVENT_COUNTER, "Selected")

        n_accepted = 0
        for v0 in v0s:
            pos_track = _daughter(tracks, v0.pos_track_index)
            neg_track = _daughter(tracks, v0.neg_track_index)
            if self.accept_v0(v0, pos_track, neg_track, collision):
                self.classify_and_record(v0, pos_track, neg_track)
                n_accepted += 1
        return n_accepted
