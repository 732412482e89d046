"""
Named histogram sink for the K0s task

The task fills histograms by name through a HistogramRegistry owned by the
caller. Dense histograms are ``hist.Hist`` objects; the five-dimensional
status histograms are sparse (only occupied bins are stored).
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import hist
import numpy as np
from hist import Hist

from .exceptions import HistogramError

Axis = Union[hist.axis.Regular, hist.axis.Integer, hist.axis.Variable,
             hist.axis.StrCategory, hist.axis.IntCategory]


def _flow_index(axis: Axis, value: Any) -> Optional[int]:
    """
    Position of ``value`` in the axis' flow-inclusive view, or None when the
    value falls in a flow bin the axis does not have.
    """
    idx = int(axis.index(value))
    underflow = bool(axis.traits.underflow)
    overflow = bool(axis.traits.overflow)
    if idx < 0:
        return 0 if underflow else None
    if idx >= axis.size:
        return axis.size + int(underflow) if overflow else None
    return idx + int(underflow)


def _coerce(value: Any) -> Any:
    # bool/np.bool_ status flags land in the integer 0/1 bins
    if isinstance(value, (bool, np.bool_)):
        return int(value)
    return value


class SparseHistogram:
    """
    N-dimensional histogram storing only occupied bins.

    Bins are addressed with ``hist`` axes; counts live in a mapping from
    flow-inclusive bin-index tuples to the number of entries.
    """

    def __init__(self, *axes: Axis, name: str = "", label: str = "") -> None:
        if not axes:
            raise HistogramError("SparseHistogram needs at least one axis")
        self.axes: Tuple[Axis, ...] = tuple(axes)
        self.name = name
        self.label = label
        self._counts: Counter = Counter()
        self.n_entries = 0
        self.n_dropped = 0

    @property
    def ndim(self) -> int:
        return len(self.axes)

    @property
    def n_filled_bins(self) -> int:
        return len(self._counts)

    def fill(self, *values: Any) -> None:
        if len(values) != self.ndim:
            raise HistogramError(
                f"{self.name or 'sparse histogram'} expects {self.ndim} coordinates, "
                f"got {len(values)}"
            )
        self.n_entries += 1
        key = []
        for axis, value in zip(self.axes, values):
            idx = _flow_index(axis, _coerce(value))
            if idx is None:
                self.n_dropped += 1
                return
            key.append(idx)
        self._counts[tuple(key)] += 1

    def items(self) -> Iterator[Tuple[Tuple[int, ...], int]]:
        """Iterate over (flow-inclusive bin-index tuple, count)"""
        return iter(self._counts.items())

    def sum(self) -> float:
        return float(sum(self._counts.values()))

    def _axis_position(self, axis_name: str) -> int:
        for i, axis in enumerate(self.axes):
            if axis.name == axis_name:
                return i
        raise HistogramError(
            f"Axis '{axis_name}' not found; available: {[a.name for a in self.axes]}"
        )

    def project(self, *axis_names: str) -> Hist:
        """
        Project onto the named axes, summing over all others (flow included).

        Returns:
            Dense ``hist.Hist`` over the selected axes
        """
        if not axis_names:
            raise HistogramError("project() needs at least one axis name")
        positions = [self._axis_position(n) for n in axis_names]
        dense = Hist(*(self.axes[p] for p in positions), storage=hist.storage.Double())
        view = dense.view(flow=True)
        for key, count in self._counts.items():
            view[tuple(key[p] for p in positions)] += count
        return dense

    def to_dense(self) -> Hist:
        return self.project(*(axis.name for axis in self.axes))


class HistogramRegistry:
    """
    Thread-safe collection of named histograms.

    Attributes:
        name: Registry name, used as a prefix in log messages
    """

    def __init__(self, name: str = "K0sTrackingEfficiency") -> None:
        self.name = name
        self._histograms: Dict[str, Union[Hist, SparseHistogram]] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger("K0sTrackingEff.HistogramRegistry")

    def add(self, name: str, *axes: Axis, sparse: bool = False,
            label: str = "") -> Union[Hist, SparseHistogram]:
        """
        Book a histogram.

        Args:
            name: Unique key, e.g. "Test/h_R"
            axes: ``hist`` axes defining the binning
            sparse: Store only occupied bins
            label: Optional title

        Raises:
            HistogramError: If the name is already booked
        """
        if name in self._histograms:
            raise HistogramError(f"Histogram '{name}' already booked in {self.name}")
        if sparse:
            h = SparseHistogram(*axes, name=name, label=label)
        else:
            h = Hist(*axes, storage=hist.storage.Double(), name=name, label=label)
        self._histograms[name] = h
        self.logger.debug(f"Booked {'sparse ' if sparse else ''}{len(axes)}D histogram {name}")
        return h

    def fill(self, name: str, *values: Any) -> None:
        """
        Add one entry at the given coordinates.

        Raises:
            HistogramError: If ``name`` was not booked or the dimension is wrong
        """
        h = self.get(name)
        coords = [_coerce(v) for v in values]
        with self._lock:
            if isinstance(h, SparseHistogram):
                h.fill(*coords)
            else:
                if len(coords) != len(h.axes):
                    raise HistogramError(
                        f"{name} expects {len(h.axes)} coordinates, got {len(coords)}"
                    )
                h.fill(*coords)

    def get(self, name: str) -> Union[Hist, SparseHistogram]:
        try:
            return self._histograms[name]
        except KeyError:
            raise HistogramError(f"Histogram '{name}' is not booked in {self.name}") from None

    def names(self) -> List[str]:
        return list(self._histograms)

    def __contains__(self, name: str) -> bool:
        return name in self._histograms

    def __len__(self) -> int:
        return len(self._histograms)


# Default binning of the standard K0s histograms
DEFAULT_AXES: Dict[str, Dict[str, Any]] = {
    "radius": {"bins": 100, "start": 0.0, "stop": 10.0, "label": "R (cm)"},
    "pt": {"bins": 200, "start": 0.0, "stop": 10.0, "label": "p_T (GeV/c)"},
    "mass": {"bins": 200, "start": 0.4, "stop": 0.6, "label": "m (GeV/c^2)"},
}

EVENT_COUNTER = "h_EventCounter"
H5_ITS = "h5_RpTmassITSStatus"
H5_IB = "h5_RpTmassIBStatus"


def _regular(name: str, spec: Dict[str, Any]) -> hist.axis.Regular:
    try:
        return hist.axis.Regular(int(spec["bins"]), float(spec["start"]), float(spec["stop"]),
                                 name=name, label=spec.get("label", name))
    except (KeyError, TypeError, ValueError) as e:
        raise HistogramError(f"Invalid axis specification for '{name}': {spec} ({e})") from e


def book_k0s_histograms(registry: HistogramRegistry,
                        axes_config: Optional[Dict[str, Dict[str, Any]]] = None) -> HistogramRegistry:
    """
    Book the event counter, the two 5D status histograms and the 1D control
    histograms.

    Args:
        registry: Registry to book into
        axes_config: Optional overrides of DEFAULT_AXES, keyed by axis name

    Returns:
        The same registry
    """
    specs = {name: dict(spec) for name, spec in DEFAULT_AXES.items()}
    for name, spec in (axes_config or {}).items():
        if name not in specs:
            raise HistogramError(f"Unknown axis '{name}'; known axes: {sorted(specs)}")
        specs[name].update(spec)

    r_axis = _regular("radius", specs["radius"])
    pt_axis = _regular("pt", specs["pt"])
    m_axis = _regular("mass", specs["mass"])

    def status_axis(name: str) -> hist.axis.Integer:
        return hist.axis.Integer(0, 2, name=name, label=name, underflow=False, overflow=False)

    def nhits_axis(name: str) -> hist.axis.Integer:
        return hist.axis.Integer(0, 4, name=name, label=name, underflow=False, overflow=False)

    registry.add(EVENT_COUNTER,
                 hist.axis.StrCategory(["Total", "Selected"], name="counter"))

    registry.add(H5_ITS, r_axis, pt_axis, m_axis,
                 status_axis("neg_its"), status_axis("pos_its"), sparse=True, label=H5_ITS)
    registry.add(H5_IB, r_axis, pt_axis, m_axis,
                 status_axis("neg_ib"), status_axis("pos_ib"), sparse=True, label=H5_IB)

    registry.add("Test/h_R", r_axis, label="h_R")
    registry.add("Test/h_pT", pt_axis, label="h_pT")
    registry.add("Test/h_mass", m_axis, label="h_mass")
    registry.add("Test/h_negITSStatus", status_axis("neg_its"), label="h_negITSStatus")
    registry.add("Test/h_posITSStatus", status_axis("pos_its"), label="h_posITSStatus")
    registry.add("Test/h_negIBStatus", status_axis("neg_ib"), label="h_negIBStatus")
    registry.add("Test/h_posIBStatus", status_axis("pos_ib"), label="h_posIBStatus")
    registry.add("Test/h_negIBhits", nhits_axis("neg_ib_hits"), label="h_negIBhits")
    registry.add("Test/h_posIBhits", nhits_axis("pos_ib_hits"), label="h_posIBhits")

    return registry
