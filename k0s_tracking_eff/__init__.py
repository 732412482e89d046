"""
K0s daughter tracking-efficiency QA

Selects K0s → π⁺π⁻ candidates and histograms daughter ITS / inner-barrel
hit status versus decay radius, transverse momentum and mass.
"""

from .modules.data_model import Collision, Track, V0Candidate, V0Classification
from .modules.histogram_registry import HistogramRegistry, book_k0s_histograms
from .modules.task import K0sTrackingEfficiencyTask
from .modules.v0_selector import K0sSelector, SelectionCuts

__version__ = "0.1.0"

__all__ = [
    "Collision",
    "Track",
    "V0Candidate",
    "V0Classification",
    "HistogramRegistry",
    "book_k0s_histograms",
    "K0sTrackingEfficiencyTask",
    "K0sSelector",
    "SelectionCuts",
]
