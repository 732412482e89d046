"""
Global pytest fixtures and configuration for the test suite.

Provides reusable fixtures for testing task components without
duplicating setup code across test modules.
"""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator

import numpy as np
import pytest
import tomli_w

from k0s_tracking_eff.modules.data_model import Collision, Track, V0Candidate
from k0s_tracking_eff.modules.histogram_registry import HistogramRegistry, book_k0s_histograms
from k0s_tracking_eff.modules.task import K0sTrackingEfficiencyTask
from k0s_tracking_eff.modules.v0_selector import SelectionCuts


@pytest.fixture
def tmp_test_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test operations.

    Automatically cleaned up after test completion.
    """
    tmp_dir = Path(tempfile.mkdtemp(prefix="k0s_eff_test_"))
    try:
        yield tmp_dir
    finally:
        if tmp_dir.exists():
            shutil.rmtree(tmp_dir)


@pytest.fixture
def tmp_output_dir(tmp_test_dir: Path) -> Path:
    output_dir = tmp_test_dir / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


@pytest.fixture
def sample_config_files(tmp_test_dir: Path) -> Dict[str, Dict[str, Any]]:
    """
    Provide the content of a complete, valid configuration.

    Returns:
        Mapping of TOML file name to its content
    """
    return {
        "selection.toml": {
            "v0_selection": {"v0cospa": 0.995, "rapidity": 0.5, "nsigma_tpc": 10.0},
            "event_selection": {"enabled": True},
            "compatibility": {"symmetric_nsigma": False, "replicate_neg_its_status": False},
        },
        "histograms.toml": {
            "axes": {
                "radius": {"bins": 100, "start": 0.0, "stop": 10.0, "label": "R (cm)"},
                "pt": {"bins": 200, "start": 0.0, "stop": 10.0},
                "mass": {"bins": 200, "start": 0.4, "stop": 0.6},
            }
        },
        "data.toml": {
            "trees": {"collisions": "O2collision", "tracks": "O2track", "v0s": "O2v0data"},
            "branches": {
                "collisions": {"pos_x": "fPosX", "pos_y": "fPosY", "pos_z": "fPosZ",
                               "sel8": "fSel8"},
                "tracks": {"detector_map": "fDetectorMap", "its_cluster_map": "fITSClusterMap",
                           "tpc_nsigma_pi": "fTPCNSigmaPi"},
                "v0s": {
                    "collision_index": "fIndexCollisions",
                    "pos_track_index": "fIndexTracks_Pos",
                    "neg_track_index": "fIndexTracks_Neg",
                    "x": "fX", "y": "fY", "z": "fZ",
                    "px_pos": "fPxPos", "py_pos": "fPyPos", "pz_pos": "fPzPos",
                    "px_neg": "fPxNeg", "py_neg": "fPyNeg", "pz_neg": "fPzNeg",
                },
            },
            "output": {
                "tables_dir": str(tmp_test_dir / "output" / "tables"),
                "plots_dir": str(tmp_test_dir / "output" / "plots"),
            },
        },
    }


@pytest.fixture
def config_dir_fixture(tmp_test_dir: Path, sample_config_files: Dict[str, Dict[str, Any]]) -> Path:
    """
    Create a temporary config directory with the sample TOML files.
    """
    config_dir = tmp_test_dir / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in sample_config_files.items():
        with open(config_dir / filename, 'wb') as f:
            tomli_w.dump(content, f)
    return config_dir


@pytest.fixture
def registry() -> HistogramRegistry:
    """Registry with the standard K0s histograms booked"""
    return book_k0s_histograms(HistogramRegistry())


@pytest.fixture
def task(registry: HistogramRegistry) -> K0sTrackingEfficiencyTask:
    return K0sTrackingEfficiencyTask(registry, SelectionCuts())


@pytest.fixture
def good_collision() -> Collision:
    return Collision(pos_x=0.0, pos_y=0.0, pos_z=0.0, sel8=True)


@pytest.fixture
def make_track() -> Callable[..., Track]:
    """Factory for daughter tracks that pass all cuts unless overridden"""
    def _make(**overrides: Any) -> Track:
        values = {"has_tpc": True, "has_its": True, "its_cluster_map": 0b111,
                  "tpc_nsigma_pi": 1.0}
        values.update(overrides)
        return Track(**values)
    return _make


@pytest.fixture
def make_v0() -> Callable[..., V0Candidate]:
    """Factory for V0 candidates that pass all cuts unless overridden"""
    def _make(**overrides: Any) -> V0Candidate:
        values = {"pos_track_index": 0, "neg_track_index": 1, "cos_pa": 0.999,
                  "radius": 3.0, "pt": 1.2, "rapidity": 0.1, "mass": 0.4976}
        values.update(overrides)
        return V0Candidate(**values)
    return _make


def _pion_energy(px: float, py: float, pz: float) -> float:
    return float(np.sqrt(px**2 + py**2 + pz**2 + 0.13957039**2))


@pytest.fixture
def deterministic_tables() -> Dict[str, Dict[str, np.ndarray]]:
    """
    Three events with hand-placed V0s.

    - event 0 (sel8): V0 0 points back to the vertex at R = 3 cm and passes;
      V0 1 is displaced perpendicular to its momentum (cosPA = 0) and fails
    - event 1 (no sel8): V0 2 would pass but the event is rejected
    - event 2 (sel8): no V0s
    """
    collisions = {
        "fPosX": np.zeros(3),
        "fPosY": np.zeros(3),
        "fPosZ": np.zeros(3),
        "fSel8": np.array([1, 0, 1], dtype=np.uint8),
    }
    v0s = {
        "fIndexCollisions": np.array([0, 0, 1], dtype=np.int32),
        "fIndexTracks_Pos": np.array([0, 2, 4], dtype=np.int32),
        "fIndexTracks_Neg": np.array([1, 3, 5], dtype=np.int32),
        "fX": np.array([3.0, 0.0, 3.0]),
        "fY": np.array([0.0, 3.0, 0.0]),
        "fZ": np.zeros(3),
        "fPxPos": np.full(3, 0.5), "fPyPos": np.full(3, 0.2), "fPzPos": np.zeros(3),
        "fPxNeg": np.full(3, 0.5), "fPyNeg": np.full(3, -0.2), "fPzNeg": np.zeros(3),
    }
    tracks = {
        "fDetectorMap": np.full(6, 3, dtype=np.uint8),
        "fITSClusterMap": np.full(6, 0b111, dtype=np.uint8),
        "fTPCNSigmaPi": np.ones(6, dtype=np.float32),
    }
    return {"collisions": collisions, "tracks": tracks, "v0s": v0s}


@pytest.fixture
def expected_k0s_mass() -> float:
    """Invariant mass of the hand-placed V0s under the π⁺π⁻ hypothesis"""
    energy = _pion_energy(0.5, 0.2, 0.0) + _pion_energy(0.5, -0.2, 0.0)
    return float(np.sqrt(energy**2 - 1.0))


def pytest_configure(config: pytest.Config) -> None:
    """
    Configure pytest with custom markers.
    """
    config.addinivalue_line("markers", "unit: Fast tests of a single component")
    config.addinivalue_line("markers", "integration: Tests reading ROOT files end to end")
    config.addinivalue_line("markers", "config: Tests of TOML configuration handling")
