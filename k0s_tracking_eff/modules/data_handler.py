"""
Data loading for the K0s tracking-efficiency task

Handles TOML configuration, reading the collision, track and V0 trees with
uproot, derived V0 kinematics, daughter joins and iteration over events.
"""

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

import awkward as ak
import numpy as np
import tomli
import uproot
import vector

from .data_model import Collision, Track, V0Candidate
from .exceptions import BranchMissingError, ConfigurationError, DataLoadError
from .v0_selector import SelectionCuts

# Register vector behavior for 4-momentum calculations
vector.register_awkward()

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

# PDG masses in GeV/c²
PION_MASS = 0.13957039
K0S_MASS = 0.497611

# Detector map bits of the track table
ITS_BIT = 0x1
TPC_BIT = 0x2

TABLES = ("collisions", "tracks", "v0s")


class TOMLConfig:
    """
    Load and manage the TOML configuration files

    - selection.toml: V0 and event selection, compatibility switches
    - histograms.toml: Axis binning of the standard histograms
    - data.toml: Input tree names, branch mapping and output directories
    """

    def __init__(self, config_dir: Union[str, Path, None] = None):
        self.config_dir = Path(config_dir) if config_dir is not None else DEFAULT_CONFIG_DIR

        self.selection = self._load_toml("selection.toml")
        self.histograms = self._load_toml("histograms.toml")
        self.data = self._load_toml("data.toml")

    def _load_toml(self, filename: str) -> dict:
        """
        Load TOML configuration file with proper error handling

        Args:
            filename: Name of the TOML file to load

        Returns:
            dict: Parsed TOML configuration

        Raises:
            ConfigurationError: If file not found or parsing fails
        """
        config_path = self.config_dir / filename
        try:
            with open(config_path, 'rb') as f:
                return tomli.load(f)
        except FileNotFoundError:
            raise ConfigurationError(
                f"Configuration file not found: {config_path}\n"
                f"Please ensure all config files are present in {self.config_dir}"
            )
        except tomli.TOMLDecodeError as e:
            raise ConfigurationError(
                f"Error parsing TOML file {config_path}: {e}"
            )

    def get_selection_cuts(self) -> SelectionCuts:
        """Merge the selection sections into a validated SelectionCuts"""
        values = {}
        values.update(self.selection.get("v0_selection", {}))
        event = self.selection.get("event_selection", {})
        if "enabled" in event:
            values["event_selection"] = event["enabled"]
        values.update(self.selection.get("compatibility", {}))
        return SelectionCuts.from_dict(values)

    def get_axes_config(self) -> Dict[str, dict]:
        """Axis overrides keyed by axis name (radius, pt, mass)"""
        return self.histograms.get("axes", {})

    def get_tree_names(self) -> Dict[str, str]:
        trees = self.data.get("trees", {})
        missing = [t for t in TABLES if t not in trees]
        if missing:
            raise ConfigurationError(f"data.toml [trees] is missing: {missing}")
        return trees

    def get_branch_map(self, table: str) -> Dict[str, str]:
        """Logical column name → branch name for one input table"""
        try:
            return self.data["branches"][table]
        except KeyError:
            raise ConfigurationError(f"data.toml has no [branches.{table}] section")

    def get_output_dirs(self) -> Dict[str, str]:
        output = self.data.get("output", {})
        return {
            "tables_dir": output.get("tables_dir", "output/tables"),
            "plots_dir": output.get("plots_dir", "output/plots"),
        }


def _take(column: np.ndarray, index: np.ndarray, fill) -> np.ndarray:
    """Gather ``column[index]`` with ``fill`` where the index is out of range"""
    valid = (index >= 0) & (index < len(column))
    if len(column) == 0:
        return np.full(len(index), fill)
    gathered = column[np.where(valid, index, 0)]
    if gathered.dtype == bool:
        return gathered & valid if fill is False else np.where(valid, gathered, fill)
    return np.where(valid, gathered.astype(np.float64), fill)


class V0Kinematics:
    """
    Derived V0 quantities under the K0s → π⁺π⁻ hypothesis
    """

    @staticmethod
    def compute_derived_columns(v0s: ak.Array, collisions: ak.Array) -> ak.Array:
        """
        Add radius, pt, rapidity, mass and cos_pa to a V0 table

        Args:
            v0s: V0 table with x, y, z, {px,py,pz}_{pos,neg}, collision_index
            collisions: Collision table with pos_x, pos_y, pos_z

        Returns:
            V0 table with the derived columns added
        """
        pos = vector.zip({
            "px": v0s["px_pos"],
            "py": v0s["py_pos"],
            "pz": v0s["pz_pos"],
            "mass": ak.ones_like(v0s["px_pos"]) * PION_MASS,
        })
        neg = vector.zip({
            "px": v0s["px_neg"],
            "py": v0s["py_neg"],
            "pz": v0s["pz_neg"],
            "mass": ak.ones_like(v0s["px_neg"]) * PION_MASS,
        })
        k0s = pos + neg

        px = v0s["px_pos"] + v0s["px_neg"]
        py = v0s["py_pos"] + v0s["py_neg"]
        pz = v0s["pz_pos"] + v0s["pz_neg"]

        # Rapidity uses the nominal K0s mass, not the reconstructed one
        nominal = vector.zip({
            "px": px,
            "py": py,
            "pz": pz,
            "mass": ak.ones_like(px) * K0S_MASS,
        })

        coll_idx = ak.to_numpy(v0s["collision_index"]).astype(np.int64)
        pv_x = _take(ak.to_numpy(collisions["pos_x"]), coll_idx, np.nan)
        pv_y = _take(ak.to_numpy(collisions["pos_y"]), coll_idx, np.nan)
        pv_z = _take(ak.to_numpy(collisions["pos_z"]), coll_idx, np.nan)

        dx = ak.to_numpy(v0s["x"]) - pv_x
        dy = ak.to_numpy(v0s["y"]) - pv_y
        dz = ak.to_numpy(v0s["z"]) - pv_z
        px_np, py_np, pz_np = ak.to_numpy(px), ak.to_numpy(py), ak.to_numpy(pz)
        with np.errstate(divide="ignore", invalid="ignore"):
            cos_pa = (dx * px_np + dy * py_np + dz * pz_np) / (
                np.sqrt(dx**2 + dy**2 + dz**2) * np.sqrt(px_np**2 + py_np**2 + pz_np**2)
            )
        cos_pa = np.where(np.isfinite(cos_pa), cos_pa, np.nan)

        v0s = ak.with_field(v0s, np.hypot(v0s["x"], v0s["y"]), "radius")
        v0s = ak.with_field(v0s, k0s.pt, "pt")
        v0s = ak.with_field(v0s, nominal.rapidity, "rapidity")
        v0s = ak.with_field(v0s, k0s.mass, "mass")
        v0s = ak.with_field(v0s, cos_pa, "cos_pa")
        return v0s


class DataManager:
    """Load the collision, track and V0 tables from ROOT files"""

    def __init__(self, config: TOMLConfig):
        self.config = config
        self.trees = config.get_tree_names()
        self.logger = logging.getLogger("K0sTrackingEff.DataManager")

    def _load_table(self, file, filepath: Path, table: str) -> ak.Array:
        tree_name = self.trees[table]
        if tree_name not in file:
            raise DataLoadError(
                f"Tree '{tree_name}' not found in {filepath}\n"
                f"Available trees: {list(file.keys())}"
            )
        tree = file[tree_name]
        branch_map = self.config.get_branch_map(table)
        available = set(tree.keys())
        for branch in branch_map.values():
            if branch not in available:
                raise BranchMissingError(branch, str(filepath))

        arrays = tree.arrays(list(branch_map.values()), library="ak")
        return ak.zip({name: arrays[branch] for name, branch in branch_map.items()},
                      depth_limit=1)

    def load_file(self, filepath: Union[str, Path]) -> Dict[str, ak.Array]:
        """
        Load the three tables of one file

        Returns:
            {"collisions": ..., "tracks": ..., "v0s": ...}

        Raises:
            DataLoadError: If the file or a tree is missing
            BranchMissingError: If a configured branch is missing
        """
        filepath = Path(filepath)
        if not filepath.exists():
            raise DataLoadError(f"Input file not found: {filepath}")

        try:
            with uproot.open(filepath) as file:
                tables = {table: self._load_table(file, filepath, table) for table in TABLES}
        except (OSError, ValueError) as e:
            raise DataLoadError(f"Cannot read {filepath}: {e}") from e

        self.logger.info(
            f"Loaded {filepath.name}: {len(tables['collisions'])} collisions, "
            f"{len(tables['tracks'])} tracks, {len(tables['v0s'])} V0s"
        )
        return tables

    def load_tables(self, paths: Sequence[Union[str, Path]]) -> Dict[str, ak.Array]:
        """
        Load and concatenate tables from several files

        Collision and track indices of the V0 table are shifted so that they
        stay valid in the concatenated tables. Derived columns are added.
        """
        if isinstance(paths, (str, Path)):
            paths = [paths]
        if not paths:
            raise DataLoadError("No input files given")

        parts: Dict[str, List[ak.Array]] = {table: [] for table in TABLES}
        n_collisions = 0
        n_tracks = 0
        for path in paths:
            tables = self.load_file(path)
            v0s = tables["v0s"]
            for column, offset in (("collision_index", n_collisions),
                                   ("pos_track_index", n_tracks),
                                   ("neg_track_index", n_tracks)):
                idx = v0s[column]
                # negative indices mark unassigned entries and stay negative
                v0s = ak.with_field(v0s, ak.where(idx >= 0, idx + offset, idx), column)
            parts["v0s"].append(v0s)
            parts["collisions"].append(tables["collisions"])
            parts["tracks"].append(tables["tracks"])
            n_collisions += len(tables["collisions"])
            n_tracks += len(tables["tracks"])

        merged = {table: ak.concatenate(parts[table]) if len(parts[table]) > 1 else parts[table][0]
                  for table in TABLES}
        merged["tracks"] = self.compute_track_flags(merged["tracks"])
        merged["v0s"] = V0Kinematics.compute_derived_columns(merged["v0s"], merged["collisions"])
        return merged

    @staticmethod
    def compute_track_flags(tracks: ak.Array) -> ak.Array:
        """Derive has_its/has_tpc from the detector map when it is present"""
        if "detector_map" not in tracks.fields:
            return tracks
        detector_map = tracks["detector_map"]
        tracks = ak.with_field(tracks, (detector_map & ITS_BIT) != 0, "has_its")
        tracks = ak.with_field(tracks, (detector_map & TPC_BIT) != 0, "has_tpc")
        return tracks

    @staticmethod
    def join_daughters(tables: Dict[str, ak.Array]) -> ak.Array:
        """
        Flat V0 table with daughter columns prefixed pos_/neg_

        Unresolvable daughter indices give has_tpc False and NaN nSigma, so
        such candidates fail the selection.
        """
        v0s = tables["v0s"]
        tracks = tables["tracks"]
        for charge in ("pos", "neg"):
            idx = ak.to_numpy(v0s[f"{charge}_track_index"]).astype(np.int64)
            for field, fill in (("has_tpc", False), ("has_its", False),
                                ("tpc_nsigma_pi", np.nan), ("its_cluster_map", 0)):
                if field not in tracks.fields:
                    raise BranchMissingError(field)
                column = ak.to_numpy(ak.fill_none(tracks[field], fill))
                values = _take(column, idx, fill)
                if field == "its_cluster_map":
                    values = values.astype(np.int64)
                v0s = ak.with_field(v0s, values, f"{charge}_{field}")
        return v0s

    @staticmethod
    def to_tracks(tracks: ak.Array) -> List[Track]:
        rows = ak.to_list(tracks[["has_tpc", "has_its", "its_cluster_map", "tpc_nsigma_pi"]])
        return [Track(**row) for row in rows]

    def iter_events(self, tables: Dict[str, ak.Array]
                    ) -> Iterator[Tuple[Collision, List[V0Candidate], List[Track]]]:
        """
        Yield (collision, V0 candidates, track table) for every collision

        V0s whose collision index does not point to a loaded collision are
        skipped with a warning.
        """
        collisions = ak.to_list(tables["collisions"][["pos_x", "pos_y", "pos_z", "sel8"]])
        tracks = self.to_tracks(tables["tracks"])

        v0s = tables["v0s"]
        coll_idx = ak.to_numpy(v0s["collision_index"]).astype(np.int64)
        valid = (coll_idx >= 0) & (coll_idx < len(collisions))
        if not np.all(valid):
            self.logger.warning(f"Skipping {int(np.sum(~valid))} V0s without a valid collision")

        order = np.argsort(np.where(valid, coll_idx, -1), kind="stable")
        order = order[valid[order]]
        counts = np.bincount(coll_idx[valid], minlength=len(collisions))
        offsets = np.concatenate([[0], np.cumsum(counts)])

        rows = ak.to_list(v0s[order][["pos_track_index", "neg_track_index", "cos_pa",
                                      "radius", "pt", "rapidity", "mass"]])
        candidates = [V0Candidate(**row) for row in rows]

        for i, coll in enumerate(collisions):
            sel8 = coll["sel8"]
            collision = Collision(
                pos_x=coll["pos_x"],
                pos_y=coll["pos_y"],
                pos_z=coll["pos_z"],
                sel8=None if sel8 is None else bool(sel8),
            )
            yield collision, candidates[offsets[i]:offsets[i + 1]], tracks
