#!/usr/bin/env python3
"""
Run the K0s tracking-efficiency task over reconstructed events

Steps:
  1. Load configuration (selection, histogram binning, input schema)
  2. Load collision / track / V0 tables from ROOT files
  3. Report the candidate cut flow
  4. Run the per-event task, filling the histogram registry
  5. Extract ITS and inner-barrel efficiencies, write tables and plots

Usage:
  k0s-tracking-eff --input AO2D_flat.root [--config-dir DIR] [--output-dir DIR]
                   [--v0cospa 0.995] [--rapidity 0.5] [--nsigma-tpc 10]
                   [--no-event-selection] [--no-plots] [--verbose]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

from tqdm import tqdm

from .modules.data_handler import DataManager, TOMLConfig
from .modules.efficiency_calculator import EfficiencyCalculator, VARIABLES
from .modules.exceptions import AnalysisError, ValidationError
from .modules.histogram_registry import HistogramRegistry, book_k0s_histograms
from .modules.task import K0sTrackingEfficiencyTask
from .modules.v0_selector import K0sSelector, SelectionCuts
from .utils.logging_config import get_tqdm_kwargs, setup_logging, suppress_warnings


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="K0s daughter tracking-efficiency QA",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Cut values default to config/selection.toml; command-line values override them.

Examples:
  # Default selection
  k0s-tracking-eff --input run1.root run2.root

  # Tighter pointing angle, no event selection
  k0s-tracking-eff --input run1.root --v0cospa 0.999 --no-event-selection
        """
    )
    parser.add_argument("--input", nargs='+', required=True,
                        help="ROOT files with collision, track and V0 trees")
    parser.add_argument("--config-dir", default=None,
                        help="Directory with selection/histograms/data TOML files "
                             "(default: package config)")
    parser.add_argument("--output-dir", default=None,
                        help="Output directory (default: from data.toml)")
    parser.add_argument("--v0cospa", type=float, default=None, help="Minimum V0 cosPA")
    parser.add_argument("--rapidity", type=float, default=None, help="Maximum |y|")
    parser.add_argument("--nsigma-tpc", type=float, default=None,
                        help="Maximum TPC nSigma(pi) of the daughters")
    parser.add_argument("--no-event-selection", action="store_true",
                        help="Process all events regardless of sel8")
    parser.add_argument("--no-plots", action="store_true", help="Skip plotting")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


class PipelineManager:
    """
    Drives the task over loaded tables and writes the efficiency results.
    """

    def __init__(self, config: TOMLConfig, cuts: SelectionCuts,
                 output_dir: Optional[str] = None) -> None:
        self.config = config
        self.cuts = cuts
        self.registry = book_k0s_histograms(HistogramRegistry(), config.get_axes_config())
        self.task = K0sTrackingEfficiencyTask(self.registry, cuts)
        self.data_manager = DataManager(config)

        dirs = config.get_output_dirs()
        if output_dir is not None:
            dirs = {"tables_dir": str(Path(output_dir) / "tables"),
                    "plots_dir": str(Path(output_dir) / "plots")}
        self.tables_dir = Path(dirs["tables_dir"])
        self.plots_dir = Path(dirs["plots_dir"])

    def run(self, inputs: List[str]) -> Dict[str, float]:
        """Process all inputs and return the summary"""
        tables = self.data_manager.load_tables(inputs)

        print("\n" + "=" * 80)
        print("CANDIDATE CUT FLOW")
        print("=" * 80)
        K0sSelector(self.cuts).apply_v0_cuts(DataManager.join_daughters(tables))

        print("\n" + "=" * 80)
        print("EVENT LOOP")
        print("=" * 80)
        n_accepted = 0
        events = self.data_manager.iter_events(tables)
        for collision, v0s, tracks in tqdm(events, total=len(tables["collisions"]),
                                           **get_tqdm_kwargs("Events")):
            n_accepted += self.task.process(collision, v0s, tracks)
        print(f"✓ Accepted {n_accepted} K0s candidates")

        calculator = EfficiencyCalculator(self.registry)
        summary = calculator.summary()
        self._validate(summary)
        self._write_tables(calculator)
        return summary

    @staticmethod
    def _validate(summary: Dict[str, float]) -> None:
        if summary["n_selected_events"] > summary["n_total_events"]:
            raise ValidationError(
                f"Selected events ({summary['n_selected_events']}) exceed total "
                f"({summary['n_total_events']})"
            )

    def _write_tables(self, calculator: EfficiencyCalculator) -> None:
        self.tables_dir.mkdir(parents=True, exist_ok=True)
        for status in ("ITS", "IB"):
            for variable in VARIABLES:
                table = calculator.efficiency_vs(variable, status=status)
                path = self.tables_dir / f"eff_{status}_vs_{variable}.csv"
                table.to_csv(path, index=False)
        print(f"✓ Efficiency tables written to {self.tables_dir}")

    def make_plots(self) -> None:
        from .plotter import EfficiencyPlotter

        plotter = EfficiencyPlotter(self.plots_dir)
        calculator = EfficiencyCalculator(self.registry)
        for status in ("ITS", "IB"):
            for variable in ("radius", "pt"):
                plotter.plot_efficiency(calculator.efficiency_vs(variable, status=status),
                                        variable, status=status)
        plotter.plot_control_histograms(self.registry)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logger = setup_logging(args.verbose)
    suppress_warnings("all" if args.verbose else "off")

    try:
        config = TOMLConfig(args.config_dir)
        cuts = config.get_selection_cuts().replace(
            v0cospa=args.v0cospa,
            rapidity=args.rapidity,
            nsigma_tpc=args.nsigma_tpc,
            event_selection=False if args.no_event_selection else None,
        )
        logger.info(f"Selection: {cuts}")

        pipeline = PipelineManager(config, cuts, args.output_dir)
        pipeline.run(args.input)
        if not args.no_plots:
            pipeline.make_plots()
    except AnalysisError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    print("\n✓ Done")
    return 0


if __name__ == "__main__":
    sys.exit(main())
