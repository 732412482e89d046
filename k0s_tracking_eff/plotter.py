"""
Module for creating plots of the K0s tracking-efficiency task

Example usage:
    plotter = EfficiencyPlotter(output_dir="output/plots")

    # Efficiency of both daughters having ITS hits versus decay radius
    table = calculator.efficiency_vs("radius", status="ITS")
    plotter.plot_efficiency(table, variable="radius", status="ITS")

    # 1D control distributions (R, pT, mass, statuses)
    plotter.plot_control_histograms(registry)
"""

import logging
import warnings
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import mplhep as hep
import numpy as np

# Suppress all font-related warnings
warnings.filterwarnings('ignore', category=UserWarning, module='matplotlib')
logging.getLogger('matplotlib.font_manager').setLevel(logging.ERROR)

plt.style.use(hep.style.ALICE)

# Override font settings from the style
matplotlib.rcParams['font.family'] = 'sans-serif'
matplotlib.rcParams['font.sans-serif'] = ['DejaVu Sans', 'Arial', 'Helvetica', 'sans-serif']


class EfficiencyPlotter:
    """Class for creating efficiency and control plots"""

    AXIS_LABELS = {
        'radius': r'$R$ (cm)',
        'pt': r'$p_{\mathrm{T}}$ (GeV/$c$)',
        'mass': r'$m_{\pi\pi}$ (GeV/$c^2$)',
    }

    CONTROL_HISTOGRAMS = [
        'Test/h_R', 'Test/h_pT', 'Test/h_mass',
        'Test/h_negITSStatus', 'Test/h_posITSStatus',
        'Test/h_negIBStatus', 'Test/h_posIBStatus',
        'Test/h_negIBhits', 'Test/h_posIBhits',
    ]

    def __init__(self, output_dir):
        """
        Initialize with output directory

        Parameters:
        - output_dir: Directory to save plots
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger("K0sTrackingEff.EfficiencyPlotter")

    def plot_efficiency(self, table, variable, status="ITS", require="both"):
        """
        Plot an efficiency table produced by EfficiencyCalculator.efficiency_vs

        Parameters:
        - table: DataFrame with low, high, efficiency, err_low, err_high
        - variable: Projection variable (radius, pt, mass)
        - status: ITS or IB
        - require: Daughter requirement the table was built with

        Returns:
        - Path of the written PDF
        """
        filled = table[table['n_total'] > 0]
        centers = 0.5 * (filled['low'] + filled['high'])
        half_widths = 0.5 * (filled['high'] - filled['low'])

        fig, ax = plt.subplots(figsize=(10, 7))
        ax.errorbar(centers, filled['efficiency'],
                    xerr=half_widths,
                    yerr=[filled['err_low'], filled['err_high']],
                    fmt='o', markersize=4, color='black',
                    label=f"{status} hit, {require} daughter(s)")

        ax.set_xlabel(self.AXIS_LABELS.get(variable, variable))
        ax.set_ylabel('Efficiency')
        ax.set_ylim(0.0, 1.1)
        if len(table):
            ax.set_xlim(table['low'].iloc[0], table['high'].iloc[-1])
        ax.axhline(1.0, color='gray', linestyle='--', linewidth=1)
        ax.legend(loc='lower right')
        hep.alice.text("Work in progress", ax=ax)

        output_path = self.output_dir / f"eff_{status}_{require}_vs_{variable}.pdf"
        fig.savefig(output_path, bbox_inches='tight')
        plt.close(fig)
        self.logger.info(f"Saved efficiency plot to {output_path}")
        return output_path

    def plot_control_histograms(self, registry):
        """
        Plot the 1D control histograms of a registry

        Parameters:
        - registry: HistogramRegistry with the standard K0s histograms

        Returns:
        - List of written PDF paths
        """
        paths = []
        for name in self.CONTROL_HISTOGRAMS:
            if name not in registry:
                self.logger.warning(f"Histogram {name} not booked, skipping")
                continue
            h = registry.get(name)

            fig, ax = plt.subplots(figsize=(10, 7))
            hep.histplot(h, ax=ax, histtype='step', color='navy',
                         label=f"Entries: {int(np.sum(h.values()))}")
            ax.set_xlabel(h.axes[0].label)
            ax.set_ylabel('Candidates')
            ax.legend(loc='upper right')

            output_path = self.output_dir / f"{name.replace('/', '_')}.pdf"
            fig.savefig(output_path, bbox_inches='tight')
            plt.close(fig)
            paths.append(output_path)

        self.logger.info(f"Saved {len(paths)} control plots to {self.output_dir}")
        return paths
