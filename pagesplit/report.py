"""
Sweep report output: console summary, JSON export and score plot.
"""

import json
import os
from typing import Optional

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from pagesplit.config import save_config
from pagesplit.sweep import DEFAULT_TOP_N, SweepReport


def print_summary(report: SweepReport, top_n: int = DEFAULT_TOP_N):
    print("\n" + "=" * 70)
    print(f"CONFIGURATION SWEEP ({report.mode.upper()})")
    print("=" * 70)
    print(f"Configurations: {report.total_configs}  "
          f"successful: {report.successful}  failed: {report.failed}  "
          f"time: {report.elapsed:.1f}s")
    if report.cancelled:
        print("⚠ Sweep was cancelled before all configurations ran")

    if not report.results:
        print("No successful configurations.")
        return

    print(f"\nTop {min(top_n, len(report.results))} configurations:")
    print(f"{'#':>3}  {'Name':<36} {'Overall':>7} {'IoU':>6} {'Type':>6} "
          f"{'Recall':>6} {'Extra':>5}")
    for rank, result in enumerate(report.top(top_n), 1):
        s = result.score
        print(f"{rank:>3}  {result.configuration.name:<36} {s.overall:>7.3f} "
              f"{s.avg_iou:>6.3f} {s.type_accuracy:>6.3f} {s.region_recall:>6.3f} "
              f"{s.extra_regions:>5d}")

    best = report.best
    print(f"\n✓ Best: {best.configuration.name} "
          f"({len(best.detected_regions)} regions, score {best.score.overall:.3f})")

    for name, error in report.failures:
        print(f"  ✗ {name}: {error}")


def _ensure_parent(path: str):
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def save_report(report: SweepReport, output_path: str, top_n: Optional[int] = None):
    """Write the report as JSON; `top_n` keeps only the best results."""
    data = report.to_dict()
    if top_n is not None:
        data['results'] = data['results'][:top_n]

    _ensure_parent(output_path)
    with open(output_path, 'w') as f:
        json.dump(data, f, indent=2)


def save_best_config(report: SweepReport, output_path: str) -> bool:
    """Export the winning configuration; False when nothing succeeded."""
    best = report.best
    if best is None:
        return False
    _ensure_parent(output_path)
    save_config(best.configuration.config, output_path)
    return True


def plot_top_scores(report: SweepReport, output_path: str, top_n: int = DEFAULT_TOP_N):
    """
    Horizontal bar chart of the best configurations' scores.

    Overall score is the main bar; IoU, type accuracy and recall are drawn
    as markers for comparison.
    """
    results = report.top(top_n)
    if not results:
        print("⚠ No results to plot")
        return

    names = [r.configuration.name for r in results][::-1]
    overall = [r.score.overall for r in results][::-1]
    ious = [r.score.avg_iou for r in results][::-1]
    types = [r.score.type_accuracy for r in results][::-1]
    recalls = [r.score.region_recall for r in results][::-1]
    positions = range(len(names))

    plt.figure(figsize=(10, max(3, 0.5 * len(names) + 1.5)))

    plt.barh(positions, overall, color='blue', alpha=0.6, label='Overall')
    plt.plot(ious, positions, 'o', markersize=7, label='Avg IoU', color='green')
    plt.plot(types, positions, 's', markersize=6, label='Type accuracy', color='orange')
    plt.plot(recalls, positions, '^', markersize=6, label='Recall', color='red')

    plt.yticks(list(positions), names, fontsize=9)
    plt.xlim(0, 1.05)
    plt.xlabel('Score', fontsize=12)
    plt.title(f'Top {len(names)} Configurations ({report.mode} sweep)', fontsize=14)
    plt.grid(True, axis='x', alpha=0.3)
    plt.legend(fontsize=10, loc='lower right')

    plt.tight_layout()
    _ensure_parent(output_path)
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close()
    print(f"✓ Saved plot to {output_path}")
