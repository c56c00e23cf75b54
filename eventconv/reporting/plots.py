"""Headless-safe plotting adapters."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

_SERIES = ("num_rules", "num_propagated", "num_new_active", "num_new_inactive")


class PlotAdapter:
    """Collect per-step work and activity counts and optionally plot them.

    The upper panel shows rules applied against pixels propagated downstream;
    the lower one shows activity transitions. With ``dense_macs`` the rule
    count is drawn next to the cost of recomputing the full map, scaled to
    rule units (one rule is one ``n_out x n_in`` block product).
    """

    def __init__(
        self,
        run_dir: str | Path,
        enable_plots: bool = False,
        *,
        filename: str = "rules.png",
        dense_macs: int | None = None,
        macs_per_rule: int = 1,
    ):
        self.enable_plots = enable_plots
        self.run_dir = Path(run_dir)
        self.filename = filename
        self.dense_rules = None if dense_macs is None else dense_macs / max(macs_per_rule, 1)
        self._steps: List[int] = []
        self._series: Dict[str, List[float]] = {name: [] for name in _SERIES}
        if self.enable_plots:
            self.run_dir.mkdir(parents=True, exist_ok=True)

    def on_step(self, step: int, metrics):
        if not self.enable_plots:
            return
        self._steps.append(step)
        for name in _SERIES:
            self._series[name].append(float(metrics.get(name, 0.0)))

    def history(self) -> Dict[str, List[float]]:
        return {"step": list(self._steps), **{k: list(v) for k, v in self._series.items()}}

    def close(self) -> Path | None:
        if not self.enable_plots or not self._steps:
            return None
        import matplotlib

        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # imported lazily for headless safety

        fig, (work, activity) = plt.subplots(2, 1, sharex=True)
        work.plot(self._steps, self._series["num_rules"], label="rules applied")
        work.plot(self._steps, self._series["num_propagated"], label="pixels propagated")
        if self.dense_rules is not None:
            work.axhline(self.dense_rules, linestyle="--", color="grey", label="dense recompute")
        work.set_ylabel("Count")
        work.set_title("Incremental work per step")
        work.legend()
        activity.bar(self._steps, self._series["num_new_active"], label="new active")
        activity.bar(
            self._steps,
            [-v for v in self._series["num_new_inactive"]],
            label="new inactive",
        )
        activity.set_xlabel("Step")
        activity.set_ylabel("Transitions")
        activity.legend()
        plot_path = self.run_dir / self.filename
        fig.savefig(plot_path)
        plt.close(fig)
        return plot_path

    __call__ = on_step
