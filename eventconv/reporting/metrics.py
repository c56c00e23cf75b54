"""Metric sinks receiving per-step layer statistics."""

from __future__ import annotations

import csv
import json
import subprocess
from pathlib import Path
from typing import Mapping


def _git_sha() -> str:
    try:
        out = subprocess.check_output(["git", "rev-parse", "HEAD"], stderr=subprocess.DEVNULL)
        return out.decode().strip()
    except Exception:  # pragma: no cover - git may be unavailable in tests
        return "unknown"


def _numeric(metrics: Mapping[str, object]) -> dict:
    return {k: float(v) for k, v in metrics.items() if isinstance(v, (int, float))}


class JsonlSink:
    """Append-only JSONL writer for update statistics."""

    def __init__(
        self,
        path: str | Path,
        *,
        layer: str = "conv",
        sha: str | None = None,
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self.layer = layer
        self.sha = sha or _git_sha()

    def on_step(self, step: int, metrics: Mapping[str, float]) -> None:
        record = {"step": int(step), "layer": self.layer, "sha": self.sha}
        record.update(_numeric(metrics))
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record) + "\n")

    __call__ = on_step


class CsvSink:
    """Write update statistics to CSV with a stable schema."""

    def __init__(self, path: str | Path, *, layer: str = "conv") -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.layer = layer

    def on_step(self, step: int, metrics: Mapping[str, float]) -> None:
        row = {"step": int(step), "layer": self.layer}
        row.update(_numeric(metrics))
        with self.path.open("a", encoding="utf-8", newline="") as handle:
            fieldnames = sorted(row.keys())
            writer = csv.DictWriter(handle, fieldnames=fieldnames)
            if handle.tell() == 0:
                writer.writeheader()
            writer.writerow(row)

    __call__ = on_step


__all__ = ["CsvSink", "JsonlSink"]
