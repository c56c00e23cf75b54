import json
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def test_bench_stream_runs_quickly(tmp_path):
    out = tmp_path / "bench"
    subprocess.check_call(
        [
            sys.executable,
            str(ROOT / "scripts" / "bench_stream.py"),
            "--steps", "6",
            "--events", "3",
            "--height", "8",
            "--width", "8",
            "--out", str(out),
        ]
    )
    md = (out / "bench_stream.md").read_text(encoding="utf-8")
    assert "| INCREMENTAL |" in md and "| DENSE |" in md
    assert (out / "bench_stream.csv").exists()
    runs = [json.loads(line) for line in (out / "results.jsonl").read_text().splitlines()]
    assert len(runs) == 6
    assert all(r["max_abs_error"] < 1e-9 for r in runs)
    assert all(r["sparse_macs"] < r["dense_macs"] for r in runs)


def test_bench_stream_accepts_config_file(tmp_path):
    config = tmp_path / "net.json"
    config.write_text(
        json.dumps({"layers": [{"n_in": 2, "n_out": 1, "filter_size": 3, "first_layer": True}]})
    )
    out = tmp_path / "bench"
    subprocess.check_call(
        [
            sys.executable,
            str(ROOT / "scripts" / "bench_stream.py"),
            "--config", str(config),
            "--steps", "3",
            "--height", "6",
            "--width", "6",
            "--out", str(out),
        ]
    )
    runs = [json.loads(line) for line in (out / "results.jsonl").read_text().splitlines()]
    assert all(len(r["rules"]) == 1 for r in runs)
