import datetime
import json
from enum import Enum
from pathlib import Path

import numpy as np

from anime_eda.main import FilterParams, LoadParams, ModelParams, build_manifest_dict
from anime_eda.utils import (
    _sanitize_for_json,
    build_effective_parameters,
    canonical_json_dumps,
    canonical_json_hash,
    utc_timestamp_seconds,
    write_manifest,
)


def _effective_params() -> dict:
    return {
        "load": {"csv_path": "/test/path/anime.csv", "start_line": None, "end_line": None},
        "filter": {"min_scored_by": 10, "excluded_statuses": ["Not yet aired"]},
        "model": {"response": "score", "boxcox_lambda": None, "alpha": 0.05},
    }


def test_build_manifest_dict_structure():
    counts = {
        "total_input_rows": 100,
        "processed_row_count": 88,
        "excluded_row_count": 12,
        "excluded_by_status": 2,
        "excluded_by_scored_by": 10,
    }
    artifact_paths = [
        "plot-testhash-00-score_hist.svg",
        "plot-testhash-01-score_vs_scored_by.svg",
    ]
    manifest = build_manifest_dict(
        "/test/path/anime.csv",
        counts,
        _effective_params(),
        ("testhash", "fulltesthash"),
        artifact_paths,
        summary={"best_model": "selected"},
    )
    assert manifest["version"] == "1"
    assert manifest["absolute_input_path"] == "/test/path/anime.csv"
    assert manifest["total_input_rows"] == 100
    assert manifest["processed_row_count"] == 88
    assert manifest["excluded_row_count"] == 12
    assert "status_excluded_rows=2" in manifest["exclusion_reasons"]
    assert "scored_by_excluded_rows=10" in manifest["exclusion_reasons"]
    assert manifest["effective_parameters"] == _effective_params()
    assert manifest["canonical_hash"] == "fulltesthash"
    assert manifest["canonical_hash_short"] == "testhash"
    assert manifest["summary"] == {"best_model": "selected"}
    assert manifest["artifacts"]["plot_svgs"] == artifact_paths


def test_manifest_timestamp_format():
    timestamp = utc_timestamp_seconds()
    assert timestamp.endswith("Z")
    assert "T" in timestamp
    datetime.datetime.fromisoformat(timestamp[:-1])


def test_effective_parameters_from_dataclasses(tmp_path: Path):
    csv = tmp_path / "a.csv"
    params = build_effective_parameters(
        {"load": LoadParams(csv_path=csv), "filter": FilterParams(), "model": ModelParams()}
    )
    assert params["load"]["csv_path"] == csv.resolve().as_posix()
    assert params["filter"]["excluded_statuses"] == ["Not yet aired"]
    assert params["model"]["reference_level"] == "ALPHABETICAL"
    assert params["model"]["lambda_bounds"] == [-2.0, 4.0]
    # JSON-serializable as-is
    json.dumps(params)


def test_sanitize_handles_numpy_and_non_finite():
    class Color(Enum):
        RED = 1

    out = _sanitize_for_json(
        {"a": np.float64(1.5), "b": np.int64(3), "c": float("nan"), "d": np.array([1, 2]), 4: Color.RED}
    )
    assert out == {"a": 1.5, "b": 3, "c": None, "d": [1, 2], "4": "RED"}


def test_canonical_hash_is_key_order_independent():
    a = {"x": 1, "y": [1, 2], "z": {"b": 1, "a": 2}}
    b = {"z": {"a": 2, "b": 1}, "y": [1, 2], "x": 1}
    assert canonical_json_dumps(a) == canonical_json_dumps(b)
    short, full = canonical_json_hash(a)
    assert len(short) == 8 and full.startswith(short)


def test_write_manifest_round_trips(tmp_path: Path):
    path = tmp_path / "manifest.json"
    write_manifest(path, {"f": float("inf"), "n": np.int32(5)})
    assert json.loads(path.read_text(encoding="utf-8")) == {"f": None, "n": 5}
