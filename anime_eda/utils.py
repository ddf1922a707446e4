from __future__ import annotations

import dataclasses
import datetime as _dt
import hashlib
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


# -------------------------
# Path utilities
# -------------------------
def normalize_abs_posix(path: str | Path) -> str:
    """
    Return an absolute POSIX-style path string for the given input.
    Ensures deterministic representation across platforms.
    """
    p = Path(path).resolve()
    return p.as_posix()


# -------------------------
# Hashing utilities
# -------------------------
def canonical_json_dumps(payload: dict[str, Any]) -> str:
    """
    Deterministic JSON string for hashing and storage:
    - separators=(',', ':')
    - sort_keys=True
    - ensure_ascii=False
    """
    return json.dumps(
        payload, ensure_ascii=False, separators=(",", ":"), sort_keys=True
    )


def canonical_json_hash(payload: dict[str, Any]) -> tuple[str, str]:
    """
    Return (short_hash8, full_hash_hex) computed over canonical JSON bytes (UTF-8).
    """
    h = hashlib.sha256(canonical_json_dumps(payload).encode("utf-8")).hexdigest()
    return h[:8], h


# -------------------------
# Manifest helpers
# -------------------------
def _sanitize_for_json(obj: Any) -> Any:
    """
    Recursively convert parameter objects into JSON-serializable primitives.

    - Path -> normalized POSIX string
    - Enum -> member name
    - dataclass -> dict of its fields
    - numpy scalar/array, pandas Series -> Python scalars/lists
    - non-finite floats -> None (JSON has no NaN)
    - dict/list/tuple/set -> sanitized containers, dict keys stringified
    """
    if obj is None or isinstance(obj, (bool, str)):
        return obj
    if isinstance(obj, (int, np.integer)):
        return int(obj)
    if isinstance(obj, (float, np.floating)):
        return float(obj) if np.isfinite(obj) else None
    if isinstance(obj, Path):
        return normalize_abs_posix(obj)
    if isinstance(obj, Enum):
        return obj.name
    if isinstance(obj, _dt.datetime):
        return obj.isoformat()
    if isinstance(obj, np.ndarray):
        return [_sanitize_for_json(x) for x in obj.tolist()]
    if isinstance(obj, pd.Series):
        return {str(k): _sanitize_for_json(v) for k, v in obj.items()}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return _sanitize_for_json(
            {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
        )
    if isinstance(obj, Mapping):
        return {str(k): _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_sanitize_for_json(x) for x in obj]
    return str(obj)


def build_effective_parameters(sections: Mapping[str, Any]) -> dict[str, Any]:
    """
    Build a JSON-serializable mapping of the effective parameters, one entry
    per named parameter object, e.g. {"load": LoadParams(...), ...}.

    Dataclass fields are introspected so newly added fields are included in
    the manifest and the run hash automatically.
    """
    return {name: _sanitize_for_json(params) for name, params in sections.items()}


def write_manifest(path: str | Path, manifest: Dict[str, Any]) -> None:
    """
    Write manifest JSON with UTF-8 encoding and stable formatting (indent=2 for readability).
    """
    p = Path(path)
    p.write_text(
        json.dumps(_sanitize_for_json(manifest), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    logger.info("Wrote manifest: %s", str(p))


def utc_timestamp_seconds() -> str:
    """
    ISO-8601 UTC timestamp with seconds precision and Z suffix.
    """
    now = _dt.datetime.now(_dt.timezone.utc).replace(tzinfo=None)
    return now.isoformat(timespec="seconds") + "Z"


def write_text_report(report_text: str, run_dir: Path, short_hash: str) -> Path:
    """Write the textual report into run_dir/report-<short_hash>.txt using UTF-8."""
    target = Path(run_dir) / f"report-{short_hash}.txt"
    target.write_text(report_text, encoding="utf-8")
    logger.info("Wrote report: %s", str(target))
    return target
