"""Core primitives for the asset approval stack.

This module provides the foundational utilities used throughout the package:
- Cryptographic hashing (SHA-256)
- Canonical JSON serialization (sorted keys, no whitespace)
- YAML/JSON loading with consistent encoding
- Path resolution for the bundled schemas and config

Design principles:
- Pure functions where possible
- No global mutable state
- Explicit error handling
"""

from __future__ import annotations

import hashlib
import json
import math
import pathlib
from datetime import datetime, timezone
from typing import Any

import yaml

# Package root, computed once at module load; schemas and the default config
# are package data.
PACKAGE_ROOT = pathlib.Path(__file__).resolve().parent
SCHEMAS_DIR = PACKAGE_ROOT / "schemas"
CONFIG_DIR = PACKAGE_ROOT / "config"


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def load_yaml(path: pathlib.Path) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes.

    Properties:
    - Keys sorted lexicographically
    - No whitespace
    - UTF-8 encoded
    - Non-finite floats rejected

    Every party re-executing an operation must persist byte-identical values,
    so all ledger writes go through this function.
    """
    def _reject_non_finite(o: Any, path: str = "") -> None:
        if isinstance(o, float) and not math.isfinite(o):
            raise ValueError(f"Non-finite number not allowed in canonical JSON at {path}")
        if isinstance(o, dict):
            for k, v in o.items():
                _reject_non_finite(v, f"{path}.{k}")
        if isinstance(o, list):
            for i, v in enumerate(o):
                _reject_non_finite(v, f"{path}[{i}]")

    _reject_non_finite(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


def digest_json(obj: Any) -> str:
    """sha256 over the canonical JSON bytes of obj."""
    return sha256_bytes(canonical_json_bytes(obj))


def rfc3339_from_epoch(seconds: int, nanos: int = 0) -> str:
    """Render a ledger timestamp as an RFC 3339 string with millisecond precision.

    Only the (seconds, nanos) pair agreed by the ordering service is used, never
    the local clock, so all endorsers produce the same string.
    """
    dt = datetime.fromtimestamp(int(seconds), tz=timezone.utc)
    millis = int(nanos) // 1_000_000
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{millis:03d}Z"
