"""State record serialization: ResourceState to and from JSON."""

from __future__ import annotations

import json
from dataclasses import fields
from datetime import datetime
from pathlib import Path
from typing import Any

from objectsync.models import ObservedState, ResourceState
from objectsync.validation import format_timestamp, parse_timestamp

STATE_FORMAT_VERSION = 1

# Fields that hold datetimes and are written as RFC 3339 strings.
DATETIME_FIELDS = {"object_lock_retain_until_date"}

OBSERVED_FIELDS = [f.name for f in fields(ObservedState)]


def _observed_to_dict(observed: ObservedState) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for name in OBSERVED_FIELDS:
        value = getattr(observed, name)
        if name in DATETIME_FIELDS and isinstance(value, datetime):
            value = format_timestamp(value)
        elif isinstance(value, dict):
            value = dict(sorted(value.items()))
        result[name] = value
    return result


def _observed_from_dict(data: dict[str, Any]) -> ObservedState:
    values: dict[str, Any] = {}
    for name in OBSERVED_FIELDS:
        if name not in data:
            continue
        value = data[name]
        if name in DATETIME_FIELDS and value is not None:
            value = parse_timestamp(value)
        values[name] = value
    return ObservedState(**values)


def state_to_dict(state: ResourceState) -> dict[str, Any]:
    """Convert a state record to a JSON-compatible dict."""
    return {
        "format_version": STATE_FORMAT_VERSION,
        "bucket": state.bucket,
        "key": state.key,
        "observed": _observed_to_dict(state.observed) if state.observed is not None else None,
    }


def state_from_dict(data: dict[str, Any]) -> ResourceState:
    """Build a state record from a dict produced by ``state_to_dict``.

    Raises:
        ValueError: If the format version is unsupported or a field is missing.
    """
    version = data.get("format_version")
    if version != STATE_FORMAT_VERSION:
        raise ValueError(f"Unsupported state format version: {version}")
    try:
        bucket, key = data["bucket"], data["key"]
    except KeyError as e:
        raise ValueError(f"State record is missing field {e.args[0]!r}") from e
    observed = data.get("observed")
    return ResourceState(
        bucket=bucket,
        key=key,
        observed=_observed_from_dict(observed) if observed is not None else None,
    )


def dumps_state(state: ResourceState) -> str:
    """Serialize a state record to a JSON string."""
    return json.dumps(state_to_dict(state), indent=2)


def loads_state(text: str) -> ResourceState:
    """Deserialize a state record from a JSON string."""
    return state_from_dict(json.loads(text))


def dump_state(state: ResourceState, path: Path) -> None:
    """Write a state record to a JSON file, replacing it atomically."""
    path = Path(path)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(dumps_state(state) + "\n", encoding="utf-8")
    tmp.replace(path)


def load_state(path: Path) -> ResourceState:
    """Read a state record from a JSON file.

    Raises:
        FileNotFoundError: If the state file does not exist.
        ValueError: If the file is not a valid state record.
    """
    return loads_state(Path(path).read_text(encoding="utf-8"))
