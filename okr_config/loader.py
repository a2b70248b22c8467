"""
Policy Loader (``okr_config.loader``).

Responsibility
--------------
Loads a lifecycle policy YAML file and parses it into a frozen
``LifecyclePolicy``.  Runtime callers go through
``okr_config.get_active_config()``, never through this module.

Invariants enforced
-------------------
* Unknown top-level keys are rejected; a typo never silently falls back
  to a default.
* Values are range-checked (start month 1-12, non-negative ranking size,
  at least one retry attempt, a known operational unit).
* ``compute_checksum`` is a deterministic SHA-256 of the canonical policy
  contents.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values or unknown keys  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, fields, replace
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from okr_config.schema import (
    DEFAULT_HIGHER_THRESHOLDS,
    DEFAULT_LOWER_THRESHOLDS,
    GradeThresholds,
    LifecyclePolicy,
)

_OPERATIONAL_UNITS = ("year", "half", "quarter")
_GRADES = ("S", "A", "B", "C", "D")
_KNOWN_KEYS = (
    frozenset(f.name for f in fields(LifecyclePolicy))
    - {"checksum", "higher_is_better_thresholds", "lower_is_better_thresholds"}
) | {"fallback_grade_thresholds"}
_SCALAR_KEYS = frozenset({
    "name",
    "version",
    "fiscal_year_start_month",
    "timezone_offset_hours",
    "operational_unit",
    "ranking_size",
    "snapshot_on_close",
    "archive_requires_admin",
    "transition_retry_attempts",
})
_TUPLE_KEYS = frozenset({
    "approved_goal_set_statuses",
    "lower_is_better_units",
    "lower_is_better_indicator_types",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _parse_thresholds(
    data: dict[str, Any] | None,
    defaults: dict[str, Decimal],
    label: str,
) -> GradeThresholds:
    data = data or {}
    unknown = set(data) - set(_GRADES)
    if unknown:
        raise ValueError(f"Unknown grade(s) in {label} thresholds: {sorted(unknown)}")
    values = {g: Decimal(str(data.get(g, defaults[g]))) for g in _GRADES}
    return GradeThresholds(**values)


def parse_policy(data: dict[str, Any]) -> LifecyclePolicy:
    """
    Parse a policy dict (as loaded from YAML) into a LifecyclePolicy.

    Postconditions:
        - Omitted keys take the LifecyclePolicy defaults.
        - The returned policy carries its checksum.

    Raises:
        ValueError: unknown keys or out-of-range values.
    """
    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ValueError(f"Unknown lifecycle policy key(s): {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    for key in _SCALAR_KEYS & set(data):
        kwargs[key] = data[key]
    for key in _TUPLE_KEYS & set(data):
        kwargs[key] = tuple(str(v) for v in (data[key] or ()))

    thresholds = data.get("fallback_grade_thresholds") or {}
    kwargs["higher_is_better_thresholds"] = _parse_thresholds(
        thresholds.get("higher_is_better"), DEFAULT_HIGHER_THRESHOLDS, "higher_is_better"
    )
    kwargs["lower_is_better_thresholds"] = _parse_thresholds(
        thresholds.get("lower_is_better"), DEFAULT_LOWER_THRESHOLDS, "lower_is_better"
    )

    policy = LifecyclePolicy(**kwargs)
    _validate(policy)
    return replace(policy, checksum=compute_checksum(policy))


def _validate(policy: LifecyclePolicy) -> None:
    if not 1 <= int(policy.fiscal_year_start_month) <= 12:
        raise ValueError(
            f"fiscal_year_start_month must be 1..12, got {policy.fiscal_year_start_month}"
        )
    if not -12 <= int(policy.timezone_offset_hours) <= 14:
        raise ValueError(
            f"timezone_offset_hours must be -12..14, got {policy.timezone_offset_hours}"
        )
    if policy.operational_unit not in _OPERATIONAL_UNITS:
        raise ValueError(
            f"operational_unit must be one of {_OPERATIONAL_UNITS}, "
            f"got {policy.operational_unit!r}"
        )
    if int(policy.ranking_size) < 0:
        raise ValueError(f"ranking_size must be >= 0, got {policy.ranking_size}")
    if int(policy.transition_retry_attempts) < 1:
        raise ValueError(
            f"transition_retry_attempts must be >= 1, got {policy.transition_retry_attempts}"
        )
    if not policy.approved_goal_set_statuses:
        raise ValueError("approved_goal_set_statuses must not be empty")


def load_policy(path: Path) -> LifecyclePolicy:
    """Load and parse one policy file."""
    return parse_policy(load_yaml_file(path))


def compute_checksum(policy: LifecyclePolicy) -> str:
    """
    SHA-256 of the canonical JSON form of a policy, excluding its checksum.

    Identical contents always produce identical checksums.
    """
    data = asdict(policy)
    data.pop("checksum", None)
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
