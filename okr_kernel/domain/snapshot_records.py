"""
Snapshot records -- Versioned, tagged payloads stored inside PeriodSnapshot.

Responsibility:
    Defines the explicit record types a snapshot denormalizes (objective,
    key result, check-in), their JSON encoding, and the upgrade path from
    older schema versions.  Snapshots are read back long after capture, so
    every stored dict carries ``record_type`` and ``schema_version``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Every encoded record has a known ``record_type`` tag and a
      ``schema_version`` no newer than this code understands.
    - Decoding always yields the CURRENT record shape; older versions are
      upgraded step by step through registered upgraders.
    - Decimals are encoded as strings, never floats.

Failure modes:
    - SnapshotRecordError for an unknown tag, a future schema version, or a
      payload missing required fields.

Schema history:
    key_result v1 -> v2: added ``perspective`` and ``indicator_type``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from okr_kernel.exceptions import SnapshotRecordError


@dataclass(frozen=True)
class ObjectiveRecord:
    record_type = "objective"
    schema_version = 1

    objective_id: UUID
    org_id: UUID
    name: str
    period_code: str
    status: str
    bii_type: str | None
    kr_count: int
    achievement_rate: Decimal
    weighted_achievement_rate: Decimal
    weight_total: Decimal
    weight_anomaly: bool


@dataclass(frozen=True)
class KeyResultRecord:
    record_type = "key_result"
    schema_version = 2

    kr_id: UUID
    objective_id: UUID
    name: str
    unit: str
    weight: Decimal
    target_value: Decimal
    current_value: Decimal
    achievement_rate: Decimal
    grade: str
    bii_type: str | None
    perspective: str | None
    indicator_type: str | None
    grade_criteria: dict[str, Any] | None


@dataclass(frozen=True)
class CheckInRecord:
    record_type = "check_in"
    schema_version = 1

    check_in_id: UUID
    kr_id: UUID
    value: Decimal
    comment: str | None
    checked_by_id: UUID
    checked_at: datetime


SnapshotRecord = ObjectiveRecord | KeyResultRecord | CheckInRecord

RECORD_TYPES: dict[str, type] = {
    ObjectiveRecord.record_type: ObjectiveRecord,
    KeyResultRecord.record_type: KeyResultRecord,
    CheckInRecord.record_type: CheckInRecord,
}

_DECIMAL_FIELDS = frozenset({
    "achievement_rate",
    "weighted_achievement_rate",
    "weight_total",
    "weight",
    "target_value",
    "current_value",
    "value",
})
_UUID_FIELDS = frozenset({"objective_id", "org_id", "kr_id", "check_in_id", "checked_by_id"})
_DATETIME_FIELDS = frozenset({"checked_at"})


def _upgrade_key_result_v1(payload: dict[str, Any]) -> dict[str, Any]:
    upgraded = dict(payload)
    upgraded.setdefault("perspective", None)
    upgraded.setdefault("indicator_type", None)
    upgraded["schema_version"] = 2
    return upgraded


# (record_type, from_version) -> function producing from_version + 1
_UPGRADERS: dict[tuple[str, int], Callable[[dict[str, Any]], dict[str, Any]]] = {
    ("key_result", 1): _upgrade_key_result_v1,
}


def _encode_value(name: str, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _decode_value(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name in _DECIMAL_FIELDS:
        return Decimal(str(value))
    if name in _UUID_FIELDS:
        return UUID(str(value))
    if name in _DATETIME_FIELDS:
        return datetime.fromisoformat(value)
    return value


def encode_record(record: SnapshotRecord) -> dict[str, Any]:
    """Encode a record as a JSON-safe tagged dict."""
    payload: dict[str, Any] = {
        "record_type": record.record_type,
        "schema_version": record.schema_version,
    }
    for f in fields(record):
        payload[f.name] = _encode_value(f.name, getattr(record, f.name))
    return payload


def decode_record(payload: dict[str, Any]) -> SnapshotRecord:
    """
    Decode a tagged dict into the current record type, upgrading if needed.

    Raises:
        SnapshotRecordError: unknown tag, future version, or missing fields.
    """
    record_type = payload.get("record_type")
    version = payload.get("schema_version")
    cls = RECORD_TYPES.get(record_type)
    if cls is None:
        raise SnapshotRecordError(str(record_type), version, "unknown record type")
    if not isinstance(version, int) or version < 1:
        raise SnapshotRecordError(record_type, version, "missing or invalid schema_version")
    if version > cls.schema_version:
        raise SnapshotRecordError(
            record_type, version, f"newer than supported v{cls.schema_version}"
        )

    while version < cls.schema_version:
        upgrader = _UPGRADERS.get((record_type, version))
        if upgrader is None:
            raise SnapshotRecordError(record_type, version, "no upgrade path")
        payload = upgrader(payload)
        version = payload["schema_version"]

    kwargs = {}
    for f in fields(cls):
        if f.name not in payload:
            raise SnapshotRecordError(record_type, version, f"missing field '{f.name}'")
        kwargs[f.name] = _decode_value(f.name, payload[f.name])
    return cls(**kwargs)


def encode_records(records: list[SnapshotRecord]) -> list[dict[str, Any]]:
    return [encode_record(r) for r in records]


def decode_records(payloads: list[dict[str, Any]]) -> list[SnapshotRecord]:
    return [decode_record(p) for p in payloads]
