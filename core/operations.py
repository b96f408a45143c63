"""Operation kinds, record kinds and lifecycle statuses for the sync queue."""
from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple

from core.settings import QUEUE


class OperationStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CONFLICT = "CONFLICT"


class RecordKind(str, Enum):
    """Remote record families; the value doubles as the read-cache namespace."""

    CHILD = "children"
    EVENT = "events"
    FAMILY_TIME = "familyTime"
    USER_PROFILE = "userProfile"


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class OperationType(str, Enum):
    CREATE_CHILD = "CREATE_CHILD"
    UPDATE_CHILD = "UPDATE_CHILD"
    DELETE_CHILD = "DELETE_CHILD"
    CREATE_EVENT = "CREATE_EVENT"
    UPDATE_EVENT = "UPDATE_EVENT"
    DELETE_EVENT = "DELETE_EVENT"
    CREATE_FAMILY_TIME = "CREATE_FAMILY_TIME"
    UPDATE_FAMILY_TIME = "UPDATE_FAMILY_TIME"
    DELETE_FAMILY_TIME = "DELETE_FAMILY_TIME"
    UPDATE_USER_PROFILE = "UPDATE_USER_PROFILE"


class Resolution(str, Enum):
    USE_LOCAL = "use_local"
    USE_SERVER = "use_server"
    MERGE = "merge"


OPERATION_TARGETS: Dict[OperationType, Tuple[RecordKind, Action]] = {
    OperationType.CREATE_CHILD: (RecordKind.CHILD, Action.CREATE),
    OperationType.UPDATE_CHILD: (RecordKind.CHILD, Action.UPDATE),
    OperationType.DELETE_CHILD: (RecordKind.CHILD, Action.DELETE),
    OperationType.CREATE_EVENT: (RecordKind.EVENT, Action.CREATE),
    OperationType.UPDATE_EVENT: (RecordKind.EVENT, Action.UPDATE),
    OperationType.DELETE_EVENT: (RecordKind.EVENT, Action.DELETE),
    OperationType.CREATE_FAMILY_TIME: (RecordKind.FAMILY_TIME, Action.CREATE),
    OperationType.UPDATE_FAMILY_TIME: (RecordKind.FAMILY_TIME, Action.UPDATE),
    OperationType.DELETE_FAMILY_TIME: (RecordKind.FAMILY_TIME, Action.DELETE),
    OperationType.UPDATE_USER_PROFILE: (RecordKind.USER_PROFILE, Action.UPDATE),
}

# Payload field naming the target record for update/delete operations.
RECORD_ID_FIELDS: Dict[RecordKind, str] = {
    RecordKind.CHILD: "childId",
    RecordKind.EVENT: "eventId",
    RecordKind.FAMILY_TIME: "activityId",
    RecordKind.USER_PROFILE: "userId",
}


def parse_operation_type(value: OperationType | str) -> OperationType:
    try:
        return OperationType(value)
    except ValueError:
        raise ValueError(f"Unsupported operation type: {value}") from None


def target_of(op_type: OperationType | str) -> Tuple[RecordKind, Action]:
    return OPERATION_TARGETS[parse_operation_type(op_type)]


def normalize_priority(value: int | str | None) -> int:
    """Coerce external priority values; anything unparsable gets the default."""
    if value is None:
        return QUEUE.default_priority
    try:
        return int(value)
    except (TypeError, ValueError):
        return QUEUE.default_priority


__all__ = [
    "Action",
    "OperationStatus",
    "OperationType",
    "OPERATION_TARGETS",
    "RECORD_ID_FIELDS",
    "RecordKind",
    "Resolution",
    "normalize_priority",
    "parse_operation_type",
    "target_of",
]
