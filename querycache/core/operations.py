from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class OperationKind(str, Enum):
    """Database operations the cache can interpose on."""

    # Reads
    FIND_FIRST = "find_first"
    FIND_UNIQUE = "find_unique"
    FIND_MANY = "find_many"
    AGGREGATE = "aggregate"
    COUNT = "count"
    GROUP_BY = "group_by"
    FIND_RAW = "find_raw"
    AGGREGATE_RAW = "aggregate_raw"
    QUERY_RAW = "query_raw"  # entity-less, never cached

    # Writes
    CREATE = "create"
    CREATE_MANY = "create_many"
    UPDATE = "update"
    UPDATE_MANY = "update_many"
    UPSERT = "upsert"
    DELETE = "delete"
    DELETE_MANY = "delete_many"
    EXECUTE_RAW = "execute_raw"

    @property
    def is_read(self) -> bool:
        return self in READ_KINDS

    @property
    def is_write(self) -> bool:
        return self in WRITE_KINDS


READ_KINDS = frozenset(
    {
        OperationKind.FIND_FIRST,
        OperationKind.FIND_UNIQUE,
        OperationKind.FIND_MANY,
        OperationKind.AGGREGATE,
        OperationKind.COUNT,
        OperationKind.GROUP_BY,
        OperationKind.FIND_RAW,
        OperationKind.AGGREGATE_RAW,
        OperationKind.QUERY_RAW,
    }
)

WRITE_KINDS = frozenset(
    {
        OperationKind.CREATE,
        OperationKind.CREATE_MANY,
        OperationKind.UPDATE,
        OperationKind.UPDATE_MANY,
        OperationKind.UPSERT,
        OperationKind.DELETE,
        OperationKind.DELETE_MANY,
        OperationKind.EXECUTE_RAW,
    }
)


@dataclass(frozen=True)
class Operation:
    """A single request to the data-access layer.

    ``entity`` is the model/table name; it is ``None`` for raw or meta
    operations, which are always passed straight through to the executor.
    """

    entity: Optional[str]
    kind: OperationKind
    arguments: Any = None
    in_transaction: bool = False

    def __post_init__(self):
        # Accept plain strings ("find_many") from callers
        if not isinstance(self.kind, OperationKind):
            object.__setattr__(self, "kind", OperationKind(self.kind))
