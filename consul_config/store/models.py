"""
Store Response Model

Result of one query against the Consul KV store.
"""

from dataclasses import dataclass
from enum import Enum


class StoreStatus(str, Enum):
    """Outcome of a KV query that did not fail"""
    FOUND = "found"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class StoreResponse:
    """
    One KV query result.

    The index is present even for NOT_FOUND, since Consul versions the
    absence of a key too.
    """
    key: str
    status: StoreStatus
    index: int
    value: bytes | None = None

    @property
    def found(self) -> bool:
        return self.status == StoreStatus.FOUND
