"""
Versioned key-value store backing the ledgers.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, Optional, Tuple

from shared.logging import get_logger


@dataclass(frozen=True)
class VersionedRecord:
    """A stored document and the version it was read at.

    Version 0 means the key does not exist yet.
    """
    value: Optional[Dict[str, Any]]
    version: int = 0

    @property
    def exists(self) -> bool:
        return self.version > 0


class LedgerStore(ABC):
    """Single source of truth for ledger documents."""

    @abstractmethod
    async def get(self, key: str) -> VersionedRecord:
        """Read a document and its version."""

    @abstractmethod
    async def compare_and_set(self, key: str, expected_version: int, value: Dict[str, Any]) -> bool:
        """Write ``value`` only if the key is still at ``expected_version``."""

    async def start(self):
        """Open connections."""

    async def stop(self):
        """Close connections."""

    async def health_check(self) -> bool:
        return True


class InMemoryLedgerStore(LedgerStore):
    """Process-local store for tests and single-node deployments."""

    def __init__(self):
        self.logger = get_logger("pricing.ledger.memory")
        self._data: Dict[str, Tuple[int, Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> VersionedRecord:
        async with self._lock:
            if key not in self._data:
                return VersionedRecord(value=None, version=0)
            version, value = self._data[key]
            return VersionedRecord(value=copy.deepcopy(value), version=version)

    async def compare_and_set(self, key: str, expected_version: int, value: Dict[str, Any]) -> bool:
        async with self._lock:
            current_version = self._data[key][0] if key in self._data else 0
            if current_version != expected_version:
                self.logger.debug(
                    "Version mismatch",
                    key=key,
                    expected=expected_version,
                    current=current_version
                )
                return False
            self._data[key] = (current_version + 1, copy.deepcopy(value))
            return True

    def keys(self, prefix: str = ""):
        return sorted(k for k in self._data if k.startswith(prefix))
