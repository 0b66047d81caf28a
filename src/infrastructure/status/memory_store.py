"""In-process status store for local runs."""

import copy
import threading
from typing import Any, Dict, List, Tuple

from domain.exceptions import AssemblyNotFoundError, AssemblyAlreadyStartedError


class InMemoryStatusStore:
    """
    Thread-safe dict of status records.
    Implements IStatusStore protocol.

    Every write is appended to ``writes`` so callers can replay the
    sequence of field updates an assembly went through.
    """

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.writes: List[Tuple[str, Dict[str, Any]]] = []

    def get(self, assembly_id: str) -> Dict[str, Any]:
        with self._lock:
            record = self._records.get(assembly_id)
            if record is None:
                raise AssemblyNotFoundError(assembly_id)
            return copy.deepcopy(record)

    def create(self, record: Dict[str, Any]) -> None:
        assembly_id = record["assembly_id"]
        with self._lock:
            existing = self._records.get(assembly_id)
            if existing is not None and existing.get("execution_start"):
                raise AssemblyAlreadyStartedError(assembly_id)
            self._records[assembly_id] = copy.deepcopy(record)
            self.writes.append((assembly_id, copy.deepcopy(record)))

    def update(self, assembly_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        with self._lock:
            record = self._records.setdefault(assembly_id, {"assembly_id": assembly_id})
            record.update(copy.deepcopy(fields))
            self.writes.append((assembly_id, copy.deepcopy(fields)))

    def history(self, assembly_id: str) -> List[Dict[str, Any]]:
        """Field sets written for one assembly, oldest first."""
        with self._lock:
            return [copy.deepcopy(f) for a, f in self.writes if a == assembly_id]
