import threading
from typing import Any, Dict, List, Optional

from trainstats.reports.schema import (
    StatsInitializationReport,
    StatsReport,
    StorageMetaData,
)
from trainstats.routers.base import StatsStorageRouter

METADATA_TABLE = "metadata"
STATIC_INFO_TABLE = "static_info"
UPDATES_TABLE = "updates"


class InMemoryStatsRouter(StatsStorageRouter):
    """
    Router keeping every record in process memory.

    Each record kind lives in its own append-only "table" (a list). Safe to
    share between listeners running on different threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tables: Dict[str, List[Any]] = {
            METADATA_TABLE: [],
            STATIC_INFO_TABLE: [],
            UPDATES_TABLE: [],
        }

    def _append(self, table: str, record: Any) -> None:
        with self._lock:
            self._tables[table].append(record)

    def put_storage_metadata(self, metadata: StorageMetaData) -> None:
        self._append(METADATA_TABLE, metadata)

    def put_static_info(self, report: StatsInitializationReport) -> None:
        self._append(STATIC_INFO_TABLE, report)

    def put_update(self, report: StatsReport) -> None:
        self._append(UPDATES_TABLE, report)

    def get_table(self, name: str) -> List[Any]:
        """Return a copy of a table's rows. Raise ValueError for unknown tables."""
        with self._lock:
            if name not in self._tables:
                raise ValueError(f"Table '{name}' does not exist.")
            return list(self._tables[name])

    @property
    def metadata(self) -> List[StorageMetaData]:
        return self.get_table(METADATA_TABLE)

    @property
    def static_info(self) -> List[StatsInitializationReport]:
        return self.get_table(STATIC_INFO_TABLE)

    @property
    def updates(self) -> List[StatsReport]:
        return self.get_table(UPDATES_TABLE)

    def updates_for(self, session_id: str, worker_id: Optional[str] = None) -> List[StatsReport]:
        return [
            r
            for r in self.updates
            if r.session_id == session_id
            and (worker_id is None or r.worker_id == worker_id)
        ]

    def clear(self) -> None:
        with self._lock:
            for rows in self._tables.values():
                rows.clear()
