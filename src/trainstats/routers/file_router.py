"""
File router: length-prefixed msgpack records on local disk.

Layout
------
<root_dir>/<session_id>/<worker_id>/
    metadata.msgpack
    static_info.msgpack
    updates.msgpack

Each file is a sequence of frames: a 4-byte big-endian length (`!I`)
followed by a msgpack payload holding the record's `to_wire()` dict.
Files are opened in append mode per record, so a crashed run leaves every
completed frame readable.
"""

import os
import struct
import threading
from pathlib import Path
from typing import Any, Dict, List, Union

import msgspec

from trainstats.reports.schema import (
    StatsInitializationReport,
    StatsReport,
    StorageMetaData,
)
from trainstats.routers.base import StatsStorageRouter

_HEADER = struct.Struct("!I")


class FileStatsRouter(StatsStorageRouter):

    def __init__(self, root_dir: Union[str, os.PathLike]) -> None:
        self.root_dir = Path(root_dir)
        self._lock = threading.Lock()
        self._encoder = msgspec.msgpack.Encoder()

    def path_for(self, session_id: str, worker_id: str, kind: str) -> Path:
        return self.root_dir / session_id / worker_id / f"{kind}.msgpack"

    def _write(self, session_id: str, worker_id: str, kind: str, wire: Dict[str, Any]) -> None:
        payload = self._encoder.encode(wire)
        path = self.path_for(session_id, worker_id, kind)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "ab") as f:
                f.write(_HEADER.pack(len(payload)))
                f.write(payload)

    def put_storage_metadata(self, metadata: StorageMetaData) -> None:
        self._write(metadata.session_id, metadata.worker_id, "metadata", metadata.to_wire())

    def put_static_info(self, report: StatsInitializationReport) -> None:
        self._write(report.session_id, report.worker_id, "static_info", report.to_wire())

    def put_update(self, report: StatsReport) -> None:
        self._write(report.session_id, report.worker_id, "updates", report.to_wire())


def read_framed_records(path: Union[str, os.PathLike]) -> List[Dict[str, Any]]:
    """
    Read every frame written by FileStatsRouter.

    Raises ValueError on a truncated header or payload.
    """
    decoder = msgspec.msgpack.Decoder()
    records = []
    with open(path, "rb") as f:
        while True:
            header = f.read(_HEADER.size)
            if not header:
                break
            if len(header) != _HEADER.size:
                raise ValueError(f"Truncated header in {path}")
            (length,) = _HEADER.unpack(header)
            payload = f.read(length)
            if len(payload) != length:
                raise ValueError(f"Truncated payload in {path}")
            records.append(decoder.decode(payload))
    return records


def read_updates(path: Union[str, os.PathLike]) -> List[StatsReport]:
    return [StatsReport.from_wire(r) for r in read_framed_records(path)]
