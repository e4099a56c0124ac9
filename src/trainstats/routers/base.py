from abc import ABC, abstractmethod

from trainstats.reports.schema import (
    StatsInitializationReport,
    StatsReport,
    StorageMetaData,
)


class StatsStorageRouter(ABC):
    """
    Sink for everything a StatsListener produces.

    A router accepts exactly three kinds of record:
      - storage metadata (once per listener)
      - the initialization report (once per listener)
      - update reports (stream)

    Records are immutable and must not be modified by the router. Calls are
    synchronous: an exception raised here is what the listener sees as a
    router failure. A router may be shared by many listeners; its thread
    safety is its own responsibility.
    """

    @abstractmethod
    def put_storage_metadata(self, metadata: StorageMetaData) -> None:
        raise NotImplementedError("Must be implemented by subclasses.")

    @abstractmethod
    def put_static_info(self, report: StatsInitializationReport) -> None:
        raise NotImplementedError("Must be implemented by subclasses.")

    @abstractmethod
    def put_update(self, report: StatsReport) -> None:
        raise NotImplementedError("Must be implemented by subclasses.")
