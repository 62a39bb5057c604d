"""Map/reduce activities: the only code here that touches storage.

    list_objects(container)      → sorted object names (recorded once in history)
    map_file(MapFileInput)       → number of records written to container_out
    reduce_file(ReduceFileInput) → per-file result of job.reduce_records, or None
"""

from __future__ import annotations

import io
import time

from durable_mr.core.logging import get_logger
from durable_mr.mapreduce.job import MapReduceJob
from durable_mr.mapreduce.models import MapFileInput, ReduceFileInput
from durable_mr.storage.base import ObjectRef, ObjectStore

logger = get_logger(__name__)


class MapReduceActivities:
    """Activity callbacks bound to one object store and one job."""

    def __init__(self, store: ObjectStore, job: MapReduceJob):
        self.store = store
        self.job = job

    def list_objects(self, container: str) -> list[str]:
        names = [ref.name for ref in self.store.list_objects(container)]
        logger.info("objects_listed", container=container, count=len(names))
        return names

    def map_file(self, input: MapFileInput) -> int:
        source = ObjectRef(input.container_in, input.file_name)
        target = ObjectRef(input.container_out, input.file_name)
        start = time.monotonic()
        emitted = 0
        skipped = 0

        with self.store.open_read(source) as raw, self.store.open_write(target) as out:
            reader = io.TextIOWrapper(raw, encoding="utf-8", newline=None)
            for number, line in enumerate(reader):
                if number < self.job.header_rows:
                    continue
                line = line.rstrip("\n")
                if not line.strip():
                    continue
                mapped = self.job.map_record(line)
                if mapped is None:
                    skipped += 1
                    continue
                out.write(f"{mapped}\n".encode("utf-8"))
                emitted += 1

        logger.info(
            "file_mapped",
            source=str(source),
            target=str(target),
            records=emitted,
            skipped=skipped,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return emitted

    def reduce_file(self, input: ReduceFileInput):
        source = ObjectRef(input.container_in, input.file_name)
        with self.store.open_read(source) as raw:
            reader = io.TextIOWrapper(raw, encoding="utf-8", newline=None)
            result = self.job.reduce_records(line.rstrip("\n") for line in reader)
        logger.info("file_reduced", source=str(source), result=result)
        return result
