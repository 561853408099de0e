"""Upload worker pool: one directory walker feeding N uploader threads.

The walker pushes paths relative to ``source_dir`` into a bounded queue and
finishes with one ``None`` sentinel per worker. Each worker uploads the file to
``subfolder + relative path`` and deletes the local copy only after a
successful PUT, so failed files stay on disk for a later run. Setting the
cancel event makes the walker stop feeding and every worker exit after its
current file.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from crawler.utils.logging import get_logger
from media.storage import ObjectStore, StorageError

logger = get_logger(__name__)

_POLL_SECONDS = 0.5


@dataclass
class UploadReport:
    uploaded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, relative: str, ok: bool) -> None:
        with self._lock:
            (self.uploaded if ok else self.failed).append(relative)


class UploadPool:
    def __init__(
        self,
        store: ObjectStore,
        *,
        bucket: str,
        subfolder: str = "",
        acl: str = "public-read",
        workers: int = 4,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be positive")
        self._store = store
        self._bucket = bucket
        self._subfolder = subfolder
        self._acl = acl
        self._workers = workers

    def run(self, source_dir: Path, *, cancel: Optional[threading.Event] = None) -> UploadReport:
        cancel = cancel or threading.Event()
        files: "queue.Queue[Optional[str]]" = queue.Queue(maxsize=self._workers)
        report = UploadReport()
        logger.info(
            "media.upload_start",
            extra={"bucket": self._bucket, "subfolder": self._subfolder, "workers": self._workers, "source": str(source_dir)},
        )

        threads = [threading.Thread(target=self._walk, args=(source_dir, files, cancel), name="upload-walker")]
        for worker_id in range(1, self._workers + 1):
            threads.append(
                threading.Thread(
                    target=self._work,
                    args=(worker_id, source_dir, files, report, cancel),
                    name=f"upload-worker-{worker_id}",
                )
            )
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        logger.info(
            "media.upload_done",
            extra={"uploaded": len(report.uploaded), "failed": len(report.failed)},
        )
        return report

    def _walk(self, source_dir: Path, files: "queue.Queue[Optional[str]]", cancel: threading.Event) -> None:
        try:
            for path in sorted(source_dir.rglob("*")):
                if cancel.is_set():
                    break
                if not path.is_file():
                    continue
                if not self._put(files, path.relative_to(source_dir).as_posix(), cancel):
                    break
        finally:
            for _ in range(self._workers):
                self._put(files, None, cancel, force=True)

    def _put(
        self,
        files: "queue.Queue[Optional[str]]",
        item: Optional[str],
        cancel: threading.Event,
        *,
        force: bool = False,
    ) -> bool:
        while True:
            if cancel.is_set() and not force:
                return False
            try:
                files.put(item, timeout=_POLL_SECONDS)
                return True
            except queue.Full:
                if cancel.is_set() and force:
                    # workers already left; nobody will drain the sentinel
                    return False

    def _work(
        self,
        worker_id: int,
        source_dir: Path,
        files: "queue.Queue[Optional[str]]",
        report: UploadReport,
        cancel: threading.Event,
    ) -> None:
        logger.debug("media.worker_start", extra={"worker": worker_id})
        while not cancel.is_set():
            try:
                relative = files.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue
            if relative is None:
                break
            report.record(relative, self._upload_one(worker_id, source_dir, relative))
        logger.debug("media.worker_done", extra={"worker": worker_id})

    def _upload_one(self, worker_id: int, source_dir: Path, relative: str) -> bool:
        path = source_dir / relative
        key = f"{self._subfolder}{relative}"
        try:
            body = path.read_bytes()
            locator = self._store.put_object(self._bucket, key, body, self._acl)
        except (OSError, StorageError) as exc:
            logger.warning(
                "media.upload_failed",
                extra={"worker": worker_id, "file": relative, "key": key, "error": str(exc)},
            )
            return False
        path.unlink(missing_ok=True)
        logger.debug("media.uploaded", extra={"worker": worker_id, "file": relative, "locator": locator})
        return True


def upload_directory(
    source_dir: Path,
    store: ObjectStore,
    *,
    bucket: str,
    subfolder: str = "",
    acl: str = "public-read",
    workers: int = 4,
    cancel: Optional[threading.Event] = None,
) -> UploadReport:
    pool = UploadPool(store, bucket=bucket, subfolder=subfolder, acl=acl, workers=workers)
    return pool.run(source_dir, cancel=cancel)
