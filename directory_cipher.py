"""
directory_cipher.py – Recursive encryption/decryption of directory trees.

A pass runs through five stages:

  Discover  – walk the tree in sorted order and classify every entry as a
              file, a directory or a skipped path (excluded, symlink,
              not a regular file, unreadable).
  Dispatch  – turn each discovered file into a FileJob (in place).
  Execute   – run FileCipher.process() for every job, either one after the
              other or on a ThreadPoolExecutor.
  Collect   – hand every outcome to one consumer, the calling thread, which
              folds it into a ResultAggregator.
  Done      – return the Summary.

The outcome set does not depend on the execution policy: sequential and
parallel runs over the same tree with the same key produce the same
{path -> reason} mapping. A failing file never stops its siblings.
"""

import enum
import logging
import os
import stat
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional

from crypto import Key
from errors import IoError, XPMError
from file_cipher import FileCipher, FileOutcome, Mode, Status
from results import ResultAggregator, Summary

logger = logging.getLogger("XPManager")


class EntryKind(enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class WalkEntry:
    kind: EntryKind
    path: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class FileJob:
    path: str
    mode: Mode
    destination: str


class DirectoryCipher:
    """
    Applies FileCipher to every eligible regular file under a root.

    Parameters
    ----------
    file_cipher : FileCipher
        Does the per-file work.
    workers : int, optional
        Pool size for parallel runs; defaults to os.cpu_count().
    parallel : bool
        Use the worker pool (default) or process jobs in discovery order.
    excluded : iterable of str
        Paths never touched. A file is matched exactly and a directory
        excludes its whole subtree.
    families : iterable of str
        Files never touched together with every sibling whose name starts
        with theirs: the -wal/-shm/-journal companions SQLite creates next
        to a database, or the numbered backups of a rotated log.

    All paths are compared after symlinks are resolved, so a root or an
    exclusion reached through a link, a relative path or ".." still matches.
    """

    def __init__(
        self,
        file_cipher: FileCipher,
        workers: Optional[int] = None,
        parallel: bool = True,
        excluded: Iterable[str] = (),
        families: Iterable[str] = (),
    ) -> None:
        self.file_cipher = file_cipher
        self.workers = max(1, workers or os.cpu_count() or 1)
        self.parallel = parallel
        self.excluded = [os.path.realpath(p) for p in excluded]
        self.families = [os.path.realpath(p) for p in families]

    # ------------------------------------------------------------------
    # Discover
    # ------------------------------------------------------------------

    def is_excluded(self, path: str) -> bool:
        path = _canonical(path)
        for excluded in self.excluded + self.families:
            if path == excluded or path.startswith(excluded + os.sep):
                return True
        for owner in self.families:
            if (os.path.dirname(path) == os.path.dirname(owner)
                    and os.path.basename(path).startswith(os.path.basename(owner))):
                return True
        return False

    def walk(self, root: str) -> Iterator[WalkEntry]:
        """Yield WalkEntry values for *root* in deterministic (sorted) order."""
        errors: List[OSError] = []

        for dirpath, dirnames, filenames in os.walk(root, onerror=errors.append, followlinks=False):
            while errors:
                exc = errors.pop(0)
                yield WalkEntry(EntryKind.SKIPPED, exc.filename or dirpath, f"unreadable: {exc.strerror}")

            yield WalkEntry(EntryKind.DIRECTORY, dirpath)

            kept = []
            for name in sorted(dirnames):
                full = os.path.join(dirpath, name)
                if os.path.islink(full):
                    yield WalkEntry(EntryKind.SKIPPED, full, "symlink")
                elif self.is_excluded(full):
                    yield WalkEntry(EntryKind.SKIPPED, full, "excluded")
                else:
                    kept.append(name)
            dirnames[:] = kept

            for name in sorted(filenames):
                full = os.path.join(dirpath, name)
                yield self._classify(full)

        while errors:
            exc = errors.pop(0)
            yield WalkEntry(EntryKind.SKIPPED, exc.filename or root, f"unreadable: {exc.strerror}")

    def _classify(self, path: str) -> WalkEntry:
        if self.is_excluded(path):
            return WalkEntry(EntryKind.SKIPPED, path, "excluded")
        try:
            st = os.lstat(path)
        except OSError as exc:
            return WalkEntry(EntryKind.SKIPPED, path, f"unreadable: {exc.strerror}")
        if stat.S_ISLNK(st.st_mode):
            return WalkEntry(EntryKind.SKIPPED, path, "symlink")
        if not stat.S_ISREG(st.st_mode):
            return WalkEntry(EntryKind.SKIPPED, path, "not a regular file")
        return WalkEntry(EntryKind.FILE, path)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    @staticmethod
    def dispatch(entries: Iterable[WalkEntry], mode: Mode) -> List[FileJob]:
        return [FileJob(e.path, mode, e.path) for e in entries if e.kind is EntryKind.FILE]

    # ------------------------------------------------------------------
    # Execute / Collect
    # ------------------------------------------------------------------

    def execute(
        self,
        jobs: List[FileJob],
        key: Key,
        aggregator: ResultAggregator,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Run *jobs* and fold every outcome into *aggregator*."""
        if cancel is None:
            cancel = threading.Event()
        if self.parallel and len(jobs) > 1:
            self._execute_parallel(jobs, key, aggregator, cancel)
        else:
            self._execute_sequential(jobs, key, aggregator, cancel)

    def _execute_sequential(self, jobs, key, aggregator, cancel) -> None:
        for index, job in enumerate(jobs):
            try:
                aggregator.fold(self._process(job, key, cancel))
            except KeyboardInterrupt:
                cancel.set()
                for rest in jobs[index:]:
                    aggregator.fold(_cancelled(rest))
                raise

    def _execute_parallel(self, jobs, key, aggregator, cancel) -> None:
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = {executor.submit(self._process, job, key, cancel): job for job in jobs}
            done = set()
            try:
                for future in as_completed(futures):
                    done.add(future)
                    aggregator.fold(future.result())
            except KeyboardInterrupt:
                cancel.set()
                for future, job in futures.items():
                    if future in done:
                        continue
                    if future.cancel():
                        aggregator.fold(_cancelled(job))
                    else:
                        aggregator.fold(future.result())
                raise

    def _process(self, job: FileJob, key: Key, cancel: threading.Event) -> FileOutcome:
        if cancel.is_set():
            return _cancelled(job)
        try:
            return self.file_cipher.process(job.path, job.mode, key, job.destination)
        except Exception as exc:
            logger.exception("Unexpected error while processing %s", job.path)
            return FileOutcome(job.path, job.mode, job.destination, Status.FAILED,
                               XPMError(f"unexpected error: {exc}"))

    # ------------------------------------------------------------------
    # Whole pass
    # ------------------------------------------------------------------

    def run(self, root: str, mode: Mode, key: Key,
            cancel: Optional[threading.Event] = None) -> Summary:
        """
        Encrypt or decrypt every eligible file under *root* in place.

        Raises IoError if *root* is not a directory; every other problem is
        reported per file in the returned Summary.
        """
        if not os.path.isdir(root):
            raise IoError(f"{root} is not a directory")

        aggregator = ResultAggregator()
        entries = list(self.walk(root))
        for entry in entries:
            if entry.kind is EntryKind.SKIPPED:
                aggregator.skip(entry.path, entry.reason)

        jobs = self.dispatch(entries, mode)
        logger.info("%s %d file(s) under %s (%s)", mode.value.capitalize(), len(jobs), root,
                    f"{self.workers} workers" if self.parallel else "sequential")

        self.execute(jobs, key, aggregator, cancel)

        summary = aggregator.summary()
        logger.info("Directory %s done: %d ok, %d failed, %d cancelled",
                    mode.value, summary.succeeded, summary.failed, summary.cancelled)
        return summary


def _cancelled(job: FileJob) -> FileOutcome:
    return FileOutcome(job.path, job.mode, job.destination, Status.CANCELLED)


def _canonical(path: str) -> str:
    # Only the parent is resolved; a symlink entry keeps its own name.
    head, tail = os.path.split(os.path.abspath(path))
    return os.path.join(os.path.realpath(head), tail)
