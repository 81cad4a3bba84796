"""File helpers shared by the JSON document stores.

Writes go to a temp file in the same directory and are then swapped in
with ``os.replace``, so a reader never sees a half-written document.
Read-modify-write sequences hold ``document_lock``, an OS-level lock on a
sibling ``.lock`` file, so separate ``pos`` processes serialize on it.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout

from pos.domain.exceptions import StorageError

LOCK_TIMEOUT_SECONDS = 10.0


@contextmanager
def document_lock(path: Path) -> Iterator[None]:
    lock = FileLock(str(path.with_name(f"{path.name}.lock")), timeout=LOCK_TIMEOUT_SECONDS)
    try:
        lock.acquire()
    except Timeout as exc:
        raise StorageError(f"Timed out waiting for the lock on {path.name}") from exc
    try:
        yield
    finally:
        lock.release()


def ensure_file(path: Path, empty: Any) -> None:
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    with document_lock(path):
        if not path.exists():
            write_json(path, empty)


def read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise StorageError(f"Cannot read {path.name}: {exc}") from exc


def write_json(path: Path, data: Any) -> None:
    try:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(json.dumps(data, indent=2) + "\n")
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise StorageError(f"Cannot write {path.name}: {exc}") from exc
