"""Polling watcher that detects new run directories and checks them once quiet."""

from __future__ import annotations

import errno
import logging
import os
import stat
import threading
import time
from os import PathLike
from pathlib import Path

from streamfish.launcher import WorkflowLauncher, WorkflowLauncherError

logger = logging.getLogger(__name__)

_WATCH_NAME = "main"

Snapshot = dict[Path, tuple[bool, int, int]]


def _require_exists(path: Path) -> None:
    if not path.exists():
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path))


def snapshot(path: str | PathLike[str]) -> Snapshot:
    """Map every entry below ``path`` to ``(is_dir, mtime_ns, size)``.

    The root itself is not included; a missing path gives an empty snapshot.
    """
    root = Path(path)
    entries: Snapshot = {}
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        for name in (*dirnames, *filenames):
            entry = base / name
            try:
                info = entry.stat()
            except OSError:
                continue
            entries[entry] = (stat.S_ISDIR(info.st_mode), info.st_mtime_ns, info.st_size)
    return entries


def created_paths(before: Snapshot, after: Snapshot) -> list[Path]:
    """Entries present in ``after`` but not in ``before``, sorted."""
    return sorted(path for path in after if path not in before)


def watch_event_timeout(
    path: str | PathLike[str], interval: float, timeout: float
) -> None:
    """Poll ``path`` every ``interval`` seconds until nothing changes for ``timeout``.

    Raises ``FileNotFoundError`` if the directory is missing or disappears.
    """
    root = Path(path)
    name = root.name or "unknown"
    logger.info("[%s] Watching input directory for changes...", name)
    _require_exists(root)

    previous = snapshot(root)
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.info("[%s] No event received before timeout", name)
            break
        time.sleep(min(interval, remaining))
        if not root.exists():
            logger.warning("[%s] Error in poll watcher, terminating polling", name)
            _require_exists(root)
        current = snapshot(root)
        if current != previous:
            logger.info("[%s] Event received, continue polling...", name)
            previous = current
            deadline = time.monotonic() + timeout

    logger.info("[%s] Timeout watcher thread completed", name)
    logger.info("[%s] Continue with input checks and notifications", name)


def _handle_input(path: Path, timeout_interval: float, timeout: float) -> None:
    logger.info("[%s] Input directory detected: %s", _WATCH_NAME, path)
    try:
        watch_event_timeout(path, timeout_interval, timeout)
    except OSError as err:
        logger.warning(
            "[%s] Failed to watch input directory for completion (error: %s)",
            _WATCH_NAME,
            err,
        )
        return
    try:
        launcher = WorkflowLauncher(Path(), path)
    except WorkflowLauncherError as err:
        logger.warning(
            "[%s] Could not initiate workflow launcher (error: %s)", _WATCH_NAME, err
        )
        return
    try:
        launcher.validate_inputs()
    except WorkflowLauncherError as err:
        logger.warning("[%s] Failed to validate inputs (error: %s)", _WATCH_NAME, err)


def watch_production(
    watch_path: str | PathLike[str],
    interval: float,
    timeout: float,
    timeout_interval: float,
    stop: threading.Event | None = None,
) -> list[threading.Thread]:
    """Watch ``watch_path`` for new top-level directories until ``stop`` is set.

    Each new directory is handed to a background thread that waits for it to
    go quiet and then validates it. Returns the threads that were started.
    """
    root = Path(watch_path)
    _require_exists(root)
    stop = stop if stop is not None else threading.Event()

    started: list[threading.Thread] = []
    previous = snapshot(root)
    while not stop.wait(interval):
        current = snapshot(root)
        for path in created_paths(previous, current):
            is_dir = current[path][0]
            if not is_dir or path.parent != root:
                continue
            thread = threading.Thread(
                target=_handle_input,
                args=(path, timeout_interval, timeout),
                name=f"input-{path.name}",
                daemon=True,
            )
            thread.start()
            started.append(thread)
        previous = current
    return started