"""Format-preserving version marker patcher.

A marker is a key followed by either ``=`` (spaces allowed on either side)
or plain whitespace, then an optionally quoted value::

    RUST_VERSION="1.74.0"
    ENV JAVA_VERSION=21
    ARG NODE_VERSION= 20.11.0
    ENV GCC_VERSION 13.2.0

Only the first occurrence of the key is rewritten, and the separator and
quote characters found in the file are reused verbatim. Symlinked targets are
patched through the link; the link itself is left in place. Every failure is
reported through ``PatchResult``; nothing raises out of ``patch_file``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Optional

from ..constants import Constants, PatchStatus

logger = logging.getLogger(__name__)


@dataclass
class PatchResult:
    """Outcome of one marker patch against one file."""
    path: str
    marker_key: str
    new_value: str
    status: PatchStatus
    previous_value: Optional[str] = None
    backup_path: Optional[str] = None
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.status == PatchStatus.UPDATED

    @property
    def failed(self) -> bool:
        """True for outcomes that are errors rather than 'already current'."""
        return self.status in (PatchStatus.MISSING_FILE, PatchStatus.MISSING_MARKER, PatchStatus.ERROR)


def marker_pattern(marker_key: str) -> re.Pattern:
    """Compile the pattern recognizing ``marker_key`` and its value."""
    return re.compile(
        r"(?<![\w$])(?P<key>" + re.escape(marker_key) + r")"
        r"(?P<sep>[ \t]*=[ \t]*|[ \t]+)"
        r"(?P<quote>[\"']?)"
        r"(?P<value>[^\"'\s]+)"
        r"(?P=quote)"
    )


def find_marker(content: str, marker_key: str) -> Optional[re.Match]:
    """Return the first marker match in ``content``."""
    return marker_pattern(marker_key).search(content)


def replace_marker(content: str, marker_key: str, new_value: str) -> str:
    """Rewrite the first marker occurrence, keeping separator and quotes."""
    def _sub(match: re.Match) -> str:
        quote = match.group("quote")
        return f"{match.group('key')}{match.group('sep')}{quote}{new_value}{quote}"

    return marker_pattern(marker_key).sub(_sub, content, count=1)


def read_marker(path: str, marker_key: str) -> Optional[str]:
    """Return the current marker value in ``path``, or None if unavailable."""
    try:
        with open(path, "rb") as fh:
            content = fh.read().decode("utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    match = find_marker(content, marker_key)
    return match.group("value") if match else None


def _backup_path(path: str) -> str:
    """Pick ``<path>.backup.<unix millis>``, stepping past existing names."""
    millis = int(time.time() * 1000)
    candidate = f"{path}{Constants.BACKUP_SUFFIX}{millis}"
    while os.path.exists(candidate):
        millis += 1
        candidate = f"{path}{Constants.BACKUP_SUFFIX}{millis}"
    return candidate


def _write_replacement(path: str, data: bytes) -> str:
    """Write ``data`` to a temp file beside ``path`` and return its name."""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        shutil.copymode(path, tmp_path)
    except OSError:
        _discard(tmp_path)
        raise
    return tmp_path


def _discard(path: Optional[str]) -> None:
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.debug("Could not remove %s: %s", path, exc)


def patch_file(path: str, marker_key: str, new_value: str) -> PatchResult:
    """Set ``marker_key`` in ``path`` to ``new_value``.

    Args:
        path: Target file.
        marker_key: Version variable name, e.g. ``RUST_VERSION``.
        new_value: Requested version string.

    Returns:
        PatchResult; ``changed`` is True only when the file was rewritten.
    """
    # All I/O happens on the resolved file; results still report ``path``.
    real_path = os.path.realpath(path)
    if not os.path.isfile(path):
        logger.warning("File not found: %s", path)
        return PatchResult(path, marker_key, new_value, PatchStatus.MISSING_FILE)

    backup_path: Optional[str] = None
    tmp_path: Optional[str] = None
    previous: Optional[str] = None
    try:
        with open(path, "rb") as fh:
            original_bytes = fh.read()
        original = original_bytes.decode("utf-8")

        match = find_marker(original, marker_key)
        if match is None:
            logger.warning("%s not found in %s", marker_key, path)
            return PatchResult(path, marker_key, new_value, PatchStatus.MISSING_MARKER)

        previous = match.group("value")
        if previous == new_value:
            logger.info("%s already up-to-date in %s: %s", marker_key, path, new_value)
            return PatchResult(path, marker_key, new_value, PatchStatus.CURRENT, previous_value=previous)

        backup_path = _backup_path(path)
        with open(backup_path, "wb") as fh:
            fh.write(original_bytes)

        updated = replace_marker(original, marker_key, new_value)
        tmp_path = _write_replacement(real_path, updated.encode("utf-8"))
        with open(tmp_path, "rb") as fh:
            written = fh.read()

        if written == original_bytes:
            _discard(tmp_path)
            _discard(backup_path)
            logger.info("No effective change for %s in %s", marker_key, path)
            return PatchResult(path, marker_key, new_value, PatchStatus.CURRENT, previous_value=previous)

        os.replace(tmp_path, real_path)
        tmp_path = None
    except (OSError, UnicodeDecodeError) as exc:
        # The target is only replaced as the last step, so it is still intact.
        _discard(tmp_path)
        _discard(backup_path)
        logger.error("Error updating %s in %s: %s", marker_key, path, exc)
        return PatchResult(
            path,
            marker_key,
            new_value,
            PatchStatus.ERROR,
            previous_value=previous,
            error=str(exc),
        )

    logger.info("Updated %s in %s: %s -> %s", marker_key, path, previous, new_value)
    logger.info("Backup created: %s", backup_path)
    return PatchResult(
        path,
        marker_key,
        new_value,
        PatchStatus.UPDATED,
        previous_value=previous,
        backup_path=backup_path,
    )


async def apatch_file(path: str, marker_key: str, new_value: str) -> PatchResult:
    """Run ``patch_file`` on a worker thread."""
    return await asyncio.to_thread(patch_file, path, marker_key, new_value)
