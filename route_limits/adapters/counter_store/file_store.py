"""File-backed fixed-window counter store.

Each active counter is a single file named
``<key_type>:<key_value>:<path>:<expires>`` whose content is the decimal count.
Segments longer than ``MAX_SEGMENT_BYTES`` are stored as their SHA-256 digest.

Notes:
- No locking: concurrent first requests for the same key may both start a
  window and undercount. Acceptable for best-effort limiting.
- Expired files are left in place by lookups and removed by the sweep.
"""

from __future__ import annotations

import glob
import hashlib
import logging
from pathlib import Path

from route_limits.adapters.counter_store.base import (
    AbstractCounterStore,
    CounterKey,
    CounterRecord,
)
from route_limits.core.errors import StorageAppError

logger = logging.getLogger(__name__)

DELIMITER = ":"
DIRECTORY_MODE = 0o755
# Three segments plus delimiters and expiry stay below the 255 byte name limit
MAX_SEGMENT_BYTES = 64


def encode_counter_name(key: CounterKey, expires: int) -> str:
    """Build the file name for a counter window."""
    return DELIMITER.join((_name_prefix(key), str(expires)))


def parse_counter_expiry(name: str) -> int | None:
    """Extract the expiry timestamp from a counter file name.

    The expiry is always the last segment, so key values that themselves
    contain the delimiter (IPv6 addresses) still parse.
    """
    _, sep, expires = name.rpartition(DELIMITER)
    if not sep or not expires.isdigit():
        return None
    return int(expires)


def _bounded_segment(segment: str) -> str:
    # Over-long segments become their digest so names stay under NAME_MAX
    if len(segment.encode("utf-8")) <= MAX_SEGMENT_BYTES:
        return segment
    return hashlib.sha256(segment.encode("utf-8")).hexdigest()


def _name_prefix(key: CounterKey) -> str:
    # Separators in a key value would turn the file name into a nested path
    key_value = key.key_value.replace("/", "_").replace("\\", "_")
    return DELIMITER.join(
        _bounded_segment(segment) for segment in (key.key_type, key_value, key.path)
    )


def _storage_error(action: str, path: Path, exc: OSError) -> StorageAppError:
    logger.error(
        "rate_limit.storage_unavailable",
        extra={
            "driver": "file",
            "action": action,
            "directory": str(path.parent),
            "error": str(exc),
        },
    )
    return StorageAppError(
        code="rate_limit_storage_unavailable",
        message=f"Rate limit counter could not be {action}",
        details={"driver": "file"},
    )


class FileCounterStore(AbstractCounterStore):
    """Counter store keeping one file per active window in a directory."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _ensure_directory(self) -> Path:
        """Create the counter directory on first use.

        Raises:
            StorageAppError: If the directory cannot be created.
        """
        if self._directory.is_dir():
            return self._directory
        try:
            self._directory.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
        except OSError as exc:
            logger.error(
                "rate_limit.storage_unavailable",
                extra={"driver": "file", "directory": str(self._directory), "error": str(exc)},
            )
            raise StorageAppError(
                code="rate_limit_storage_unavailable",
                message="Rate limit storage directory could not be created",
                details={"driver": "file"},
            ) from exc
        return self._directory

    def find_active(self, key: CounterKey, now: int) -> CounterRecord | None:
        directory = self._ensure_directory()
        prefix = _name_prefix(key)

        best: CounterRecord | None = None
        for candidate in directory.glob(glob.escape(prefix) + DELIMITER + "*"):
            name_prefix, _, _ = candidate.name.rpartition(DELIMITER)
            if name_prefix != prefix:
                continue
            expires = parse_counter_expiry(candidate.name)
            if expires is None or expires <= now:
                continue
            if best is not None and best.expires >= expires:
                continue

            try:
                content = candidate.read_text(encoding="utf-8").strip()
            except FileNotFoundError:
                # Swept between glob and read
                continue
            except OSError as exc:
                raise _storage_error("read", candidate, exc) from exc
            current = int(content) if content.isdigit() else 0
            best = CounterRecord(key=key, expires=expires, current=current, ref=candidate)

        return best

    def open_window(self, key: CounterKey, expires: int, now: int) -> CounterRecord:
        # Written on save(); nothing touches disk until the request is allowed.
        path = self._ensure_directory() / encode_counter_name(key, expires)
        return CounterRecord(key=key, expires=expires, current=0, ref=path)

    def save(self, record: CounterRecord) -> None:
        path = record.ref
        if path is None:
            path = self._ensure_directory() / encode_counter_name(record.key, record.expires)
            record.ref = path
        path = Path(path)
        try:
            path.write_text(str(record.current), encoding="utf-8")
        except OSError as exc:
            raise _storage_error("written", path, exc) from exc

    def delete_expired(self, now: int) -> int:
        if not self._directory.is_dir():
            return 0

        removed = 0
        for entry in self._directory.iterdir():
            if not entry.is_file():
                continue
            expires = parse_counter_expiry(entry.name)
            if expires is not None and expires > now:
                continue
            try:
                entry.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning(
                    "rate_limit.cleanup_failed",
                    extra={"driver": "file", "expires": expires, "error": str(exc)},
                )
                continue
            removed += 1
        return removed
