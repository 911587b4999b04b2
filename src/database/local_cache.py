import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, List, Optional
from urllib.parse import quote, unquote

from database.errors import StorageError
from models.records import CachedRecord
from utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class LocalCache:
    """Durable key-addressed document store on the device.

    Each key lives in its own JSON file under ``base_dir``. Files are written
    to a temporary sibling and moved into place, so readers never see a
    half-written document.
    """

    SUFFIX = ".json"

    def __init__(self, base_dir: Optional[Path] = None, clock: Optional[Clock] = None):
        if base_dir is None:
            base_dir = Path.home() / ".fithub" / "cache"
        self.base_dir = Path(base_dir)
        self.clock = clock or SystemClock()
        self._lock = threading.RLock()
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create cache directory {self.base_dir}: {e}") from e

    def _path_for(self, key: str) -> Path:
        if not key:
            raise ValueError("cache key must not be empty")
        return self.base_dir / f"{quote(key, safe='')}{self.SUFFIX}"

    def read(self, key: str) -> Optional[CachedRecord]:
        path = self._path_for(key)
        with self._lock:
            try:
                raw = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None
            except OSError as e:
                raise StorageError(f"Failed to read {key!r}: {e}") from e

        try:
            return CachedRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Corrupt cache entry {key!r}: {e}") from e

    def write(self, key: str, payload: Any) -> CachedRecord:
        record = CachedRecord(key=key, payload=payload, lastWriteAt=self.clock.now())
        try:
            content = json.dumps(record.to_dict())
        except (TypeError, ValueError) as e:
            raise StorageError(f"Payload for {key!r} is not JSON serializable: {e}") from e

        path = self._path_for(key)
        with self._lock:
            tmp_name = None
            try:
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.base_dir, prefix=".tmp-", suffix=self.SUFFIX)
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(content)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, path)
                tmp_name = None
            except OSError as e:
                raise StorageError(f"Failed to write {key!r}: {e}") from e
            finally:
                if tmp_name is not None:
                    try:
                        os.remove(tmp_name)
                    except OSError:
                        pass

        logger.debug(f"Cached {key}")
        return record

    def delete(self, key: str) -> bool:
        path = self._path_for(key)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise StorageError(f"Failed to delete {key!r}: {e}") from e
        return True

    def keys(self) -> List[str]:
        with self._lock:
            try:
                names = [p.name for p in self.base_dir.iterdir()
                         if p.is_file() and p.name.endswith(self.SUFFIX)
                         and not p.name.startswith(".tmp-")]
            except OSError as e:
                raise StorageError(f"Failed to list cache: {e}") from e
        return sorted(unquote(name[:-len(self.SUFFIX)]) for name in names)

    def __contains__(self, key: str) -> bool:
        return self._path_for(key).exists()
