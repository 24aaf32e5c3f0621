# mock_routing/store.py
import logging
import threading
from typing import Callable, Dict, List, Optional

from .data import Data, ImmutableData, PlainData, StructuredData
from .errors import Conflict, DecodeError, NotFound, VersionMismatch
from .utils import NameType
from .wire import deserialise, serialise

logger = logging.getLogger(__name__)


class DataStore:
    """In-memory map from record name to serialised record.

    All access goes through ``self.lock``. The mutation validator holds it across
    its check-then-write sequence, so it is re-entrant.
    """

    def __init__(self, sync_hook: Optional[Callable[[Dict[NameType, bytes]], None]] = None):
        self.lock = threading.RLock()
        self._entries: Dict[NameType, bytes] = {}
        self.sync_hook = sync_hook

    def __len__(self):
        with self.lock:
            return len(self._entries)

    def __contains__(self, name: NameType) -> bool:
        with self.lock:
            return name in self._entries

    def names(self) -> List[NameType]:
        with self.lock:
            return sorted(self._entries)

    def get_raw(self, name: NameType) -> bytes:
        with self.lock:
            try:
                return self._entries[name]
            except KeyError:
                raise NotFound(f"no record at {name!r}") from None

    def get(self, name: NameType) -> Data:
        raw = self.get_raw(name)
        data = deserialise(raw)
        if not isinstance(data, (ImmutableData, StructuredData, PlainData)):
            raise DecodeError(f"entry at {name!r} is not a record")
        return data

    def put(self, name: NameType, data: Data):
        raw = serialise(data)
        with self.lock:
            existing = self._entries.get(name)
            if existing is not None:
                if existing == raw:
                    return
                raise Conflict(f"a different record is already stored at {name!r}")
            self._entries[name] = raw
            self._sync()

    def upsert_versioned(self, name: NameType, data: StructuredData, expected_prior_version: Optional[int]):
        """Write a versioned record; ``None`` means the slot must be empty."""
        raw = serialise(data)
        with self.lock:
            if expected_prior_version is None:
                if name in self._entries:
                    raise Conflict(f"record already exists at {name!r}")
            else:
                self._check_version(name, expected_prior_version)
            self._entries[name] = raw
            self._sync()

    def remove_versioned(self, name: NameType, expected_version: int):
        with self.lock:
            self._check_version(name, expected_version)
            del self._entries[name]
            self._sync()

    def _check_version(self, name: NameType, expected_version: int):
        stored = self.get(name)
        if not isinstance(stored, StructuredData):
            raise Conflict(f"record at {name!r} is not versioned")
        if stored.version != expected_version:
            raise VersionMismatch(f"stored version is {stored.version}, expected {expected_version}")

    def _sync(self):
        if self.sync_hook is not None:
            self.sync_hook(dict(self._entries))

    # --- whole-store snapshots ---
    def snapshot(self) -> bytes:
        with self.lock:
            pairs = [[name, raw] for name, raw in sorted(self._entries.items())]
        return serialise(pairs)

    def restore(self, raw: bytes):
        pairs = deserialise(raw)
        entries: Dict[NameType, bytes] = {}
        try:
            for name, value in pairs:
                if not isinstance(name, NameType) or not isinstance(value, bytes):
                    raise DecodeError("snapshot entries must be (name, bytes) pairs")
                entries[name] = value
        except (TypeError, ValueError) as e:
            raise DecodeError(f"bad snapshot: {e}") from e
        with self.lock:
            self._entries = entries
        logger.info(f"Restored {len(entries)} records from snapshot")
