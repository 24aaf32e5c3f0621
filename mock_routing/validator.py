# mock_routing/validator.py
"""Write-conflict and authorisation rules applied before the data store changes.

Immutable records are content addressed: re-storing identical content is a
no-op, anything else at an occupied name is a conflict.

Versioned (structured) records follow

    Absent -(PUT v0)-> Present(v0) -(POST v+1, quorum)-> Present(v+1) ... -(DELETE v+1, quorum)-> Absent

A POST or DELETE is authorised when more than half of the *stored* record's
owners have a valid signature over the incoming record's ``data_to_sign()``.
Every check and the write that follows it run under the store lock.
"""
import logging
from typing import Callable, Iterable, Sequence

from .data import Data, ImmutableData, StructuredData
from .errors import (Conflict, IdentityMismatch, MalformedRequest, QuorumNotMet,
                     RoutingError, VersionMismatch)
from .store import DataStore
from .utils import NameType, ed25519_verify

logger = logging.getLogger(__name__)

Verifier = Callable[[bytes, bytes, bytes], bool]  # (public_key, message, signature)


def quorum_size(n_owners: int) -> int:
    """Smallest strict majority of n_owners."""
    return n_owners // 2 + 1


def count_owner_signatures(owners: Iterable[bytes], signatures: Sequence[bytes], message: bytes,
                           verify: Verifier = ed25519_verify) -> int:
    """Number of entries in owners with at least one valid signature; a repeated owner counts per entry."""
    valid = 0
    for owner in owners:
        # one verified signature is enough for an owner
        if any(verify(owner, message, sig) for sig in signatures):
            valid += 1
    return valid


class MutationValidator:
    def __init__(self, store: DataStore, verify: Verifier = ed25519_verify):
        self.store = store
        self.verify = verify

    def get(self, location: NameType) -> Data:
        with self.store.lock:
            return self.store.get(location)

    def put(self, location: NameType, data: Data):
        try:
            with self.store.lock:
                if isinstance(data, ImmutableData):
                    self._put_immutable(location, data)
                elif isinstance(data, StructuredData):
                    if data.version != 0:
                        raise Conflict(f"first version of a structured record must be 0, got {data.version}")
                    self.store.upsert_versioned(location, data, None)
                else:
                    raise MalformedRequest(f"cannot store {type(data).__name__}")
        except RoutingError as e:
            logger.info(f"PUT rejected at {location!r}: {type(e).__name__}: {e}")
            raise
        logger.debug(f"PUT accepted at {location!r}")

    def _put_immutable(self, location: NameType, data: ImmutableData):
        if location not in self.store:
            self.store.put(location, data)
            return
        stored = self.store.get(location)
        if stored == data:
            return  # de-duplication
        if isinstance(stored, ImmutableData) and stored.value == data.value:
            raise Conflict(f"content at {location!r} is stored as {stored.kind.value}, not {data.kind.value}")
        raise Conflict(f"a different record is already stored at {location!r}")

    def post(self, location: NameType, data: Data):
        try:
            with self.store.lock:
                stored = self._authorise(location, data)
                self.store.upsert_versioned(location, data, stored.version)
        except RoutingError as e:
            logger.info(f"POST rejected at {location!r}: {type(e).__name__}: {e}")
            raise
        logger.debug(f"POST accepted at {location!r}, now version {data.version}")

    def delete(self, location: NameType, data: Data):
        try:
            with self.store.lock:
                stored = self._authorise(location, data)
                self.store.remove_versioned(location, stored.version)
        except RoutingError as e:
            logger.info(f"DELETE rejected at {location!r}: {type(e).__name__}: {e}")
            raise
        logger.debug(f"DELETE accepted at {location!r}")

    def _authorise(self, location: NameType, incoming: Data) -> StructuredData:
        """Checks shared by POST and DELETE; returns the stored record."""
        if not isinstance(incoming, StructuredData):
            raise MalformedRequest(f"{type(incoming).__name__} cannot be updated or deleted")
        stored = self.store.get(location)
        if not isinstance(stored, StructuredData):
            raise Conflict(f"record at {location!r} is not versioned")
        if incoming.version != stored.version + 1:
            raise VersionMismatch(f"expected version {stored.version + 1}, got {incoming.version}")
        if not incoming.same_identity(stored):
            raise IdentityMismatch(f"record at {location!r} has a different type tag or identifier")
        need = quorum_size(len(stored.owners))
        have = count_owner_signatures(stored.owners, incoming.signatures, incoming.data_to_sign(), self.verify)
        if have < need:
            raise QuorumNotMet(f"{have} of {len(stored.owners)} owners signed, {need} required")
        return stored
