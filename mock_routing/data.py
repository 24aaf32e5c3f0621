# mock_routing/data.py
# Storable records, request descriptors and request / response kinds.
import json
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from .errors import DecodeError
from .utils import NameType, ed25519_sign, sha512


class ImmutableDataType(Enum):
    NORMAL = "normal"
    BACKUP = "backup"
    SACRIFICIAL = "sacrificial"


_HASH_DEPTH = {
    ImmutableDataType.NORMAL: 1,
    ImmutableDataType.BACKUP: 2,
    ImmutableDataType.SACRIFICIAL: 3,
}


@dataclass(frozen=True)
class ImmutableData:
    kind: ImmutableDataType
    value: bytes

    def name(self) -> NameType:
        digest = self.value
        for _ in range(_HASH_DEPTH[self.kind]):
            digest = sha512(digest)
        return NameType(digest)


@dataclass(frozen=True)
class StructuredData:
    type_tag: int
    identifier: NameType
    version: int
    data: bytes
    owners: Tuple[bytes, ...] = ()
    signatures: Tuple[bytes, ...] = ()

    def __post_init__(self):
        if self.version < 0:
            raise ValueError("version must be non-negative")
        object.__setattr__(self, "owners", tuple(self.owners))
        object.__setattr__(self, "signatures", tuple(self.signatures))

    @classmethod
    def new(cls, type_tag: int, identifier: NameType, version: int, data: bytes,
            owners: Iterable[bytes], signing_keys: Iterable[bytes] = ()) -> "StructuredData":
        sd = cls(type_tag=type_tag, identifier=identifier, version=version, data=data, owners=tuple(owners))
        for sk in signing_keys:
            sd = sd.sign(sk)
        return sd

    @staticmethod
    def compute_name(type_tag: int, identifier: NameType) -> NameType:
        return NameType(sha512(identifier.value + type_tag.to_bytes(8, "big")))

    def name(self) -> NameType:
        return self.compute_name(self.type_tag, self.identifier)

    def data_to_sign(self) -> bytes:
        """Canonical bytes covered by owner signatures: every field but the signatures."""
        o = data_to_wire(self)
        del o["signatures"]
        return json.dumps(o, sort_keys=True, separators=(",", ":")).encode()

    def sign(self, sk_bytes: bytes) -> "StructuredData":
        sig = ed25519_sign(sk_bytes, self.data_to_sign())
        return replace(self, signatures=self.signatures + (sig,))

    def same_identity(self, other: "StructuredData") -> bool:
        return self.type_tag == other.type_tag and self.identifier == other.identifier


@dataclass(frozen=True)
class PlainData:
    """Record class the simulator does not route or store."""
    address: NameType
    value: bytes

    def name(self) -> NameType:
        return self.address


Data = Union[ImmutableData, StructuredData, PlainData]


# --- request descriptors ---
@dataclass(frozen=True)
class ImmutableDataRequest:
    name: NameType
    kind: ImmutableDataType = ImmutableDataType.NORMAL


@dataclass(frozen=True)
class StructuredDataRequest:
    name: NameType
    type_tag: int


@dataclass(frozen=True)
class PlainDataRequest:
    name: NameType


DataRequest = Union[ImmutableDataRequest, StructuredDataRequest, PlainDataRequest]


def request_matches(data_request: DataRequest, data: Data) -> bool:
    if isinstance(data_request, ImmutableDataRequest):
        return isinstance(data, ImmutableData)
    if isinstance(data_request, StructuredDataRequest):
        return isinstance(data, StructuredData) and data.type_tag == data_request.type_tag
    return False


# --- request / response kinds ---
@dataclass(frozen=True)
class GetRequest:
    data_request: DataRequest


@dataclass(frozen=True)
class PutRequest:
    data: Data


@dataclass(frozen=True)
class PostRequest:
    data: Data


@dataclass(frozen=True)
class DeleteRequest:
    data: Data


ExternalRequest = Union[GetRequest, PutRequest, PostRequest, DeleteRequest]


@dataclass(frozen=True)
class GetResponse:
    data: Data
    data_request: DataRequest
    response_token: Optional[bytes] = None


# --- wire (serialize/deserialize minimal) ---
def data_to_wire(data: Data) -> Dict[str, Any]:
    if isinstance(data, ImmutableData):
        return {"t": "immutable", "kind": data.kind.value, "value": data.value.hex()}
    if isinstance(data, StructuredData):
        return {
            "t": "structured",
            "type_tag": data.type_tag,
            "identifier": data.identifier.hex(),
            "version": data.version,
            "data": data.data.hex(),
            "owners": [k.hex() for k in data.owners],
            "signatures": [s.hex() for s in data.signatures],
        }
    if isinstance(data, PlainData):
        return {"t": "plain", "name": data.address.hex(), "value": data.value.hex()}
    raise TypeError(f"not a record: {data!r}")


def data_from_wire(o: Dict[str, Any]) -> Data:
    t = o.get("t")
    try:
        if t == "immutable":
            return ImmutableData(ImmutableDataType(o["kind"]), bytes.fromhex(o["value"]))
        if t == "structured":
            return StructuredData(
                type_tag=int(o["type_tag"]),
                identifier=NameType.from_hex(o["identifier"]),
                version=int(o["version"]),
                data=bytes.fromhex(o["data"]),
                owners=tuple(bytes.fromhex(k) for k in o["owners"]),
                signatures=tuple(bytes.fromhex(s) for s in o["signatures"]),
            )
        if t == "plain":
            return PlainData(NameType.from_hex(o["name"]), bytes.fromhex(o["value"]))
    except (KeyError, ValueError, TypeError) as e:
        raise DecodeError(f"bad {t} record: {e}") from e
    raise DecodeError(f"unknown record tag {t!r}")


def data_request_to_wire(req: DataRequest) -> Dict[str, Any]:
    if isinstance(req, ImmutableDataRequest):
        return {"t": "immutable_request", "name": req.name.hex(), "kind": req.kind.value}
    if isinstance(req, StructuredDataRequest):
        return {"t": "structured_request", "name": req.name.hex(), "type_tag": req.type_tag}
    if isinstance(req, PlainDataRequest):
        return {"t": "plain_request", "name": req.name.hex()}
    raise TypeError(f"not a data request: {req!r}")


def data_request_from_wire(o: Dict[str, Any]) -> DataRequest:
    t = o.get("t")
    try:
        if t == "immutable_request":
            return ImmutableDataRequest(NameType.from_hex(o["name"]), ImmutableDataType(o["kind"]))
        if t == "structured_request":
            return StructuredDataRequest(NameType.from_hex(o["name"]), int(o["type_tag"]))
        if t == "plain_request":
            return PlainDataRequest(NameType.from_hex(o["name"]))
    except (KeyError, ValueError, TypeError) as e:
        raise DecodeError(f"bad {t}: {e}") from e
    raise DecodeError(f"unknown data request tag {t!r}")


_MUTATIONS = {"put": PutRequest, "post": PostRequest, "delete": DeleteRequest}


def request_to_wire(request: ExternalRequest) -> Dict[str, Any]:
    if isinstance(request, GetRequest):
        return {"t": "get", "data_request": data_request_to_wire(request.data_request)}
    for tag, cls in _MUTATIONS.items():
        if isinstance(request, cls):
            return {"t": tag, "data": data_to_wire(request.data)}
    if isinstance(request, GetResponse):
        return {
            "t": "get_response",
            "data": data_to_wire(request.data),
            "data_request": data_request_to_wire(request.data_request),
            "response_token": request.response_token.hex() if request.response_token is not None else None,
        }
    raise TypeError(f"not a request: {request!r}")


def request_from_wire(o: Dict[str, Any]):
    t = o.get("t")
    try:
        if t == "get":
            return GetRequest(data_request_from_wire(o["data_request"]))
        if t in _MUTATIONS:
            return _MUTATIONS[t](data_from_wire(o["data"]))
        if t == "get_response":
            token = o.get("response_token")
            return GetResponse(
                data=data_from_wire(o["data"]),
                data_request=data_request_from_wire(o["data_request"]),
                response_token=bytes.fromhex(token) if token is not None else None,
            )
    except (KeyError, ValueError, TypeError) as e:
        raise DecodeError(f"bad {t} message: {e}") from e
    raise DecodeError(f"unknown request tag {t!r}")
