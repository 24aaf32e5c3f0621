# mock_routing/wire.py
# serialise / deserialise: JSON wire dicts with hex-encoded bytes.
import json
from typing import Any, Dict

from . import authority as _authority
from . import data as _data
from . import events as _events
from .errors import DecodeError
from .utils import NameType

_RECORD_TAGS = {"immutable", "structured", "plain"}
_DATA_REQUEST_TAGS = {"immutable_request", "structured_request", "plain_request"}
_REQUEST_TAGS = {"get", "put", "post", "delete", "get_response"}
_AUTHORITY_TAGS = {"client", "client_manager", "nae_manager", "node_manager", "managed_node", "unknown"}
_EVENT_TAGS = {"request", "response", "churn", "terminated"}


def to_wire(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [to_wire(v) for v in value]
    if isinstance(value, NameType):
        return {"t": "name", "v": value.hex()}
    if isinstance(value, (bytes, bytearray)):
        return {"t": "bytes", "v": bytes(value).hex()}
    if isinstance(value, (_data.ImmutableData, _data.StructuredData, _data.PlainData)):
        return _data.data_to_wire(value)
    if isinstance(value, (_data.ImmutableDataRequest, _data.StructuredDataRequest, _data.PlainDataRequest)):
        return _data.data_request_to_wire(value)
    if isinstance(value, (_data.GetRequest, _data.PutRequest, _data.PostRequest,
                          _data.DeleteRequest, _data.GetResponse)):
        return _data.request_to_wire(value)
    if isinstance(value, (_events.IncomingRequest, _events.IncomingResponse,
                          _events.MembershipChanged, _events.Terminated)):
        return _events.event_to_wire(value)
    try:
        return _authority.authority_to_wire(value)
    except TypeError:
        raise TypeError(f"cannot serialise {type(value).__name__}") from None


def from_wire(o: Any) -> Any:
    if isinstance(o, list):
        return [from_wire(v) for v in o]
    if not isinstance(o, dict):
        raise DecodeError(f"expected object, got {type(o).__name__}")
    t = o.get("t")
    try:
        if t == "name":
            return NameType.from_hex(o["v"])
        if t == "bytes":
            return bytes.fromhex(o["v"])
    except (KeyError, ValueError, TypeError) as e:
        raise DecodeError(f"bad {t}: {e}") from e
    if t in _RECORD_TAGS:
        return _data.data_from_wire(o)
    if t in _DATA_REQUEST_TAGS:
        return _data.data_request_from_wire(o)
    if t in _REQUEST_TAGS:
        return _data.request_from_wire(o)
    if t in _AUTHORITY_TAGS:
        return _authority.authority_from_wire(o)
    if t in _EVENT_TAGS:
        return _events.event_from_wire(o)
    raise DecodeError(f"unknown wire tag {t!r}")


def serialise(value: Any) -> bytes:
    return json.dumps(to_wire(value), sort_keys=True, separators=(",", ":")).encode()


def deserialise(raw: bytes) -> Any:
    try:
        o: Dict[str, Any] = json.loads(raw)
    except (ValueError, TypeError) as e:
        raise DecodeError(f"not a wire value: {e}") from e
    return from_wire(o)
