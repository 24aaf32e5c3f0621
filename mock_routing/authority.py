# mock_routing/authority.py
# Role + address pairs a message is addressed from / to.
from dataclasses import dataclass
from typing import Any, Dict, Union

from .errors import DecodeError
from .utils import NameType


@dataclass(frozen=True)
class Client:
    address: NameType
    public_key: bytes


@dataclass(frozen=True)
class ClientManager:
    address: NameType


@dataclass(frozen=True)
class NaeManager:
    """Manager of a network address element, i.e. of a record by its name."""
    address: NameType


@dataclass(frozen=True)
class NodeManager:
    address: NameType


@dataclass(frozen=True)
class ManagedNode:
    address: NameType


@dataclass(frozen=True)
class Unknown:
    pass


Authority = Union[Client, ClientManager, NaeManager, NodeManager, ManagedNode, Unknown]

_ADDRESSED = {
    "client_manager": ClientManager,
    "nae_manager": NaeManager,
    "node_manager": NodeManager,
    "managed_node": ManagedNode,
}


def authority_to_wire(authority: Authority) -> Dict[str, Any]:
    if isinstance(authority, Client):
        return {"t": "client", "address": authority.address.hex(), "public_key": authority.public_key.hex()}
    if isinstance(authority, Unknown):
        return {"t": "unknown"}
    for tag, cls in _ADDRESSED.items():
        if isinstance(authority, cls):
            return {"t": tag, "address": authority.address.hex()}
    raise TypeError(f"not an authority: {authority!r}")


def authority_from_wire(o: Dict[str, Any]) -> Authority:
    t = o.get("t")
    try:
        if t == "client":
            return Client(NameType.from_hex(o["address"]), bytes.fromhex(o["public_key"]))
        if t == "unknown":
            return Unknown()
        if t in _ADDRESSED:
            return _ADDRESSED[t](NameType.from_hex(o["address"]))
    except (KeyError, ValueError, TypeError) as e:
        raise DecodeError(f"bad {t} authority: {e}") from e
    raise DecodeError(f"unknown authority tag {t!r}")
