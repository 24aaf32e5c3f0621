# mock_routing/utils.py
import hashlib
import os
from dataclasses import dataclass
from typing import Tuple

# --- Ed25519 via PyNaCl ---
from nacl import signing
from nacl.encoding import RawEncoder
from nacl.exceptions import BadSignatureError

NAME_TYPE_LEN = 64


def ed25519_keypair() -> Tuple[bytes, bytes]:
    sk = signing.SigningKey.generate()
    vk = sk.verify_key
    return (bytes(sk), bytes(vk))


def ed25519_sign(sk_bytes: bytes, msg: bytes) -> bytes:
    sk = signing.SigningKey(sk_bytes)
    signed = sk.sign(msg, encoder=RawEncoder)
    return signed.signature  # 64 bytes


def ed25519_verify(vk_bytes: bytes, msg: bytes, sig: bytes) -> bool:
    try:
        vk = signing.VerifyKey(vk_bytes)
        vk.verify(msg, sig, encoder=RawEncoder)
        return True
    except (BadSignatureError, ValueError, TypeError):
        return False


def sha512(data: bytes) -> bytes:
    return hashlib.sha512(data).digest()


@dataclass(frozen=True, order=True)
class NameType:
    """64-byte network address of a node or a stored record.

    Compares and orders bytewise.
    """
    value: bytes

    def __post_init__(self):
        if not isinstance(self.value, (bytes, bytearray)):
            raise TypeError(f"NameType expects bytes, got {type(self.value).__name__}")
        if len(self.value) != NAME_TYPE_LEN:
            raise ValueError(f"NameType must be {NAME_TYPE_LEN} bytes, got {len(self.value)}")
        object.__setattr__(self, "value", bytes(self.value))

    @classmethod
    def from_hex(cls, text: str) -> "NameType":
        return cls(bytes.fromhex(text))

    @classmethod
    def random(cls) -> "NameType":
        return cls(os.urandom(NAME_TYPE_LEN))

    @classmethod
    def of(cls, data: bytes) -> "NameType":
        return cls(sha512(data))

    def hex(self) -> str:
        return self.value.hex()

    def __repr__(self):
        return f"NameType({self.value[:4].hex()}..)"


# addresses the simulator answers from
SIMULATED_NODE = NameType(bytes([7]) * NAME_TYPE_LEN)
SIMULATED_NODE_MANAGER = NameType(bytes([6]) * NAME_TYPE_LEN)
