# mock_routing/events.py
# Typed network events, the subscriber channel and one-shot client response endpoints.
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional, Union

from .authority import Authority, authority_from_wire, authority_to_wire
from .data import Data, ExternalRequest, GetResponse, request_from_wire, request_to_wire
from .errors import ChannelClosed, DecodeError
from .utils import NameType


@dataclass(frozen=True)
class IncomingRequest:
    request: ExternalRequest
    our_authority: Authority
    from_authority: Authority
    response_token: Optional[bytes] = None


@dataclass(frozen=True)
class IncomingResponse:
    response: GetResponse
    our_authority: Authority
    from_authority: Authority


@dataclass(frozen=True)
class MembershipChanged:
    nodes: FrozenSet[NameType]


@dataclass(frozen=True)
class Terminated:
    pass


NetworkEvent = Union[IncomingRequest, IncomingResponse, MembershipChanged, Terminated]


class EventChannel:
    """FIFO of NetworkEvents: many producers, one consumer.

    After close() the producer side is retired and send() raises ChannelClosed.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: NetworkEvent):
        if self._closed:
            raise ChannelClosed(f"event channel closed, dropping {type(event).__name__}")
        self._queue.put_nowait(event)

    def close(self):
        self._closed = True

    async def recv(self, timeout: Optional[float] = None) -> NetworkEvent:
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout)

    def get_nowait(self) -> NetworkEvent:
        return self._queue.get_nowait()

    def empty(self) -> bool:
        return self._queue.empty()

    def qsize(self) -> int:
        return self._queue.qsize()

    def __aiter__(self):
        return self

    async def __anext__(self) -> NetworkEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if isinstance(event, Terminated):
            # Terminated is the last event a consumer sees
            self._closed = True
        return event


class ResponseEndpoint:
    """Single-value response channel created per client request."""

    def __init__(self, name: NameType, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.name = name
        loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future = loop.create_future()
        self._consumed = False

    def done(self) -> bool:
        return self._future.done()

    def deliver(self, data: Data) -> bool:
        if self._future.done():
            return False
        self._future.set_result(data)
        return True

    def fail(self, error: Exception) -> bool:
        if self._future.done():
            return False
        self._future.set_exception(error)
        return True

    async def get(self, timeout: Optional[float] = None) -> Data:
        if self._consumed:
            raise RuntimeError(f"response for {self.name!r} already consumed")
        self._consumed = True
        if timeout is None:
            return await self._future
        return await asyncio.wait_for(self._future, timeout)


# --- wire ---
def event_to_wire(event: NetworkEvent) -> Dict[str, Any]:
    if isinstance(event, IncomingRequest):
        return {
            "t": "request",
            "request": request_to_wire(event.request),
            "our_authority": authority_to_wire(event.our_authority),
            "from_authority": authority_to_wire(event.from_authority),
            "response_token": event.response_token.hex() if event.response_token is not None else None,
        }
    if isinstance(event, IncomingResponse):
        return {
            "t": "response",
            "response": request_to_wire(event.response),
            "our_authority": authority_to_wire(event.our_authority),
            "from_authority": authority_to_wire(event.from_authority),
        }
    if isinstance(event, MembershipChanged):
        return {"t": "churn", "nodes": sorted(n.hex() for n in event.nodes)}
    if isinstance(event, Terminated):
        return {"t": "terminated"}
    raise TypeError(f"not a network event: {event!r}")


def event_from_wire(o: Dict[str, Any]) -> NetworkEvent:
    t = o.get("t")
    try:
        if t == "request":
            token = o.get("response_token")
            return IncomingRequest(
                request=request_from_wire(o["request"]),
                our_authority=authority_from_wire(o["our_authority"]),
                from_authority=authority_from_wire(o["from_authority"]),
                response_token=bytes.fromhex(token) if token is not None else None,
            )
        if t == "response":
            return IncomingResponse(
                response=request_from_wire(o["response"]),
                our_authority=authority_from_wire(o["our_authority"]),
                from_authority=authority_from_wire(o["from_authority"]),
            )
        if t == "churn":
            return MembershipChanged(frozenset(NameType.from_hex(n) for n in o["nodes"]))
        if t == "terminated":
            return Terminated()
    except (KeyError, ValueError, TypeError) as e:
        raise DecodeError(f"bad {t} event: {e}") from e
    raise DecodeError(f"unknown event tag {t!r}")
