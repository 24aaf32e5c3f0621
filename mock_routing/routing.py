# mock_routing/routing.py
"""In-process stand-in for the routing layer of the storage network.

Requests and responses are addressed by authority. The router works out which
authority the receiving node should see the message *from* and hands it to the
event channel after the simulated network delay, one task per delivery:

    client --PUT--> ClientManager --> NaeManager --> NodeManager --> ManagedNode

Nothing is ordered across calls. A caller that depends on an earlier message
must wait for its response first.
"""
import logging
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, Iterable, Optional

from .authority import (Authority, Client, ClientManager, ManagedNode, NaeManager,
                        NodeManager)
from .data import (Data, DataRequest, GetRequest, GetResponse,
                   ImmutableDataRequest, PlainData, PutRequest,
                   StructuredDataRequest, request_matches)
from .errors import ChannelClosed, MalformedRequest, NotFound, RoutingError, UnsupportedAuthority
from .events import (EventChannel, IncomingRequest, IncomingResponse, MembershipChanged,
                     NetworkEvent, ResponseEndpoint, Terminated, event_to_wire)
from .network import DEFAULT_DELAY_MS, SimulatedNetwork
from .store import DataStore
from .utils import SIMULATED_NODE, SIMULATED_NODE_MANAGER, NameType, ed25519_verify
from .validator import MutationValidator, Verifier

logger = logging.getLogger(__name__)


class MockRouting:
    def __init__(
        self,
        events: EventChannel,
        network_delay_ms: int = DEFAULT_DELAY_MS,
        jitter_ms: int = 0,
        store: Optional[DataStore] = None,
        verify: Verifier = ed25519_verify,
        emit: Optional[Callable[[dict], None]] = None,
        loop=None,
    ):
        self.events = events
        self.network = SimulatedNetwork(delay_ms=network_delay_ms, jitter_ms=jitter_ms, loop=loop)
        self.store = store if store is not None else DataStore()
        self.validator = MutationValidator(self.store, verify=verify)
        self.emit = emit or (lambda e: None)
        # record name -> client response endpoints still waiting, oldest first
        self._client_endpoints: Dict[NameType, Deque[ResponseEndpoint]] = defaultdict(deque)

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], events: Optional[EventChannel] = None, **kwargs) -> "MockRouting":
        return cls(
            events if events is not None else EventChannel(),
            network_delay_ms=int(cfg.get("network_delay_ms", DEFAULT_DELAY_MS)),
            jitter_ms=int(cfg.get("jitter_ms", 0)),
            **kwargs,
        )

    def set_network_delay(self, delay_ms: int):
        self.network.set_delay(delay_ms)
        self.emit({"type": "DELAY", "delay_ms": delay_ms})

    async def drain(self):
        await self.network.drain()

    def cancel_pending(self) -> int:
        return self.network.cancel_all()

    # --- delivery helpers ---
    def _send(self, event: NetworkEvent):
        self.events.send(event)
        self.emit({"type": "DELIVERED", "event": event_to_wire(event)})

    def _send_later(self, event: NetworkEvent, delay_ms: Optional[int] = None):
        self.network.schedule(self._send, event, delay_ms=delay_ms)

    # --- entry points for tests and harnesses ---
    def client_get(self, client_address: NameType, client_pub_key: bytes, name: NameType,
                   data_request: Optional[DataRequest] = None) -> ResponseEndpoint:
        """Issue a client GET; the returned endpoint receives the record once a node answers."""
        data_request = data_request or ImmutableDataRequest(name)
        endpoint = ResponseEndpoint(data_request.name, loop=self.network.loop)
        self._client_endpoints[data_request.name].append(endpoint)
        self._send_later(IncomingRequest(
            request=GetRequest(data_request),
            our_authority=NaeManager(name),
            from_authority=Client(client_address, client_pub_key),
        ))
        return endpoint

    def client_put(self, client_address: NameType, client_pub_key: bytes, data: Data):
        self._send_later(IncomingRequest(
            request=PutRequest(data),
            our_authority=ClientManager(client_address),
            from_authority=Client(client_address, client_pub_key),
        ))

    def churn_event(self, nodes: Iterable[NameType]):
        self._send_later(MembershipChanged(frozenset(nodes)), delay_ms=0)

    # --- routing API used by the node under test ---
    def get_response(self, location: Authority, data: Data, data_request: DataRequest,
                     response_token: Optional[bytes] = None):
        if isinstance(location, NaeManager):
            self._send_later(IncomingResponse(
                response=GetResponse(data, data_request, response_token),
                our_authority=location,
                from_authority=ManagedNode(SIMULATED_NODE),
            ))
        elif isinstance(location, Client):
            self.network.schedule(self._answer_client, data_request.name, data)
        else:
            # intermediate hops are not modelled
            logger.debug(f"GET response to {type(location).__name__} ignored")

    def _answer_client(self, name: NameType, data: Data):
        waiting = self._client_endpoints.get(name)
        while waiting:
            endpoint = waiting.popleft()
            if endpoint.deliver(data):
                break
        else:
            logger.info(f"No client waiting for {name!r}, response dropped")
        if not waiting:
            self._client_endpoints.pop(name, None)

    def get_request(self, location: Authority, data_request: DataRequest):
        name = self._requested_name(data_request)
        if not isinstance(location, ManagedNode):
            raise UnsupportedAuthority(f"GET requests are only forwarded to a ManagedNode, not {type(location).__name__}")
        self._send_later(IncomingRequest(
            request=GetRequest(data_request),
            our_authority=ManagedNode(SIMULATED_NODE),
            from_authority=NaeManager(name),
        ))

    @staticmethod
    def _requested_name(data_request: DataRequest) -> NameType:
        if isinstance(data_request, (ImmutableDataRequest, StructuredDataRequest)):
            return data_request.name
        raise MalformedRequest(f"unsupported data request {type(data_request).__name__}")

    def put_request(self, location: Authority, data: Data):
        if isinstance(data, PlainData):
            raise MalformedRequest("plain data is not routed")
        if isinstance(location, ClientManager):
            return  # terminal hop, nothing above it to hand over from
        if isinstance(location, NaeManager):
            from_authority = ClientManager(SIMULATED_NODE)
        elif isinstance(location, NodeManager):
            from_authority = NaeManager(data.name())
        elif isinstance(location, ManagedNode):
            from_authority = NodeManager(SIMULATED_NODE_MANAGER)
        else:
            raise UnsupportedAuthority(f"{type(location).__name__} cannot be a PUT destination")
        self._send_later(IncomingRequest(
            request=PutRequest(data),
            our_authority=location,
            from_authority=from_authority,
        ))

    # --- validated store operations ---
    def get(self, location: NameType, data_request: DataRequest) -> ResponseEndpoint:
        """Look up a stored record; NotFound is raised now, the record arrives after the delay."""
        self._requested_name(data_request)
        data = self.validator.get(location)
        if not request_matches(data_request, data):
            raise NotFound(f"no {type(data_request).__name__} match at {location!r}")
        endpoint = ResponseEndpoint(location, loop=self.network.loop)
        self.network.schedule(endpoint.deliver, data)
        return endpoint

    def put(self, location: NameType, data: Data):
        self._mutate("PUT", self.validator.put, location, data)

    def post(self, location: NameType, data: Data):
        self._mutate("POST", self.validator.post, location, data)

    def delete(self, location: NameType, data: Data):
        self._mutate("DELETE", self.validator.delete, location, data)

    def _mutate(self, op: str, apply, location: NameType, data: Data):
        try:
            apply(location, data)
        except RoutingError as e:
            self.emit({"type": "REJECTED", "op": op, "name": location.hex(), "error": type(e).__name__})
            raise
        self.emit({"type": "STORED", "op": op, "name": location.hex()})

    # --- lifecycle ---
    def bootstrap(self):
        """There is no network to join; nothing is sent."""
        logger.debug("bootstrap requested, nothing to do")

    def close(self):
        try:
            self.events.send(Terminated())
        except ChannelClosed:
            logger.warning("Routing already terminated")
        self.events.close()
        self.emit({"type": "TERMINATED"})

    terminate = close
