# run_simulation.py
import asyncio
import logging

from mock_routing.authority import ManagedNode, NaeManager
from mock_routing.config import config_instant
from mock_routing.data import ImmutableData, ImmutableDataType, StructuredData, StructuredDataRequest
from mock_routing.errors import RoutingError
from mock_routing.events import IncomingRequest
from mock_routing.routing import MockRouting
from mock_routing.utils import NameType, ed25519_keypair

TYPE_TAG = 999


async def main():
    cfg = config_instant()
    cfg["network_delay_ms"] = 50
    routing = MockRouting.from_config(cfg)

    keys = {owner: ed25519_keypair() for owner in "ABC"}
    owners = [vk for _, vk in keys.values()]
    identifier = NameType.random()

    def version(v, payload, signers=""):
        return StructuredData.new(TYPE_TAG, identifier, v, payload, owners,
                                  signing_keys=[keys[s][0] for s in signers])

    location = StructuredData.compute_name(TYPE_TAG, identifier)
    steps = [
        ("PUT v0 p0", routing.put, version(0, b"p0")),
        ("POST v1 p1 by A,B", routing.post, version(1, b"p1", "AB")),
        ("POST v1 p2 by C", routing.post, version(1, b"p2", "C")),
        ("POST v2 p2 by C", routing.post, version(2, b"p2", "C")),
        ("POST v2 p2 by B,C", routing.post, version(2, b"p2", "BC")),
    ]
    for label, op, data in steps:
        try:
            op(location, data)
            print(f"{label}: ok")
        except RoutingError as e:
            print(f"{label}: {type(e).__name__}")

    stored = await routing.get(location, StructuredDataRequest(location, TYPE_TAG)).get()
    print(f"Stored version {stored.version}, payload {stored.data!r}")

    # one immutable chunk handed down the managers
    chunk = ImmutableData(ImmutableDataType.NORMAL, b"chunk")
    routing.put_request(NaeManager(chunk.name()), chunk)
    routing.put_request(ManagedNode(NameType.random()), chunk)
    routing.churn_event([NameType.random() for _ in range(3)])
    await routing.drain()
    routing.close()

    async for event in routing.events:
        if isinstance(event, IncomingRequest):
            print(f"Event {type(event.request).__name__} to {type(event.our_authority).__name__} "
                  f"from {type(event.from_authority).__name__}")
        else:
            print(f"Event {type(event).__name__}")

    print("Simulation finished.")

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
