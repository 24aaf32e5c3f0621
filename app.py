# app.py
# HTTP / WebSocket harness around one MockRouting instance.
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from mock_routing.config import config_basic
from mock_routing.data import (ImmutableData, ImmutableDataRequest, ImmutableDataType,
                               StructuredDataRequest, data_from_wire, data_to_wire)
from mock_routing.errors import (Conflict, IdentityMismatch, MalformedRequest, NotFound, QuorumNotMet,
                                 RoutingError, VersionMismatch)
from mock_routing.events import EventChannel, event_to_wire
from mock_routing.routing import MockRouting
from mock_routing.utils import NameType

logger = logging.getLogger(__name__)

app = FastAPI()

_STATUS = {
    NotFound: 404,
    Conflict: 409,
    VersionMismatch: 409,
    IdentityMismatch: 409,
    QuorumNotMet: 403,
}


@app.exception_handler(RoutingError)
async def routing_error(request, exc: RoutingError):
    return JSONResponse(status_code=_STATUS.get(type(exc), 400),
                        content={"error": type(exc).__name__, "detail": str(exc)})


class Hub:
    def __init__(self):
        self.clients: List[WebSocket] = []
        self.lock = asyncio.Lock()
    async def connect(self, ws: WebSocket):
        await ws.accept()
        async with self.lock:
            self.clients.append(ws)
    async def disconnect(self, ws: WebSocket):
        async with self.lock:
            if ws in self.clients:
                self.clients.remove(ws)
    async def broadcast(self, message: dict):
        payload = json.dumps(message)
        async with self.lock:
            dead = []
            for ws in self.clients:
                try:    await ws.send_text(payload)
                except (RuntimeError, WebSocketDisconnect): dead.append(ws)
            for d in dead:
                if d in self.clients: self.clients.remove(d)

hub = Hub()

def make_emitter(prefix: str):
    async def _emit_async(evt: dict):
        await hub.broadcast({"source": prefix, **evt})
    def _emit(evt: dict):
        asyncio.get_running_loop().create_task(_emit_async(evt))
    return _emit

sim_routing: Optional[MockRouting] = None
sim_tasks: List[asyncio.Task] = []


async def _pump(routing: MockRouting):
    # this harness is the single consumer of the event channel
    async for event in routing.events:
        await hub.broadcast({"source": "network", **event_to_wire(event)})


async def stop_simulation():
    global sim_routing, sim_tasks
    if sim_routing is not None:
        sim_routing.close()
        sim_routing.cancel_pending()
        for t in sim_tasks:
            t.cancel()
        sim_tasks = []
        sim_routing = None
        logger.info("Simulation stopped")
        await hub.broadcast({"type": "STATUS", "state": "stopped"})


async def start_simulation(cfg: Dict[str, Any]) -> Dict[str, Any]:
    global sim_routing, sim_tasks
    settings = config_basic()
    try:
        settings.update({k: int(v) for k, v in cfg.items() if k in settings})
    except (TypeError, ValueError) as e:
        raise MalformedRequest(f"bad simulation config: {e}") from e
    if any(v < 0 for v in settings.values()):
        raise MalformedRequest(f"simulation config values must be non-negative: {settings}")
    await stop_simulation()
    sim_routing = MockRouting.from_config(settings, events=EventChannel(), emit=make_emitter("routing"))
    sim_tasks = [asyncio.create_task(_pump(sim_routing))]
    logger.info(f"Simulation running with {settings}")
    await hub.broadcast({"type": "STATUS", "state": "running", "config": settings})
    return settings


async def routing() -> MockRouting:
    if sim_routing is None:
        await start_simulation({})
    return sim_routing


def reset():
    """Forget the running simulator without touching its event loop."""
    global sim_routing, sim_tasks
    sim_routing = None
    sim_tasks = []


class ImmutableBody(BaseModel):
    value: str
    kind: str = ImmutableDataType.NORMAL.value


class RecordBody(BaseModel):
    location: str
    record: Dict[str, Any]


class DelayBody(BaseModel):
    delay_ms: int


class ChurnBody(BaseModel):
    nodes: List[str]


def _name(text: str) -> NameType:
    try:
        return NameType.from_hex(text)
    except ValueError as e:
        raise MalformedRequest(f"{text!r} is not a record name: {e}") from e


@app.get("/health")
async def health():
    return {"ok": True, "running": sim_routing is not None}


@app.post("/start")
async def start(cfg: Dict[str, Any]):
    return {"state": "running", "config": await start_simulation(cfg)}


@app.post("/stop")
async def stop():
    await stop_simulation()
    return {"state": "stopped"}


@app.put("/data/immutable", status_code=201)
async def put_immutable(body: ImmutableBody):
    try:
        data = ImmutableData(ImmutableDataType(body.kind), bytes.fromhex(body.value))
    except ValueError as e:
        raise MalformedRequest(f"bad immutable record: {e}") from e
    (await routing()).put(data.name(), data)
    return {"name": data.name().hex()}


@app.get("/data/{name_hex}")
async def get_data(name_hex: str, type_tag: Optional[int] = None):
    name = _name(name_hex)
    request = StructuredDataRequest(name, type_tag) if type_tag is not None else ImmutableDataRequest(name)
    endpoint = (await routing()).get(name, request)
    return {"name": name_hex, "record": data_to_wire(await endpoint.get())}


@app.post("/records/{op}")
async def mutate(op: str, body: RecordBody):
    r = await routing()
    apply = {"put": r.put, "post": r.post, "delete": r.delete}.get(op)
    if apply is None:
        return JSONResponse(status_code=404, content={"error": "UnknownOperation", "detail": op})
    apply(_name(body.location), data_from_wire(body.record))
    return {"op": op, "name": body.location}


@app.post("/config/delay")
async def set_delay(body: DelayBody):
    try:
        (await routing()).set_network_delay(body.delay_ms)
    except ValueError as e:
        raise MalformedRequest(str(e)) from e
    return {"delay_ms": body.delay_ms}


@app.post("/churn")
async def churn(body: ChurnBody):
    nodes = [_name(n) for n in body.nodes]
    (await routing()).churn_event(nodes)
    return {"nodes": len(nodes)}


@app.websocket("/ws")
async def ws_endpoint(ws: WebSocket):
    await hub.connect(ws)
    try:
        while True:
            raw = await ws.receive_text()
            msg = json.loads(raw)
            if msg.get("type") == "START":
                try:
                    await start_simulation(msg.get("config", {}))
                except MalformedRequest as e:
                    await ws.send_json({"type": "ERROR", "error": type(e).__name__, "detail": str(e)})
            elif msg.get("type") == "STOP":
                await stop_simulation()
    except (WebSocketDisconnect, ValueError):
        await hub.disconnect(ws)
