# Runs inside the headless process, or standalone: uvicorn tablecat.relay_server:app --host 127.0.0.1 --port 7862
import logging
from typing import Any, Callable, Dict, Optional
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
import uvicorn
from .core.event_bus import EventBus

logger = logging.getLogger(__name__)

app = FastAPI(title="TableCat Attention Relay")

class Manager:
    """Fans attention debug states, trigger payloads and suggestions out to UI websockets."""

    def __init__(self):
        self.conns: Dict[str, WebSocket] = {}
        self.last_state: Optional[dict] = None
        self.summary_provider: Optional[Callable[[], Dict[str, Any]]] = None

    async def connect(self, cid: str, ws: WebSocket):
        await ws.accept()
        self.conns[cid] = ws
        if self.last_state is not None:
            await ws.send_json({"type": "debug_state", "state": self.last_state})

    def disconnect(self, cid: str):
        self.conns.pop(cid, None)

    async def broadcast(self, message: dict):
        for cid, ws in list(self.conns.items()):
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.warning("Dropping relay client %s: %r", cid, e)
                self.disconnect(cid)

    async def on_debug_state(self, state: dict):
        self.last_state = state
        await self.broadcast({"type": "debug_state", "state": state})

    async def on_trigger(self, payload: dict):
        await self.broadcast({"type": "trigger", "payload": payload})

    async def on_suggestion(self, event: dict):
        await self.broadcast({"type": "suggestion", "event": event})

mgr = Manager()

async def attach_bus(bus: EventBus, manager: Manager = mgr):
    await bus.subscribe("attention", manager.on_debug_state)
    await bus.subscribe("triggers", manager.on_trigger)
    await bus.subscribe("suggestions", manager.on_suggestion)

def build_server(host: str, port: int) -> uvicorn.Server:
    return uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))

@app.get("/health")
async def health_check():
    return JSONResponse({
        "status": "healthy",
        "connected_clients": len(mgr.conns),
        "client_ids": list(mgr.conns.keys()),
        "metrics": mgr.summary_provider() if mgr.summary_provider else None,
    })

@app.get("/state")
async def state():
    return JSONResponse(mgr.last_state or {"active": False, "decision": "idle", "reasons": ["attention_disabled"]})

@app.websocket("/ws/{client_id}")
async def ws_endpoint(ws: WebSocket, client_id: str):
    await mgr.connect(client_id, ws)
    try:
        while True:
            msg = await ws.receive_json()
            if msg.get("type") == "ping":
                await ws.send_json({"type": "pong"})
    except WebSocketDisconnect:
        mgr.disconnect(client_id)

if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=7862)
