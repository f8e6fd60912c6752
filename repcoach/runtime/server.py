from __future__ import annotations
import asyncio
import json
import logging
from typing import List, Literal, Optional, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from repcoach.common.config import get_settings
from repcoach.common.events import EXERCISES, EventType
from repcoach.counter.pose_core import FrameLayoutError
from repcoach.counter.session import RepSessionManager
from repcoach.data import db

logger = logging.getLogger(__name__)

app = FastAPI(title="repcoach")

MANAGER = RepSessionManager(trainer_mode=get_settings().trainer_mode)

def ACTIVE_MANAGER() -> RepSessionManager:
    return MANAGER

WS_CLIENTS: Set[WebSocket] = set()
_LOOP: Optional[asyncio.AbstractEventLoop] = None


class StartRequest(BaseModel):
    exercise: str = Field(..., description="bicep_curl, jumping_jacks or push_ups")
    source: Literal["web", "camera"] = Field("web", description="Where keypoint frames come from")
    layout: Optional[List[str]] = Field(None, description="Joint names the producer sends, in order")
    camera_index: int = Field(0, description="Webcam device for source=camera")


async def broadcast(obj: dict):
    dead = []
    for ws in list(WS_CLIENTS):
        try:
            await ws.send_text(json.dumps(obj))
        except Exception:
            dead.append(ws)
    for d in dead:
        WS_CLIENTS.discard(d)

# The manager emits from its dispatcher thread; hop onto the server loop
def _sink(ev: dict):
    loop = _LOOP
    if loop is None or loop.is_closed():
        return
    asyncio.run_coroutine_threadsafe(broadcast(ev), loop)

MANAGER.set_event_sink(_sink)


@app.get("/")
async def home():
    return {"status": "ok", "exercises": list(EXERCISES)}


@app.get("/sessions/current")
async def current():
    m = ACTIVE_MANAGER()
    st = m.status()
    return JSONResponse({
        "state": "running" if st.state == "running" else "idle",
        "count": st.count,
        "valid": st.valid,
        "session_id": m.active_id,
        "exercise": m.active_exercise,
        "source": m.active_source,
    })


@app.get("/sessions/{session_id}/reps")
async def session_reps(session_id: str):
    if db.get_session(session_id) is None:
        raise HTTPException(status_code=404, detail="unknown session")
    return {"session_id": session_id, "reps": db.list_reps(session_id)}


@app.post("/counter/start")
async def start(req: StartRequest):
    m = ACTIVE_MANAGER()
    try:
        # start() may stop a running session, which waits on its dispatcher
        sid, status = await run_in_threadpool(
            m.start,
            exercise=req.exercise,
            source=req.source,
            layout=req.layout,
            camera_index=req.camera_index,
        )
    except (FrameLayoutError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"session_id": sid, "status": status}


@app.post("/counter/stop")
async def stop():
    m = ACTIVE_MANAGER()
    summary = await run_in_threadpool(m.stop, m.active_id)
    return JSONResponse({
        "stopped": True,
        "session_id": summary.session_id,
        "total_reps": summary.total_reps,
        "valid_reps": summary.valid_reps,
    })


@app.websocket("/ws/keypoints")
async def ws_keypoints(ws: WebSocket):
    global _LOOP
    await ws.accept()
    _LOOP = asyncio.get_running_loop()
    WS_CLIENTS.add(ws)
    await broadcast({"type": EventType.TRACE.value, "msg": "ws: client connected"})
    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("ignoring non-JSON ws message")
                continue
            if not isinstance(data, dict) or data.get("type") != "frame":
                continue
            ACTIVE_MANAGER().push_message(data)
    except WebSocketDisconnect:
        pass
    finally:
        WS_CLIENTS.discard(ws)
        await broadcast({"type": EventType.TRACE.value, "msg": "ws closed"})
