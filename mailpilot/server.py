"""HTTP control API.

Every request attaches to the mail client, runs one primitive sequence and
detaches again. Requests are serialized: the remote compose UI is a single
shared state machine.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Literal

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mailpilot.cdp.session import connect, disconnect
from mailpilot.cdp.targets import find_primary_target
from mailpilot.compose.service import ComposeAutomation, compose_draft
from mailpilot.compose.views import TimeoutExhausted, text_to_html
from mailpilot.config import CONFIG
from mailpilot.exceptions import DiscoveryError, StaleDraftError, TransportError

logger = logging.getLogger(__name__)

app = FastAPI(title="mailpilot")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_automation_lock = asyncio.Lock()


class DraftRequest(BaseModel):
    to: list[str] = Field(default_factory=list)
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    subject: str = ""
    body: str = ""
    html: bool = False
    save: bool = True


class ReplyRequest(BaseModel):
    body: str
    mode: Literal["reply", "reply_all", "forward"] = "reply"
    to: list[str] = Field(default_factory=list)
    send: bool = False


@app.exception_handler(StaleDraftError)
async def stale_draft_handler(request: Request, exc: StaleDraftError):
    return JSONResponse(status_code=404, content={"status": "error", "message": str(exc)})


@app.exception_handler(DiscoveryError)
async def discovery_handler(request: Request, exc: DiscoveryError):
    return JSONResponse(status_code=503, content={"status": "error", "message": str(exc)})


@app.exception_handler(TransportError)
async def transport_handler(request: Request, exc: TransportError):
    logger.error(f"CDP transport failed: {exc}")
    return JSONResponse(status_code=502, content={"status": "error", "message": str(exc)})


@asynccontextmanager
async def attached(attach_visible: bool = False) -> AsyncIterator[ComposeAutomation]:
    async with _automation_lock:
        session = await connect(attach_visible=attach_visible)
        if session is None:
            raise HTTPException(status_code=503, detail="Mail client is not running or not debuggable")
        try:
            yield ComposeAutomation.for_session(session)
        finally:
            await disconnect(session)


def _failure(result: object, action: str) -> dict:
    if isinstance(result, TimeoutExhausted):
        message = str(result)
    else:
        message = f"{action} could not be completed"
    return {"status": "error", "message": message}


@app.get("/")
def read_root():
    return {"status": "mailpilot running"}


@app.get("/status")
async def status():
    target = await find_primary_target(CONFIG.host_endpoint(), CONFIG.match_rule())
    return {
        "attached": target is not None,
        "target": target.model_dump() if target else None,
    }


@app.post("/drafts")
async def create_draft(req: DraftRequest):
    body_html = req.body if req.html else text_to_html(req.body)
    async with attached(attach_visible=True) as automation:
        result = await compose_draft(
            automation,
            to=req.to,
            cc=req.cc,
            bcc=req.bcc,
            subject=req.subject,
            body_html=body_html,
            save=req.save,
        )
    if not result:
        return _failure(result, "compose")
    return {"status": "success", "draft": result.model_dump()}


@app.get("/drafts")
async def list_drafts():
    async with attached() as automation:
        drafts = await automation.list_drafts()
    return {"status": "success", "drafts": [d.model_dump() for d in drafts]}


@app.get("/drafts/current")
async def current_draft():
    async with attached() as automation:
        state = await automation.get_draft_state()
    if state is None:
        raise HTTPException(status_code=404, detail="No compose window is open")
    return {"status": "success", "draft": state.model_dump()}


@app.post("/drafts/{key}/save")
async def save_draft(key: str):
    async with attached() as automation:
        if not await automation.save_draft(key):
            return {"status": "error", "message": f"Save of {key} failed"}
        result = await automation.confirm_saved(key)
    if not result:
        return _failure(result, "save")
    return {"status": "success", "draft": result.model_dump()}


@app.delete("/drafts/{key}")
async def close_draft(key: str):
    async with attached() as automation:
        closed = await automation.close_compose(key)
    return {"status": "success" if closed else "error", "closed": closed}


@app.post("/threads/{thread_id}/reply")
async def reply(thread_id: str, req: ReplyRequest):
    async with attached(attach_visible=True) as automation:
        key = await automation.open_reply_compose(thread_id, req.mode)
        if not key:
            return _failure(key, req.mode)
        for email in req.to:
            if not await automation.add_recipient(key, email):
                return {"status": "error", "message": f"Could not add recipient {email}"}
        if req.body and not await automation.set_body(key, text_to_html(req.body)):
            return {"status": "error", "message": "Could not set reply body"}
        if req.send:
            sent = await automation.send_draft(key)
            return {"status": "success" if sent else "error", "sent": sent, "key": key}
        if not await automation.save_draft(key):
            return {"status": "error", "message": f"Save of {key} failed"}
        state = await automation.get_draft_state(key)
    # saved, but the snapshot may be unreadable this instant
    return {"status": "success", "key": key, "draft": state.model_dump() if state else None}


def run(host: str | None = None, port: int | None = None) -> None:
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()

    uvicorn.run(app, host=host or CONFIG.API_HOST, port=port or CONFIG.API_PORT, log_level=CONFIG.LOGGING_LEVEL)


if __name__ == "__main__":
    run()
