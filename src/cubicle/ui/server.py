"""FastAPI backend towards the browser-side collaborator.

Provides REST endpoints for messages, tab lifecycle events, identity
snapshots and suffix list status, plus a WebSocket channel over which
the engine's browser actions (tab moves, identity changes) are pushed.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cubicle.adapters.browser import BrowserIdentity, EventBusBrowser
from cubicle.context import CubicleEngine
from cubicle.core.defaults import DEFAULT_COOKIE_STORE_ID, DEFAULT_DATA_DIR
from cubicle.core.errors import CubicleError
from cubicle.domain.psl import PslFetcher
from cubicle.messages.dispatcher import Reply
from cubicle.tabs.coordinator import TabDecision, TabEvent
from cubicle.ui.events import EventBus

logger = logging.getLogger(__name__)

_STATUS_BY_KIND: dict[str, int] = {
    "InvalidHost": 422,
    "MalformedRule": 422,
    "MalformedRequest": 422,
    "InvalidPreference": 422,
    "DuplicateRule": 409,
    "AlreadyRecording": 409,
    "NotRecording": 409,
    "NotFound": 404,
    "RefreshFailed": 502,
    "NotReady": 503,
}


def status_for(error_kind: str | None) -> int:
    return _STATUS_BY_KIND.get(error_kind or "", 400)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class TabEventRequest(BaseModel):
    url: str | None = None
    cookie_store_id: str = DEFAULT_COOKIE_STORE_ID
    opener_tab_id: int | None = None
    created: bool = Field(
        default=False,
        description="True for a tab created event, false for a URL update.",
    )


class HealthResponse(BaseModel):
    ready: bool
    containers: int
    subscribers: int


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    *,
    data_dir: Path | None = Path(DEFAULT_DATA_DIR),
    event_bus: EventBus | None = None,
    fetcher: PslFetcher | None = None,
    engine: CubicleEngine | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        data_dir: Directory for persisted state (``None`` = in memory).
        event_bus: Shared event bus for WebSocket broadcasting.
        fetcher: Override for the suffix list source (tests).
        engine: Pre-built engine; its browser must publish on *event_bus*.
    """
    bus = event_bus or EventBus()
    if engine is None:
        kwargs: dict[str, Any] = {"data_dir": data_dir}
        if fetcher is not None:
            kwargs["fetcher"] = fetcher
        engine = CubicleEngine(EventBusBrowser(bus), **kwargs)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):  # type: ignore[no-untyped-def]
        await engine.start()
        yield
        engine.save_state()

    app = FastAPI(
        title="cubicle",
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.engine = engine

    def reply_response(reply: Reply) -> JSONResponse:
        status = 200 if reply.ok else status_for((reply.error or {}).get("kind"))
        return JSONResponse(reply.model_dump(mode="json"), status_code=status)

    def http_error(exc: CubicleError) -> HTTPException:
        return HTTPException(status_code=status_for(exc.kind), detail=exc.to_payload())

    # -- REST: messages -------------------------------------------------------

    @app.post("/api/message")
    async def post_message(body: dict[str, Any]) -> JSONResponse:
        return reply_response(await engine.handle_message(body))

    # -- REST: tab events -----------------------------------------------------

    @app.post("/api/tabs/{tab_id}")
    async def tab_event(tab_id: int, body: TabEventRequest) -> TabDecision:
        event = TabEvent(
            tab_id=tab_id,
            url=body.url,
            cookie_store_id=body.cookie_store_id,
            opener_tab_id=body.opener_tab_id,
        )
        try:
            return await engine.tab_updated(event, created=body.created)
        except CubicleError as exc:
            raise http_error(exc) from exc

    @app.delete("/api/tabs/{tab_id}", status_code=204)
    async def tab_removed(tab_id: int) -> None:
        try:
            await engine.tab_removed(tab_id)
        except CubicleError as exc:
            raise http_error(exc) from exc

    # -- REST: identities -----------------------------------------------------

    @app.put("/api/identities")
    async def put_identities(body: list[BrowserIdentity]) -> dict[str, int]:
        browser_side = engine.browser
        if isinstance(browser_side, EventBusBrowser):
            browser_side.replace_identities(body)
        return {"identities": len(body)}

    # -- REST: status ---------------------------------------------------------

    @app.get("/api/psl")
    async def psl() -> dict[str, Any]:
        return engine.psl_status().model_dump(mode="json")

    @app.get("/api/health")
    async def health() -> HealthResponse:
        return HealthResponse(
            ready=engine.ready,
            containers=len(engine.registry),
            subscribers=bus.subscriber_count,
        )

    # -- WebSocket ------------------------------------------------------------

    @app.websocket("/ws/actions")
    async def ws_actions(websocket: WebSocket) -> None:
        await websocket.accept()
        try:
            async with bus.subscribe() as queue:
                while True:
                    event = await queue.get()
                    await websocket.send_json(event)
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.debug("WebSocket error", exc_info=True)

    return app
