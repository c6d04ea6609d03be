"""FastAPI application factory for the onboarding assistant."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncGenerator
from typing import Dict

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from onboarding.collaborators import CollaboratorConfig, OutreachCollaborators
from onboarding.flow import FlowController, TurnResult
from onboarding.generation import OpenAIGenerationService
from onboarding.session import FlowState

from .config import ensure_data_directory, get_settings
from .schemas import DuplicateChoice, HandoffList, HandoffRead, LeadsCreate, ReplyCreate, SessionRead, ToggleCreate
from .store import SessionStore

logger = logging.getLogger("outreach.api")

HEARTBEAT_INTERVAL = 20.0


async def _sse_event_stream(
    queue: asyncio.Queue[str],
    *,
    heartbeat_interval: float = HEARTBEAT_INTERVAL,
) -> AsyncGenerator[Dict[str, str], None]:
    """Drain session snapshots from ``queue``, pinging while idle, until ``[DONE]``."""
    queue_task: asyncio.Task[str] | None = None
    try:
        while True:
            if queue_task is None:
                queue_task = asyncio.create_task(queue.get())

            try:
                message = await asyncio.wait_for(asyncio.shield(queue_task), timeout=heartbeat_interval)
            except asyncio.TimeoutError:
                yield {"event": "ping", "data": "{}"}
                continue

            queue_task = None
            if message == "[DONE]":
                yield {"event": "done", "data": "{}"}
                break

            yield {"event": "snapshot", "data": message}
    finally:
        if queue_task is not None:
            queue_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await queue_task


def create_app() -> FastAPI:
    settings = get_settings()
    ensure_data_directory(settings.data_path)

    generator = OpenAIGenerationService(api_key=settings.openai_api_key, model=settings.openai_model)
    collaborators = OutreachCollaborators(
        CollaboratorConfig(
            url=str(settings.collaborator_base_url).rstrip("/"),
            key=settings.collaborator_api_key or "",
        )
        if settings.collaborators_enabled
        else None
    )

    def controller_factory() -> FlowController:
        return FlowController(
            generator=generator,
            leads=collaborators,
            bookings=collaborators,
            campaigns=collaborators,
            pacing=settings.pacing_delay,
            transitive=settings.transitive_cascade,
            default_leads_per_day=settings.default_leads_per_day,
        )

    store = SessionStore(settings.data_path, controller_factory)

    app = FastAPI(title="Outreach Onboarding API", version="0.1.0", docs_url="/docs")
    app.state.store = store
    app.state.settings = settings
    app.state.generator = generator
    app.state.collaborators = collaborators

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_exc_handler(_: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(_: Request, exc: Exception):
        logger.exception("Unhandled error")
        return JSONResponse(status_code=500, content={"detail": f"Internal error: {exc}"})

    @app.get("/health", summary="Simple health check")
    async def health() -> dict[str, object]:
        return {
            "status": "ok",
            "environment": app.state.settings.environment,
            "generation": app.state.generator.enabled,
            "collaborators": app.state.collaborators.enabled,
        }

    def get_store(request: Request) -> SessionStore:
        return request.app.state.store

    def get_controller(session_id: str, store: SessionStore = Depends(get_store)) -> FlowController:
        try:
            return store.get(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    async def respond(store: SessionStore, controller: FlowController, result: TurnResult) -> SessionRead:
        if result.accepted:
            store.record(controller)
            await store.publish(result)
        return SessionRead.model_validate(result.to_payload())

    @app.get("/handoffs", response_model=HandoffList, summary="List recent session hand-offs")
    async def list_handoffs(store: SessionStore = Depends(get_store)) -> HandoffList:
        handoffs = [HandoffRead.model_validate(record) for record in store.list_records()]
        return HandoffList(handoffs=handoffs)

    @app.post(
        "/sessions",
        response_model=SessionRead,
        status_code=status.HTTP_201_CREATED,
        summary="Start a new onboarding session",
    )
    async def create_session(store: SessionStore = Depends(get_store)) -> SessionRead:
        controller = store.create()
        logger.info("Session %s created", controller.session.id)
        return await respond(store, controller, controller.start())

    @app.get("/sessions/{session_id}", response_model=SessionRead, summary="Current session snapshot")
    async def read_session(controller: FlowController = Depends(get_controller)) -> SessionRead:
        return SessionRead.model_validate(controller.result().to_payload())

    @app.post("/sessions/{session_id}/reply", response_model=SessionRead, summary="Answer the current question")
    async def reply(
        payload: ReplyCreate,
        controller: FlowController = Depends(get_controller),
        store: SessionStore = Depends(get_store),
    ) -> SessionRead:
        result = await controller.handle_reply(payload.reply, payload.question_key)
        return await respond(store, controller, result)

    @app.post(
        "/sessions/{session_id}/actions/toggle",
        response_model=SessionRead,
        summary="Toggle one action of the platform being configured",
    )
    async def toggle(
        payload: ToggleCreate,
        controller: FlowController = Depends(get_controller),
        store: SessionStore = Depends(get_store),
    ) -> SessionRead:
        if controller.session.state != FlowState.PLATFORM_FEATURES:
            raise HTTPException(status_code=409, detail="Actions can only be toggled while choosing platform actions")
        result = await controller.toggle_action(payload.action)
        return await respond(store, controller, result)

    @app.post("/sessions/{session_id}/leads", response_model=SessionRead, summary="Import inbound leads")
    async def import_leads(
        payload: LeadsCreate,
        controller: FlowController = Depends(get_controller),
        store: SessionStore = Depends(get_store),
    ) -> SessionRead:
        result = await controller.submit_inbound_leads(payload.leads)
        return await respond(store, controller, result)

    @app.post(
        "/sessions/{session_id}/duplicates",
        response_model=SessionRead,
        summary="Resolve the duplicate-lead checkpoint",
    )
    async def resolve_duplicates(
        payload: DuplicateChoice,
        controller: FlowController = Depends(get_controller),
        store: SessionStore = Depends(get_store),
    ) -> SessionRead:
        if controller.session.checkpoint is None:
            raise HTTPException(status_code=409, detail="No duplicate leads are waiting for a decision")
        result = await controller.resolve_duplicates(payload.choice)
        return await respond(store, controller, result)

    @app.post("/sessions/{session_id}/launch", response_model=SessionRead, summary="Create and start the campaign")
    async def launch(
        controller: FlowController = Depends(get_controller),
        store: SessionStore = Depends(get_store),
    ) -> SessionRead:
        if controller.session.state != FlowState.COMPLETE:
            raise HTTPException(status_code=409, detail="The workflow is not complete yet")
        result = await controller.launch()
        response = await respond(store, controller, result)
        if controller.session.launched:
            await store.close_streams(controller.session.id)
        return response

    @app.post("/sessions/{session_id}/reset", response_model=SessionRead, summary="Start over")
    async def reset(
        controller: FlowController = Depends(get_controller),
        store: SessionStore = Depends(get_store),
    ) -> SessionRead:
        return await respond(store, controller, controller.reset())

    @app.get("/sessions/{session_id}/handoff", response_model=HandoffRead, summary="Serialised answers and graph")
    async def handoff(session_id: str, store: SessionStore = Depends(get_store)) -> HandoffRead:
        try:
            record = store.get_record(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return HandoffRead.model_validate(record)

    @app.get("/sessions/{session_id}/events", summary="Live session snapshots (server-sent events)")
    async def events(
        controller: FlowController = Depends(get_controller),
        store: SessionStore = Depends(get_store),
    ):
        session_id = controller.session.id
        queue = store.subscribe(session_id)
        await queue.put(json.dumps(controller.result().to_payload()))

        async def stream() -> AsyncGenerator[Dict[str, str], None]:
            try:
                async for event in _sse_event_stream(queue):
                    yield event
            finally:
                store.unsubscribe(session_id, queue)

        return EventSourceResponse(stream())

    return app


__all__ = ["create_app"]
