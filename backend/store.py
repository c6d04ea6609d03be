"""Session registry and persistent hand-off records."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from onboarding.flow import FlowController, TurnResult


class HandoffRecord(BaseModel):
    """Serialised answers and graph of a session, kept for the campaign hand-off."""

    session_id: str
    state: str
    answers: Dict[str, Any] = Field(default_factory=dict)
    graph: Dict[str, Any] = Field(default_factory=dict)
    campaign_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)


class SessionStore:
    """Live controllers in memory, hand-off records in a small JSON file."""

    def __init__(self, path: Path, factory: Callable[[], FlowController]):
        self._path = path
        self._factory = factory
        self._lock = Lock()
        self._controllers: Dict[str, FlowController] = {}
        self._records: Dict[str, HandoffRecord] = {}
        self._queues: Dict[str, List[asyncio.Queue[str]]] = {}
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except json.JSONDecodeError:
            data = []
        for item in data:
            record = HandoffRecord.model_validate(item)
            self._records[record.session_id] = record

    def _save(self) -> None:
        payload = [record.model_dump(mode="json") for record in self._records.values()]
        self._path.write_text(json.dumps(payload, indent=2), "utf-8")

    def create(self) -> FlowController:
        controller = self._factory()
        with self._lock:
            self._controllers[controller.session.id] = controller
        return controller

    def get(self, session_id: str) -> FlowController:
        with self._lock:
            if session_id not in self._controllers:
                raise KeyError(f"Session {session_id} not found")
            return self._controllers[session_id]

    def record(self, controller: FlowController) -> HandoffRecord:
        """Write the session's answer map and graph to disk."""
        session = controller.session
        with self._lock:
            record = self._records.get(session.id)
            if record is None:
                record = HandoffRecord(session_id=session.id, state=session.state.value)
                self._records[session.id] = record
            record.state = session.state.value
            record.answers = json.loads(json.dumps(session.answers, default=str))
            record.graph = session.graph.to_payload()
            record.campaign_id = session.campaign_id
            record.touch()
            self._save()
            return record

    def get_record(self, session_id: str) -> HandoffRecord:
        with self._lock:
            if session_id not in self._records:
                raise KeyError(f"Hand-off for session {session_id} not found")
            return self._records[session_id]

    def list_records(self) -> List[HandoffRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda r: r.updated_at, reverse=True)

    def subscribe(self, session_id: str) -> asyncio.Queue[str]:
        queue: asyncio.Queue[str] = asyncio.Queue()
        with self._lock:
            self._queues.setdefault(session_id, []).append(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue[str]) -> None:
        with self._lock:
            queues = self._queues.get(session_id, [])
            if queue in queues:
                queues.remove(queue)

    async def publish(self, result: TurnResult) -> None:
        with self._lock:
            queues = list(self._queues.get(result.session_id, []))
        message = json.dumps(result.to_payload())
        for queue in queues:
            await queue.put(message)

    async def close_streams(self, session_id: str) -> None:
        with self._lock:
            queues = list(self._queues.get(session_id, []))
        for queue in queues:
            await queue.put("[DONE]")
