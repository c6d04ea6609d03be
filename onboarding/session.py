"""Session state owned by one onboarding conversation."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Dict, List, Literal, Optional, Set, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from onboarding.errors import FlowCancelled
from onboarding.intake import DuplicateCheckpoint
from onboarding.workflow import WorkflowGraph

T = TypeVar("T")


class FlowState(str, Enum):
    INITIAL = "initial"
    PLATFORM_SELECTION = "platform_selection"
    PLATFORM_CONFIRMATION = "platform_confirmation"
    PLATFORM_FEATURES = "platform_features"
    FEATURE_UTILITIES = "feature_utilities"
    REQUIREMENTS_COLLECTION = "requirements_collection"
    INBOUND_CAMPAIGN_NAME = "inbound_campaign_name"
    INBOUND_CAMPAIGN_DAYS = "inbound_campaign_days"
    INBOUND_LEADS_PER_DAY = "inbound_leads_per_day"
    PROFILING_MODE = "profiling_mode"
    COMPLETE = "complete"


class TurnHints(BaseModel):
    """Structured data riding along with a turn instead of ambient UI flags."""

    model_config = ConfigDict(frozen=True)

    options: List[str] = Field(default_factory=list)
    option_kind: Optional[str] = None
    prechecked: List[str] = Field(default_factory=list)
    status: Optional[Literal["needs_input", "ready"]] = None
    missing: List[str] = Field(default_factory=list)
    workflow: Optional[Dict[str, Any]] = None
    search_results: Optional[List[Any]] = None
    prompt_kind: Optional[str] = None
    platform: Optional[str] = None
    question_key: Optional[str] = None


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["assistant", "user"]
    text: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    hints: Optional[TurnHints] = None


class OnboardingSession(BaseModel):
    """Everything the flow controller mutates, in one serialisable model."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    state: FlowState = FlowState.INITIAL
    path: Optional[str] = None
    intake_mode: Literal["inbound", "outbound"] = "outbound"

    selected_platforms: List[str] = Field(default_factory=list)
    platforms_confirmed: bool = False
    platform_index: int = 0
    platform_features: Dict[str, List[str]] = Field(default_factory=dict)
    feature_index: int = 0
    utility_answers: Dict[str, List[str]] = Field(default_factory=dict)

    answers: Dict[str, Any] = Field(default_factory=dict)
    cursor: int = 0
    graph: WorkflowGraph = Field(default_factory=WorkflowGraph.empty)
    turns: List[ConversationTurn] = Field(default_factory=list)

    action_drafts: Dict[str, List[str]] = Field(default_factory=dict)
    warnings_shown: List[str] = Field(default_factory=list)
    resume_state: Optional[FlowState] = None
    checkpoint: Optional[DuplicateCheckpoint] = None
    campaign_id: Optional[str] = None
    launched: bool = False

    @property
    def current_platform(self) -> Optional[str]:
        if 0 <= self.platform_index < len(self.selected_platforms):
            return self.selected_platforms[self.platform_index]
        return None

    @property
    def current_features(self) -> List[str]:
        platform = self.current_platform
        return list(self.platform_features.get(platform, [])) if platform else []

    @property
    def current_feature(self) -> Optional[str]:
        features = self.current_features
        if 0 <= self.feature_index < len(features):
            return features[self.feature_index]
        return None

    def select_platform(self, platform: str) -> bool:
        """Add ``platform`` to the selection; duplicates are ignored."""
        if platform in self.selected_platforms:
            return False
        self.selected_platforms.append(platform)
        self.answers["platforms"] = list(self.selected_platforms)
        return True

    def add_turn(self, role: Literal["assistant", "user"], text: str, hints: Optional[TurnHints] = None) -> ConversationTurn:
        turn = ConversationTurn(role=role, text=text, hints=hints)
        self.turns.append(turn)
        return turn

    def last_assistant_turn(self) -> Optional[ConversationTurn]:
        for turn in reversed(self.turns):
            if turn.role == "assistant":
                return turn
        return None

    def snapshot(self) -> "OnboardingSession":
        return self.model_copy(deep=True)

    def restore(self, snapshot: "OnboardingSession") -> None:
        """Replace every field with the values held by ``snapshot``."""
        source = snapshot.model_copy(deep=True)
        for name in type(self).model_fields:
            setattr(self, name, getattr(source, name))

    def reset(self) -> None:
        fresh = OnboardingSession(id=self.id)
        self.restore(fresh)


class CancellationToken:
    """Lets a reset abort delegated calls that are still in flight."""

    def __init__(self) -> None:
        self._cancelled = False
        self._tasks: Set[asyncio.Future] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        for task in list(self._tasks):
            task.cancel()

    async def run(self, awaitable: Awaitable[T]) -> T:
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise FlowCancelled("session was reset")
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            if self._cancelled:
                raise FlowCancelled("session was reset") from None
            raise
        finally:
            self._tasks.discard(task)


__all__ = [
    "CancellationToken",
    "ConversationTurn",
    "FlowState",
    "OnboardingSession",
    "TurnHints",
]
