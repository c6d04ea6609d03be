"""Pydantic schemas used by the API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ReplyCreate(BaseModel):
    reply: Union[str, List[str]] = Field(..., description="Free text or the list of picked options.")
    question_key: Optional[str] = Field(default=None, description="Key of the question being answered.")


class ToggleCreate(BaseModel):
    action: str = Field(..., min_length=1, description="On-screen label of the action to toggle.")


class LeadsCreate(BaseModel):
    leads: List[Dict[str, Any]] = Field(..., min_length=1, description="Lead records to import.")


class DuplicateChoice(BaseModel):
    choice: str = Field(..., min_length=1, description="Value or label of the chosen resolution.")


class OptionsRead(BaseModel):
    kind: str
    choices: List[str]
    prechecked: List[str] = Field(default_factory=list)
    question: str = ""
    topic: Optional[str] = None
    platform: Optional[str] = None


class SessionRead(BaseModel):
    session_id: str
    accepted: bool
    state: str
    turns: List[Dict[str, Any]]
    options: Optional[OptionsRead] = None
    graph: Dict[str, Any]


class HandoffRead(BaseModel):
    model_config = {"from_attributes": True}

    session_id: str
    state: str
    answers: Dict[str, Any]
    graph: Dict[str, Any]
    campaign_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class HandoffList(BaseModel):
    handoffs: list[HandoffRead]
