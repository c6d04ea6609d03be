"""Generation service contract and the OpenAI-backed implementation."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from onboarding.errors import GenerationServiceError

logger = logging.getLogger("outreach.generation")

try:
    from openai import AsyncOpenAI
except Exception as e:
    AsyncOpenAI = None  # type: ignore[assignment]
    _import_error = e
else:
    _import_error = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationContext(_CamelModel):
    selected_path: Optional[str] = None
    selected_category: Optional[str] = None
    selected_platforms: List[str] = Field(default_factory=list)
    platforms_confirmed: bool = False
    platform_features: Dict[str, List[str]] = Field(default_factory=dict)
    current_platform: Optional[str] = None
    current_feature: Optional[str] = None
    workflow_nodes: List[Dict[str, Any]] = Field(default_factory=list)
    current_flow_state: str = "initial"
    fast_mode: Optional[bool] = None


class GenerationRequest(_CamelModel):
    message: str
    conversation_history: List[Dict[str, str]] = Field(default_factory=list)
    question_key: Optional[str] = None
    selected_path: Optional[str] = None
    extras: Dict[str, Any] = Field(default_factory=dict)
    context: GenerationContext = Field(default_factory=GenerationContext)


class GenerationReply(_CamelModel):
    """Reply from the service; every field except ``text`` may be absent."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    text: str = ""
    options: Optional[List[str]] = None
    status: Optional[str] = None
    missing: Optional[List[str]] = None
    workflow: Optional[Dict[str, Any]] = None
    workflow_updates: Optional[List[Dict[str, Any]]] = None
    current_state: Optional[str] = None
    search_results: Optional[List[Any]] = None

    @field_validator("options", mode="before")
    @classmethod
    def _option_labels(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        labels = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("label") or item.get("value") or ""
            labels.append(str(item))
        return labels

    @field_validator("missing", mode="before")
    @classmethod
    def _missing_list(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return [key for key, flag in value.items() if flag]
        return value


class GenerationService(Protocol):
    async def generate(self, request: GenerationRequest) -> GenerationReply: ...


SYSTEM_PROMPT = (
    "You are an onboarding assistant that helps users design outreach automation workflows. "
    "Answer with a JSON object with a required 'text' field and optional 'options', 'status' "
    "('needs_input' or 'ready'), 'missing', 'workflowUpdates' and 'currentState' fields. "
    "Ask one question at a time."
)


def is_openai_available() -> bool:
    return AsyncOpenAI is not None


def missing_openai_error() -> str:
    return str(_import_error) if _import_error else "unknown error"


def parse_reply(content: str) -> GenerationReply:
    """Interpret model output; non-JSON output becomes plain text."""
    content = (content or "").strip()
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return GenerationReply(text=content)
    if not isinstance(data, dict):
        return GenerationReply(text=content)
    try:
        return GenerationReply.model_validate(data)
    except ValidationError as exc:
        logger.warning("Discarding malformed reply fields: %s", exc)
        return GenerationReply(text=str(data.get("text") or ""))


class OpenAIGenerationService:
    """Delegates open-ended turns to an OpenAI chat model."""

    def __init__(self, client: Any = None, *, api_key: Optional[str] = None, model: Optional[str] = None):
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        if client is None and AsyncOpenAI is not None:
            key = api_key or os.getenv("OPENAI_API_KEY") or ""
            if key:
                client = AsyncOpenAI(api_key=key)
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def _require_client(self) -> Any:
        if self._client is None:
            if not is_openai_available():
                raise GenerationServiceError(f"OpenAI client unavailable: {missing_openai_error()}")
            raise GenerationServiceError("OpenAI client unavailable: OPENAI_API_KEY is not set")
        return self._client

    def _messages(self, request: GenerationRequest) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages.extend(request.conversation_history)
        envelope = request.model_dump(by_alias=True, exclude={"conversation_history"})
        messages.append({"role": "user", "content": json.dumps(envelope, default=str)})
        return messages

    async def generate(self, request: GenerationRequest) -> GenerationReply:
        client = self._require_client()
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=self._messages(request),
                temperature=0.4,
                response_format={"type": "json_object"},
            )
        except Exception as exc:
            logger.exception("Generation call failed")
            raise GenerationServiceError("Generation service request failed") from exc
        content = response.choices[0].message.content or ""
        return parse_reply(content)


__all__ = [
    "GenerationContext",
    "GenerationReply",
    "GenerationRequest",
    "GenerationService",
    "OpenAIGenerationService",
    "is_openai_available",
    "missing_openai_error",
    "parse_reply",
]
