"""AI contracts and exceptions.

Typed request/response models for the LLM gateway and the oracle results
(schema drafts, extractions, column matches). Nothing here calls a model.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Literal, Optional, Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from erpforge.core.schema.models import FieldDefinition

MIN_MATCH_CONFIDENCE = 0.7


class LLMResponse(BaseModel):
    content: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    cost_usd: float
    task: str


class AIGatewayNotConfiguredError(Exception):
    def __init__(self, message: str = "LLM_API_KEY is not configured"):
        super().__init__(message)


class AIOutputValidationError(Exception):
    def __init__(self, *, raw_output: str, validation_error: str):
        self.raw_output = raw_output
        self.validation_error = validation_error
        super().__init__(f"AI output validation failed: {validation_error}")


class AIOracleError(Exception):
    def __init__(self, *, task: str, reason: str):
        self.task = task
        self.reason = reason
        super().__init__(f"AI {task} failed: {reason}")


class LLMClient(Protocol):
    def complete(
        self,
        *,
        task: str,
        model: str,
        system_prompt: str,
        user_content: str,
        json_mode: bool,
    ) -> tuple[str, int, int]:
        ...


class AIGatewayRequest(BaseModel):
    task: str
    model: str = "gpt-4o-mini"
    system_prompt: str
    user_content: str
    json_mode: bool = False


def _clamp_confidence(v: Any) -> float:
    try:
        out = float(v)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(out):
        return 0.0
    return max(0.0, min(1.0, out))


class TargetField(BaseModel):
    name: str
    label: str = ""


class ColumnMatch(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source_label: str = Field(
        validation_alias=AliasChoices("sourceLabel", "source", "source_label"),
        serialization_alias="sourceLabel",
    )
    target_field: str = Field(
        validation_alias=AliasChoices("targetFieldName", "target", "target_field"),
        serialization_alias="targetFieldName",
    )
    confidence: float = 0.0

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        return _clamp_confidence(v)

    @property
    def accepted(self) -> bool:
        return self.confidence >= MIN_MATCH_CONFIDENCE

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ExtractionResult(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = 0.0
    missing: List[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        return _clamp_confidence(v)


class SchemaModification(BaseModel):
    action: Literal["add", "remove", "modify"] = "modify"
    columns: List[FieldDefinition] = Field(default_factory=list)
    summary: Optional[str] = None
