"""LLM gateway: one place that talks to the model client.

Handles configuration checks, JSON-mode cleanup/validation with a single
retry, and token/cost accounting.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Dict

from erpforge.core.ai.models import (
    AIGatewayNotConfiguredError,
    AIGatewayRequest,
    AIOutputValidationError,
    LLMClient,
    LLMResponse,
)
from erpforge.core.observability.metrics import AI_TOKENS_TOTAL, inc_named

_log = logging.getLogger("erpforge.ai")

_FENCE_START_RE = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_END_RE = re.compile(r"\s*```$")


def extract_json_object(text: str) -> str:
    """Strip markdown fences and keep the outermost ``{...}`` block."""
    s = (text or "").strip()
    s = _FENCE_START_RE.sub("", s)
    s = _FENCE_END_RE.sub("", s).strip()
    first = s.find("{")
    last = s.rfind("}")
    if first == -1 or last == -1 or last < first:
        return s
    return s[first : last + 1]


class AIGatewayService:
    def __init__(
        self,
        *,
        client: LLMClient | None = None,
        require_api_key: bool = True,
        prompt_token_rate_usd: float = 0.00000015,
        completion_token_rate_usd: float = 0.0000006,
    ):
        self._client = client
        self.require_api_key = bool(require_api_key)
        self.prompt_token_rate_usd = float(prompt_token_rate_usd)
        self.completion_token_rate_usd = float(completion_token_rate_usd)

    @property
    def client(self) -> LLMClient:
        if self._client is None:
            from erpforge.core.ai.clients import OpenAIChatClient

            self._client = OpenAIChatClient.from_env()
        return self._client

    def _require_config(self) -> None:
        if not self.require_api_key:
            return
        api_key = (os.getenv("LLM_API_KEY") or "").strip()
        if not api_key:
            raise AIGatewayNotConfiguredError()

    @staticmethod
    def _validate_json_output(content: str) -> str:
        cleaned = extract_json_object(content)
        try:
            obj = json.loads(cleaned)
        except Exception as exc:
            raise AIOutputValidationError(raw_output=content, validation_error=str(exc)) from exc
        if not isinstance(obj, dict):
            raise AIOutputValidationError(
                raw_output=content,
                validation_error=f"expected a JSON object, got {type(obj).__name__}",
            )
        return cleaned

    def _estimate_cost_usd(self, *, prompt_tokens: int, completion_tokens: int) -> float:
        cost = (float(prompt_tokens) * self.prompt_token_rate_usd) + (
            float(completion_tokens) * self.completion_token_rate_usd
        )
        return round(cost, 6)

    def complete(self, req: AIGatewayRequest) -> LLMResponse:
        self._require_config()

        content, prompt_tokens, completion_tokens = self.client.complete(
            task=req.task,
            model=req.model,
            system_prompt=req.system_prompt,
            user_content=req.user_content,
            json_mode=req.json_mode,
        )

        total_prompt_tokens = int(prompt_tokens)
        total_completion_tokens = int(completion_tokens)

        if req.json_mode:
            try:
                content = self._validate_json_output(content)
            except AIOutputValidationError:
                _log.warning("task=%s returned invalid JSON, retrying once", req.task)
                retry_content, retry_prompt_tokens, retry_completion_tokens = self.client.complete(
                    task=req.task,
                    model=req.model,
                    system_prompt=req.system_prompt,
                    user_content=(
                        f"{req.user_content}\n\n"
                        "Return only valid JSON. Do not include markdown code fences."
                    ),
                    json_mode=True,
                )
                total_prompt_tokens += int(retry_prompt_tokens)
                total_completion_tokens += int(retry_completion_tokens)
                content = self._validate_json_output(retry_content)

        cost_usd = self._estimate_cost_usd(
            prompt_tokens=total_prompt_tokens,
            completion_tokens=total_completion_tokens,
        )
        AI_TOKENS_TOTAL.labels(task=req.task, kind="prompt").inc(total_prompt_tokens)
        AI_TOKENS_TOTAL.labels(task=req.task, kind="completion").inc(total_completion_tokens)
        inc_named(f"ai_{req.task}")

        return LLMResponse(
            content=content,
            model=req.model,
            prompt_tokens=total_prompt_tokens,
            completion_tokens=total_completion_tokens,
            cost_usd=cost_usd,
            task=req.task,
        )

    def complete_json(self, req: AIGatewayRequest) -> Dict[str, Any]:
        out = self.complete(req.model_copy(update={"json_mode": True}))
        return json.loads(out.content)
