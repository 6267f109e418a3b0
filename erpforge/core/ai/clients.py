"""Concrete LLM client: OpenAI-compatible chat completions over HTTP."""

from __future__ import annotations

import os
from typing import Any, Dict, List

import requests


class OpenAIChatClient:
    def __init__(self, *, api_key: str, base_url: str = "https://api.openai.com/v1", timeout: float = 60.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)

    @classmethod
    def from_env(cls) -> "OpenAIChatClient":
        timeout_raw = (os.getenv("ERPFORGE_LLM_TIMEOUT") or "").strip()
        try:
            timeout = float(timeout_raw) if timeout_raw else 60.0
        except ValueError:
            timeout = 60.0
        return cls(
            api_key=(os.getenv("LLM_API_KEY") or "").strip(),
            base_url=(os.getenv("LLM_BASE_URL") or "https://api.openai.com/v1").strip(),
            timeout=timeout,
        )

    def complete(
        self,
        *,
        task: str,
        model: str,
        system_prompt: str,
        user_content: str,
        json_mode: bool,
    ) -> tuple[str, int, int]:
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ]
        body: Dict[str, Any] = {"model": model, "messages": messages, "temperature": 0.2}
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        resp = requests.post(
            f"{self.base_url}/chat/completions",
            json=body,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        payload = resp.json()

        content = str(payload["choices"][0]["message"].get("content") or "")
        usage = payload.get("usage") or {}
        return content, int(usage.get("prompt_tokens") or 0), int(usage.get("completion_tokens") or 0)
