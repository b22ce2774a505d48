"""OpenAI-backed LLM service: one constrained-output chat completion returning raw text."""
import json
from typing import Any, Dict, Optional, Protocol

from openai import OpenAI

from coachflow.core.config import Settings


class OpenAILLMService:
    """Thin wrapper over the chat completions API in JSON-object mode.
    The returned text is untrusted; callers validate and normalize it."""

    def __init__(self, settings: Settings, client: Optional[OpenAI] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self.settings.openai_api_key)
        return self._client

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        output_schema: Optional[Dict[str, Any]] = None,
        max_tokens: int = 2000,
        temperature: float = 0.3,
    ) -> str:
        """Send one request and return the message text ("" when the model returned nothing).
        output_schema is appended to the system prompt as the JSON shape the model must follow."""
        system = system_prompt
        if output_schema:
            system = system + "\n\nRespond with JSON matching this schema:\n" + json.dumps(output_schema, indent=2)

        resp = self.client.chat.completions.create(
            model=self.settings.chat_model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=max_tokens,
            temperature=temperature,
            response_format={"type": "json_object"},
        )
        return (resp.choices[0].message.content or "").strip()


class LLMService(Protocol):
    """Anything with OpenAILLMService.complete's signature; tests pass fakes."""

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        output_schema: Optional[Dict[str, Any]] = None,
        max_tokens: int = 2000,
        temperature: float = 0.3,
    ) -> str: ...
