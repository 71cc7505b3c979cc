"""
LLM call wrapper and it does:
- Sends role-tagged messages to the completion provider
- Retries transient failures with backoff
- Returns the raw completion text (parsing is the caller's job)

Main purpose:
Central interface for all model calls.
"""


import asyncio
import httpx

from mindease.core.config import Settings, settings as default_settings
from mindease.core.logging import get_logger

log = get_logger("llm.client")

TRANSIENT_STATUSES = (429, 500, 502, 503, 504)


class LLMError(RuntimeError):
    pass


def _safe_snippet(text: str, n: int = 400) -> str:
    return (text or "")[:n].replace("\n", "\\n").replace("\r", "\\r")


class CompletionClient:
    """
    OpenAI-compatible chat completions (Groq by default).

    complete() returns the first choice's content, or "" when the provider
    answered without one. Transport and provider errors raise LLMError.
    """

    def __init__(self, settings: Settings = default_settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.transport = transport

    async def complete(
        self,
        messages: list[dict],
        *,
        temperature: float = 0.7,
        max_tokens: int = 500,
        top_p: float = 1.0,
    ) -> str:
        provider = (self.settings.LLM_PROVIDER or "").lower().strip()
        if provider == "mock":
            return _mock_completion(messages)
        if provider != "groq":
            raise LLMError(f"Unsupported LLM_PROVIDER={self.settings.LLM_PROVIDER}. Use groq or mock.")
        if not self.settings.GROQ_API_KEY:
            raise LLMError("Missing GROQ_API_KEY. Put it in your .env")

        url = f"{self.settings.GROQ_BASE_URL.rstrip('/')}/chat/completions"
        headers = {"Authorization": f"Bearer {self.settings.GROQ_API_KEY}"}
        payload = {
            "model": self.settings.LLM_MODEL,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": top_p,
            "stream": False,
        }

        timeout = httpx.Timeout(self.settings.LLM_TIMEOUT_SECONDS, connect=10.0)
        attempts = max(1, self.settings.LLM_MAX_ATTEMPTS)

        last_err: Exception | None = None
        for attempt in range(attempts):
            try:
                async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                    r = await client.post(url, headers=headers, json=payload)
            except httpx.HTTPError as e:
                last_err = e
                backoff = 0.6 * (2**attempt)
                log.warning(f"Groq call failed: {e}. retrying in {backoff:.1f}s (attempt {attempt+1}/{attempts})")
                await asyncio.sleep(backoff)
                continue

            # Retry transient errors
            if r.status_code in TRANSIENT_STATUSES:
                last_err = LLMError(f"Groq transient {r.status_code}: {_safe_snippet(r.text)}")
                backoff = 0.6 * (2**attempt)
                log.warning(f"{last_err}. retrying in {backoff:.1f}s (attempt {attempt+1}/{attempts})")
                await asyncio.sleep(backoff)
                continue

            if r.status_code >= 400:
                raise LLMError(f"Groq error {r.status_code}: {_safe_snippet(r.text)}")

            try:
                data = r.json()
            except ValueError:
                raise LLMError(f"Non-JSON Groq response: {_safe_snippet(r.text)}")
            try:
                return (data["choices"][0]["message"]["content"] or "").strip()
            except (KeyError, IndexError, TypeError):
                raise LLMError(f"Unexpected Groq response: {_safe_snippet(str(data))}")

        raise LLMError(f"Groq call failed after retries: {last_err}")


def _mock_completion(messages: list[dict]) -> str:
    """Canned answers for no-key development, keyed off the system prompt."""
    system = messages[0]["content"] if messages and messages[0].get("role") == "system" else ""
    if "1 to 10" in system or "от 1 до 10" in system:
        return "6"
    if "JSON array" in system or "JSON массива" in system:
        return '["Take a 10 minute walk", "Drink a glass of water", "Write down one good thing about today"]'
    return "I hear you. Tell me a little more about how today has been."
