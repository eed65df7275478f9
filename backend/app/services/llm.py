import asyncio
import logging

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

RETRYABLE_STATUS = {429, 500, 502, 503, 504}

# Shared persistent HTTP client, one TCP+TLS handshake for all LLM calls
_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Lazily create and return a shared httpx.AsyncClient."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=60.0)
    return _http_client


async def close_http_client() -> None:
    """Close the shared HTTP client (call on app shutdown)."""
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


class LLMError(Exception):
    """Raised when the LLM service fails."""


class LLMTimeoutError(LLMError):
    """Raised when the LLM does not answer within the caller's time budget."""


async def call_llm(
    system_prompt: str,
    user_message: str,
    max_tokens: int = 2000,
    temperature: float = 0.3,
    model: str | None = None,
    timeout: float | None = None,
) -> str:
    """Call an LLM via OpenRouter and return the response text.

    Rate limits, 5xx responses and connection errors are retried with
    exponential backoff. A timeout is the caller's budget and is not
    retried. An empty ``system_prompt`` sends only the user message.
    """
    if not settings.openrouter_api_key:
        raise LLMError("OPENROUTER_API_KEY is not configured")

    headers = {
        "Authorization": f"Bearer {settings.openrouter_api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": "https://maktaba.app",
        "X-Title": "Maktaba",
    }

    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_message})

    payload = {
        "model": model or settings.openrouter_model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }

    client = get_http_client()
    attempts = settings.llm_max_retries + 1

    for attempt in range(attempts):
        try:
            resp = await client.post(
                OPENROUTER_URL,
                json=payload,
                headers=headers,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.TimeoutException as exc:
            logger.warning("OpenRouter call to %s timed out after %ss", payload["model"], timeout)
            raise LLMTimeoutError(f"LLM call timed out after {timeout}s") from exc
        except httpx.TransportError as exc:
            if attempt + 1 >= attempts:
                raise LLMError(f"LLM service unreachable: {exc}") from exc
            delay = settings.llm_backoff_base_seconds * 2 ** attempt
            logger.warning("OpenRouter connection error (%s), retrying in %.1fs", exc, delay)
            await asyncio.sleep(delay)
            continue

        if resp.status_code in RETRYABLE_STATUS and attempt + 1 < attempts:
            delay = settings.llm_backoff_base_seconds * 2 ** attempt
            logger.warning("OpenRouter returned %s, retrying in %.1fs", resp.status_code, delay)
            await asyncio.sleep(delay)
            continue

        if resp.status_code != 200:
            body = resp.text
            logger.error("OpenRouter returned %s: %s", resp.status_code, body)
            raise LLMError(f"LLM service returned {resp.status_code}")

        try:
            return resp.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error("Unexpected LLM response: %s", resp.text[:500])
            raise LLMError("Unexpected response from LLM service") from exc

    raise LLMError("LLM retries exhausted")
