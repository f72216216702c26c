"""LLM client -- multi-provider chat wrapper (OpenAI + Anthropic).

Failures are raised, never retried here: one push gets one attempt.
"""

import logging

import httpx

logger = logging.getLogger(__name__)

# ── Shared HTTP client (connection pooling) ─────────────────────────────────

_client: httpx.AsyncClient | None = None


def _get_client() -> httpx.AsyncClient:
    """Return (or create) the shared httpx client for LLM API calls."""
    global _client
    if _client is None:
        _client = httpx.AsyncClient(timeout=120.0)
    return _client


async def close_client() -> None:
    """Close the shared LLM HTTP client.  Called during app shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"


def _anthropic_headers(api_key: str) -> dict:
    """Return standard Anthropic API headers."""
    return {
        "x-api-key": api_key,
        "anthropic-version": ANTHROPIC_API_VERSION,
        "Content-Type": "application/json",
    }


async def chat_anthropic(
    api_key: str,
    model: str,
    system_prompt: str,
    messages: list[dict],
    max_tokens: int = 1000,
) -> dict:
    """Send a chat request to the Anthropic Messages API.

    Returns ``{"text": ..., "usage": {"input_tokens", "output_tokens"}}``.
    """
    client = _get_client()
    response = await client.post(
        ANTHROPIC_MESSAGES_URL,
        headers=_anthropic_headers(api_key),
        json={
            "model": model,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": messages,
        },
    )
    if response.status_code >= 400:
        try:
            err_msg = response.json().get("error", {}).get("message", response.text)
        except ValueError:
            err_msg = response.text
        raise ValueError(f"Anthropic API {response.status_code}: {err_msg}")

    data = response.json()
    content_blocks = data.get("content", [])
    if not content_blocks:
        raise ValueError("Empty response from Anthropic API")

    text_parts = [b["text"] for b in content_blocks if b.get("type") == "text"]
    if not text_parts:
        raise ValueError("No text block in Anthropic API response")

    usage = data.get("usage", {})
    return {
        "text": "\n".join(text_parts),
        "usage": {
            "input_tokens": usage.get("input_tokens", 0),
            "output_tokens": usage.get("output_tokens", 0),
        },
    }


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"


def _openai_headers(api_key: str) -> dict:
    """Return standard OpenAI API headers."""
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


async def chat_openai(
    api_key: str,
    model: str,
    system_prompt: str,
    messages: list[dict],
    max_tokens: int = 1000,
) -> dict:
    """Send a chat request to the OpenAI Chat Completions API."""
    oai_messages = [{"role": "system", "content": system_prompt}]
    oai_messages.extend(messages)

    client = _get_client()
    response = await client.post(
        OPENAI_CHAT_URL,
        headers=_openai_headers(api_key),
        json={
            "model": model,
            "messages": oai_messages,
            # Newer models reject max_tokens; max_completion_tokens works for all.
            "max_completion_tokens": max_tokens,
        },
    )
    if response.status_code >= 400:
        try:
            detail = response.json().get("error", {}).get("message", response.text)
        except ValueError:
            detail = response.text
        raise ValueError(f"OpenAI API {response.status_code}: {detail}")

    data = response.json()
    choices = data.get("choices", [])
    if not choices:
        raise ValueError("Empty response from OpenAI API")

    content = choices[0].get("message", {}).get("content")
    if not content:
        raise ValueError("No content in OpenAI API response")

    usage = data.get("usage", {})
    return {
        "text": content,
        "usage": {
            "input_tokens": usage.get("prompt_tokens", 0),
            "output_tokens": usage.get("completion_tokens", 0),
        },
    }


# ---------------------------------------------------------------------------
# Unified entry point
# ---------------------------------------------------------------------------


async def chat(
    api_key: str,
    model: str,
    system_prompt: str,
    messages: list[dict],
    max_tokens: int = 1000,
    provider: str = "anthropic",
) -> dict:
    """Send a chat request to the configured LLM provider.

    Parameters
    ----------
    provider : str
        ``"openai"`` or ``"anthropic"`` (default).

    Returns
    -------
    dict
        ``{"text": str, "usage": {"input_tokens": int, "output_tokens": int}}``
    """
    if provider == "openai":
        return await chat_openai(api_key, model, system_prompt, messages, max_tokens)
    return await chat_anthropic(api_key, model, system_prompt, messages, max_tokens)
