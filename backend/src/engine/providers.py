"""HTTP clients for the OpenAI, Anthropic and Gemini APIs (hardened)."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .. import config
from ..utils.redact import redact_secrets

logger = logging.getLogger(__name__)

OPENAI = "openai"
ANTHROPIC = "anthropic"
GOOGLE = "google"


@dataclass
class ProviderResult:
    ok: bool
    provider: Optional[str]
    model: str
    content: Optional[str]
    usage: Optional[dict[str, Any]]
    latency_ms: Optional[int]
    status_code: Optional[int]
    error_text: Optional[str]


@dataclass(frozen=True)
class ImageData:
    media_type: str
    data: str
    url: str


_SEMAPHORE = asyncio.Semaphore(max(1, config.PROVIDER_MAX_CONCURRENCY))
_CLIENT: httpx.AsyncClient | None = None
_AUTH_INVALID_UNTIL: dict[str, float] = {}


def set_client(client: httpx.AsyncClient | None) -> None:
    global _CLIENT
    _CLIENT = client


def _get_client(timeout_seconds: float) -> httpx.AsyncClient:
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT
    logger.warning("Provider httpx client not set via lifespan; creating a fallback client.")
    _CLIENT = httpx.AsyncClient(timeout=timeout_seconds)
    return _CLIENT


def resolve_provider(model_id: str) -> str | None:
    lowered = model_id.lower()
    for prefix, provider in config.PROVIDER_PREFIXES.items():
        if prefix.lower() in lowered:
            return provider
    return None


def resolve_model_name(model_id: str) -> str:
    return config.MODEL_ALIASES.get(model_id, model_id)


def _api_key(provider: str) -> str | None:
    if provider == OPENAI:
        return config.OPENAI_API_KEY
    if provider == ANTHROPIC:
        return config.ANTHROPIC_API_KEY
    if provider == GOOGLE:
        return config.GOOGLE_API_KEY
    return None


def parse_image_data(data_url: str) -> ImageData:
    """
    Split a `data:<media type>;base64,<payload>` URL into its parts.

    Raises ValueError when the value is not a base64 data URL.
    """
    if not data_url.startswith("data:") or "," not in data_url:
        raise ValueError("image_data must be a base64 data URL")
    header, payload = data_url.split(",", 1)
    meta = header[len("data:"):].split(";")
    media_type = meta[0]
    if not media_type or "base64" not in meta[1:]:
        raise ValueError("image_data must be a base64 data URL")
    if not payload:
        raise ValueError("image_data payload is empty")
    return ImageData(media_type=media_type, data=payload, url=data_url)


def _build_request(
    provider: str,
    model: str,
    api_key: str,
    prompt: str,
    image: ImageData | None,
    temperature: Optional[float],
    max_tokens: Optional[int],
) -> tuple[str, dict[str, str], dict[str, Any]]:
    if provider == OPENAI:
        content: Any = prompt
        if image is not None:
            content = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image.url}},
            ]
        payload: dict[str, Any] = {"model": model, "messages": [{"role": "user", "content": content}]}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        return config.OPENAI_API_URL, headers, payload

    if provider == ANTHROPIC:
        blocks: list[dict[str, Any]] = []
        if image is not None:
            blocks.append(
                {
                    "type": "image",
                    "source": {"type": "base64", "media_type": image.media_type, "data": image.data},
                }
            )
        blocks.append({"type": "text", "text": prompt})
        payload = {
            "model": model,
            # Anthropic requires an explicit output cap.
            "max_tokens": max_tokens if max_tokens is not None else config.GENERATION_MAX_TOKENS,
            "messages": [{"role": "user", "content": blocks}],
        }
        if temperature is not None:
            payload["temperature"] = temperature
        headers = {
            "x-api-key": api_key,
            "anthropic-version": config.ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        return config.ANTHROPIC_API_URL, headers, payload

    parts: list[dict[str, Any]] = [{"text": prompt}]
    if image is not None:
        parts.append({"inline_data": {"mime_type": image.media_type, "data": image.data}})
    generation_config: dict[str, Any] = {}
    if temperature is not None:
        generation_config["temperature"] = temperature
    if max_tokens is not None:
        generation_config["maxOutputTokens"] = max_tokens
    payload = {"contents": [{"parts": parts}]}
    if generation_config:
        payload["generationConfig"] = generation_config
    headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}
    url = f"{config.GEMINI_API_BASE_URL.rstrip('/')}/{model}:generateContent"
    return url, headers, payload


def _extract_content(provider: str, data: dict[str, Any]) -> tuple[Optional[str], Optional[dict[str, Any]]]:
    if provider == OPENAI:
        message = (data.get("choices") or [{}])[0].get("message") or {}
        usage = data.get("usage") if isinstance(data.get("usage"), dict) else None
        return message.get("content"), usage

    if provider == ANTHROPIC:
        blocks = data.get("content") or []
        texts = [b.get("text") for b in blocks if isinstance(b, dict) and b.get("type", "text") == "text"]
        texts = [t for t in texts if isinstance(t, str)]
        usage = data.get("usage") if isinstance(data.get("usage"), dict) else None
        return ("".join(texts) if texts else None), usage

    candidate = (data.get("candidates") or [{}])[0] or {}
    parts = (candidate.get("content") or {}).get("parts") or []
    texts = [p.get("text") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    usage = data.get("usageMetadata") if isinstance(data.get("usageMetadata"), dict) else None
    return ("".join(texts) if texts else None), usage


def _failure(
    provider: Optional[str],
    model: str,
    error_text: str,
    *,
    status_code: Optional[int] = None,
    latency_ms: Optional[int] = None,
) -> ProviderResult:
    return ProviderResult(
        ok=False,
        provider=provider,
        model=model,
        content=None,
        usage=None,
        latency_ms=latency_ms,
        status_code=status_code,
        error_text=error_text,
    )


async def query_model(
    model_id: str,
    prompt: str,
    *,
    image_data: str | None = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    timeout_seconds: Optional[float] = None,
) -> ProviderResult:
    """Send a single-turn prompt to whichever provider serves `model_id`. Never raises."""
    provider = resolve_provider(model_id)
    if provider is None:
        return _failure(None, model_id, f"No provider configured for model {model_id}")

    api_key = _api_key(provider)
    if not api_key:
        return _failure(provider, model_id, f"{provider} credentials missing")

    if time.time() < _AUTH_INVALID_UNTIL.get(provider, 0.0):
        return _failure(provider, model_id, f"{provider} credentials invalid (cooldown)", status_code=401, latency_ms=0)

    image: ImageData | None = None
    if image_data:
        try:
            image = parse_image_data(image_data)
        except ValueError as e:
            return _failure(provider, model_id, str(e))

    url, headers, payload = _build_request(
        provider, resolve_model_name(model_id), api_key, prompt, image, temperature, max_tokens
    )
    timeout = timeout_seconds if timeout_seconds is not None else config.PROVIDER_TIMEOUT_SECONDS
    client = _get_client(timeout)

    async with _SEMAPHORE:
        start = time.monotonic()
        try:
            # The deadline starts once a provider slot is held; queueing never counts against it.
            resp = await asyncio.wait_for(
                client.post(url, headers=headers, json=payload, timeout=timeout), timeout=timeout
            )
            latency_ms = int((time.monotonic() - start) * 1000)

            status_code = resp.status_code
            if status_code in (401, 403):
                _AUTH_INVALID_UNTIL[provider] = time.time() + max(1, int(config.PROVIDER_AUTH_COOLDOWN_SECONDS))
                logger.warning("provider_auth_error provider=%s model=%s status=%s", provider, model_id, status_code)
                return _failure(
                    provider,
                    model_id,
                    f"{provider} auth error ({status_code})",
                    status_code=status_code,
                    latency_ms=latency_ms,
                )

            if status_code >= 400:
                error_text = redact_secrets(f"{provider} HTTP {status_code}: {resp.text[:500]}")
                logger.warning("provider_http_error model=%s error=%s", model_id, error_text)
                return _failure(provider, model_id, error_text, status_code=status_code, latency_ms=latency_ms)

            data = resp.json()
            content, usage = _extract_content(provider, data if isinstance(data, dict) else {})
            if content is None:
                return _failure(
                    provider,
                    model_id,
                    f"{provider} returned no text content",
                    status_code=status_code,
                    latency_ms=latency_ms,
                )

            return ProviderResult(
                ok=True,
                provider=provider,
                model=model_id,
                content=content,
                usage=usage,
                latency_ms=latency_ms,
                status_code=status_code,
                error_text=None,
            )

        except Exception as e:
            latency_ms = int((time.monotonic() - start) * 1000)
            error_text = redact_secrets(f"Error querying model {model_id}: {type(e).__name__}: {e}")
            logger.warning("provider_request_error %s", error_text)
            return _failure(provider, model_id, error_text, latency_ms=latency_ms)


async def query_models_parallel(
    models: list[str],
    prompt: str,
    *,
    image_data: str | None = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    timeout_seconds: Optional[float] = None,
) -> dict[str, ProviderResult]:
    tasks = [
        query_model(
            model,
            prompt,
            image_data=image_data,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout_seconds=timeout_seconds,
        )
        for model in models
    ]
    results = await asyncio.gather(*tasks)
    return {model: result for model, result in zip(models, results)}
