"""Multi-provider LLM access for the SOW pipeline.

Supports Claude (Anthropic Messages API) and OpenAI-compatible chat
completion providers (OpenAI, DeepSeek, MiniMax).

Provider selection priority:
1. Per-scope override (``ANALYSIS_LLM_PROVIDER``, ``COVERAGE_LLM_PROVIDER``,
   ``DETAIL_LLM_PROVIDER``), then the global ``LLM_PROVIDER``.
2. Auto-detect from the first provider-specific API key that is set.
3. Fall back to legacy ``OPENAI_API_KEY`` + ``OPENAI_BASE_URL``.

Every call returns raw model text; callers own parsing and fallbacks.
"""

from __future__ import annotations

import json
import re
import time
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

import httpx

from config import LLM_TEMPERATURE, LLM_TIMEOUT_SECONDS, get_setting
from runtime_metrics import record_counter_metric, record_timing_metric

PROVIDER_CATALOG: Dict[str, Dict[str, Any]] = {
    "claude": {
        "label": "Claude (Anthropic)",
        "base_url": "https://api.anthropic.com",
        "default_model": "claude-3-5-haiku-latest",
        "api_format": "anthropic",
        "env_keys": ("CLAUDE_API_KEY", "ANTHROPIC_API_KEY"),
    },
    "openai": {
        "label": "OpenAI",
        "base_url": "https://api.openai.com/v1",
        "default_model": "gpt-4o-mini",
        "api_format": "openai",
        "env_keys": ("OPENAI_API_KEY",),
    },
    "deepseek": {
        "label": "DeepSeek",
        "base_url": "https://api.deepseek.com/v1",
        "default_model": "deepseek-chat",
        "api_format": "openai",
        "env_keys": ("DEEPSEEK_API_KEY",),
    },
    "minimax": {
        "label": "MiniMax",
        "base_url": "https://api.minimax.chat/v1",
        "default_model": "MiniMax-M2.5",
        "api_format": "openai",
        "env_keys": ("MINIMAX_API_KEY",),
    },
}

# Auto-detection order when LLM_PROVIDER is unset; openai is the legacy fallback.
_DETECT_ORDER = ["claude", "deepseek", "minimax"]


class LLMError(RuntimeError):
    pass


class LLMNotConfiguredError(LLMError):
    pass


class ProviderConfig(NamedTuple):
    name: str
    api_key: str
    base_url: str
    model: str
    api_format: str


def _setting(name: str) -> str:
    return str(get_setting(name, "") or "").strip()


def _detect_from_base_url(base_url: str) -> str:
    url = (base_url or "").strip().lower()
    if "anthropic" in url:
        return "claude"
    if "deepseek" in url:
        return "deepseek"
    if "minimax" in url:
        return "minimax"
    return "openai"


def _provider_key(pdef: Dict[str, Any]) -> str:
    for env_key in pdef["env_keys"]:
        value = _setting(env_key)
        if value:
            return value
    return ""


def _resolve_named(name: str) -> ProviderConfig:
    pdef = PROVIDER_CATALOG[name]
    upper = name.upper()
    api_key = _provider_key(pdef)
    if not api_key and pdef["api_format"] == "openai":
        api_key = _setting("OPENAI_API_KEY")
    base_url = _setting(f"{upper}_BASE_URL") or pdef["base_url"]
    model = _setting(f"{upper}_MODEL")
    if not model and pdef["api_format"] == "openai":
        model = _setting("OPENAI_API_MODEL")
    return ProviderConfig(name, api_key, base_url.rstrip("/"), model or pdef["default_model"], pdef["api_format"])


def resolve_provider(scope: str = "") -> ProviderConfig:
    """Resolve the active provider for *scope* (``analysis``, ``coverage`` or ``detail``)."""
    name = ""
    if scope:
        name = _setting(f"{scope.upper()}_LLM_PROVIDER").lower()
    if not name:
        name = _setting("LLM_PROVIDER").lower()
    if name in PROVIDER_CATALOG:
        return _resolve_named(name)

    for pname in _DETECT_ORDER:
        if _provider_key(PROVIDER_CATALOG[pname]):
            return _resolve_named(pname)

    legacy_key = _setting("OPENAI_API_KEY")
    if legacy_key:
        legacy_url = _setting("OPENAI_BASE_URL")
        detected = _detect_from_base_url(legacy_url)
        pdef = PROVIDER_CATALOG[detected]
        base_url = legacy_url.rstrip("/") if legacy_url else pdef["base_url"]
        model = _setting("OPENAI_API_MODEL") or pdef["default_model"]
        return ProviderConfig(detected, legacy_key, base_url, model, pdef["api_format"])

    return ProviderConfig("none", "", "", "", "none")


def provider_available(scope: str = "") -> bool:
    return bool(resolve_provider(scope).api_key)


# ---------------------------------------------------------------------------
# Anthropic format helpers
# ---------------------------------------------------------------------------


def openai_to_anthropic_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    system_parts: List[str] = []
    messages: List[Dict[str, Any]] = []
    for msg in payload.get("messages", []):
        if msg.get("role") == "system":
            system_parts.append(str(msg.get("content") or ""))
        else:
            messages.append({"role": msg.get("role", "user"), "content": msg.get("content", "")})
    result: Dict[str, Any] = {
        "model": payload.get("model", ""),
        "max_tokens": payload.get("max_tokens", 1024),
        "messages": messages,
    }
    if system_parts:
        result["system"] = "\n\n".join(system_parts)
    if "temperature" in payload:
        result["temperature"] = payload["temperature"]
    return result


def anthropic_response_to_openai(response: Dict[str, Any]) -> Dict[str, Any]:
    text_parts = [
        str(block.get("text") or "")
        for block in response.get("content") or []
        if isinstance(block, dict) and block.get("type") == "text"
    ]
    usage = response.get("usage") or {}
    input_tokens = int(usage.get("input_tokens") or 0)
    output_tokens = int(usage.get("output_tokens") or 0)
    return {
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": "\n".join(text_parts)},
                "finish_reason": response.get("stop_reason", "stop"),
            }
        ],
        "usage": {
            "prompt_tokens": input_tokens,
            "completion_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
        },
    }


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


async def _post_json(url: str, headers: Dict[str, str], body: Dict[str, Any], timeout: float, label: str) -> Dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(url, json=body, headers=headers)
    except httpx.HTTPError as exc:
        raise LLMError(f"{label} request failed: {exc!r}") from exc
    if resp.status_code >= 400:
        raise LLMError(f"{label} request failed ({resp.status_code}): {resp.text[:300]}")
    try:
        parsed = resp.json()
    except ValueError as exc:
        raise LLMError(f"{label} response parse failed: {exc}") from exc
    if not isinstance(parsed, dict):
        raise LLMError(f"{label} response payload is not a JSON object")
    return parsed


async def post_chat_completion(
    payload: Dict[str, Any],
    scope: str = "",
    timeout: float = LLM_TIMEOUT_SECONDS,
) -> Tuple[Dict[str, Any], str]:
    """Send a chat completion with the resolved provider.

    Returns ``(openai_format_response, provider_name)``; Anthropic responses are
    normalized to the OpenAI shape.
    """
    provider = resolve_provider(scope)
    if not provider.api_key:
        raise LLMNotConfiguredError(
            "No LLM API key configured. Set LLM_PROVIDER and the corresponding API key environment variable."
        )
    label = PROVIDER_CATALOG[provider.name]["label"]
    request_payload = dict(payload)
    if not str(request_payload.get("model") or "").strip():
        request_payload["model"] = provider.model

    if provider.api_format == "anthropic":
        parsed = await _post_json(
            f"{provider.base_url}/v1/messages",
            {"x-api-key": provider.api_key, "anthropic-version": "2023-06-01"},
            openai_to_anthropic_payload(request_payload),
            timeout,
            label,
        )
        return anthropic_response_to_openai(parsed), provider.name
    parsed = await _post_json(
        f"{provider.base_url}/chat/completions",
        {"Authorization": f"Bearer {provider.api_key}"},
        request_payload,
        timeout,
        label,
    )
    return parsed, provider.name


def _extract_content(payload: Dict[str, Any]) -> str:
    choices = payload.get("choices") or []
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str) and content.strip():
                return content
            if isinstance(content, list):
                parts = [
                    str(chunk.get("text") or "") if isinstance(chunk, dict) else str(chunk)
                    for chunk in content
                ]
                merged = "\n".join(part for part in parts if part.strip()).strip()
                if merged:
                    return merged
        text = str(choices[0].get("text") or "").strip()
        if text:
            return text
    raise LLMError("LLM response missing content")


def _record_usage(scope: str, payload: Dict[str, Any]) -> None:
    usage = payload.get("usage") if isinstance(payload.get("usage"), dict) else {}
    prompt_tokens = int(usage.get("prompt_tokens") or 0)
    completion_tokens = int(usage.get("completion_tokens") or 0)
    total_tokens = int(usage.get("total_tokens") or (prompt_tokens + completion_tokens))
    if total_tokens > 0:
        record_counter_metric(name=f"llm.{scope}.tokens.total", value=total_tokens)
        record_counter_metric(name=f"llm.{scope}.tokens.prompt", value=prompt_tokens)
        record_counter_metric(name=f"llm.{scope}.tokens.completion", value=completion_tokens)


async def complete_text(
    prompt: str,
    *,
    max_tokens: int,
    scope: str,
    timeout: float = LLM_TIMEOUT_SECONDS,
    temperature: Optional[float] = None,
) -> str:
    """Send one user prompt and return the model's raw text."""
    payload = {
        "messages": [{"role": "user", "content": prompt}],
        "max_tokens": int(max_tokens),
        "temperature": LLM_TEMPERATURE if temperature is None else temperature,
    }
    started = time.perf_counter()
    response, _provider = await post_chat_completion(payload, scope=scope, timeout=timeout)
    record_timing_metric(name=f"llm.{scope}.latency_ms", duration_ms=(time.perf_counter() - started) * 1000)
    _record_usage(scope, response)
    return _extract_content(response)


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------


def strip_think_blocks(text: str) -> str:
    raw = str(text or "")
    if not raw:
        return ""
    return re.sub(r"<think>[\s\S]*?</think>", "", raw, flags=re.IGNORECASE).strip()


def _strip_code_fence(text: str) -> str:
    if not text.startswith("```"):
        return text
    lines = text.splitlines()
    if len(lines) >= 3 and lines[-1].strip().startswith("```"):
        return "\n".join(lines[1:-1]).strip()
    return "\n".join(lines[1:]).strip()


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse the single JSON object in a model reply, or return None."""
    raw = _strip_code_fence(strip_think_blocks(text))
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        start = raw.find("{")
        end = raw.rfind("}")
        if start < 0 or end <= start:
            return None
        try:
            parsed = json.loads(raw[start : end + 1])
        except ValueError:
            return None
    if not isinstance(parsed, dict):
        return None
    return parsed
