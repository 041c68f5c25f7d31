from __future__ import annotations

import json
import logging
import os
import time
import uuid
from functools import lru_cache
from typing import Any

from openai import OpenAI

from app.analytics.db import log_ai_analysis_run
from app.services.errors import AnalysisUnavailable

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _looks_like_placeholder(value: str) -> bool:
    lower = value.strip().lower()
    return lower.startswith("your_") or lower.startswith("replace_") or lower in {"changeme", "todo"}


def analysis_llm_enabled() -> bool:
    if not _env_bool("TOOLS_LLM_ENABLED", True):
        return False
    api_key = (os.getenv("OPENAI_API_KEY") or "").strip()
    if not api_key or _looks_like_placeholder(api_key):
        return False
    return True


@lru_cache(maxsize=1)
def _client() -> OpenAI:
    return OpenAI(
        api_key=(os.getenv("OPENAI_API_KEY") or "").strip(),
        base_url=(os.getenv("OPENAI_BASE_URL") or None),
        timeout=float(os.getenv("TOOLS_LLM_TIMEOUT_S", "45")),
        max_retries=int(os.getenv("OPENAI_MAX_RETRIES", "2")),
    )


def _model() -> str:
    return (os.getenv("AI_MODEL") or os.getenv("OPENAI_MODEL") or "gpt-4o-mini").strip()


def _log_ai_run(
    *,
    run_id: str,
    analysis_kind: str,
    schema_valid: bool,
    status: str,
    latency_ms: int | None,
    error_code: str | None = None,
) -> None:
    try:
        log_ai_analysis_run(
            run_id=run_id,
            analysis_kind=analysis_kind,
            model=_model(),
            schema_valid=schema_valid,
            status=status,
            error_code=error_code,
            latency_ms=latency_ms,
        )
    except Exception:  # pragma: no cover - analytics must not break AI responses
        logger.debug("ai_run_logging_failed", exc_info=True)


def json_completion_required(
    *,
    system_prompt: str,
    user_prompt: str,
    temperature: float = 0.2,
    max_output_tokens: int = 1800,
    analysis_kind: str = "comprehensive",
) -> dict[str, Any]:
    """Run a JSON-mode chat completion and return the parsed object.

    Raises ``AnalysisUnavailable`` when the client is not configured, the call
    fails, or the reply is not a JSON object. Every attempt is recorded in the
    analytics run log.
    """
    run_id = uuid.uuid4().hex
    started = time.perf_counter()

    def _elapsed_ms() -> int:
        return int((time.perf_counter() - started) * 1000)

    if not analysis_llm_enabled():
        _log_ai_run(
            run_id=run_id,
            analysis_kind=analysis_kind,
            schema_valid=False,
            status="skipped",
            error_code="llm_disabled",
            latency_ms=0,
        )
        raise AnalysisUnavailable("AI analysis is not configured.", code="llm_disabled")

    try:
        response = _client().chat.completions.create(
            model=_model(),
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            response_format={"type": "json_object"},
            max_tokens=max_output_tokens,
        )
        content = response.choices[0].message.content if response.choices else ""
    except Exception as exc:  # noqa: BLE001 - surfaced as AnalysisUnavailable
        logger.warning("analysis_llm_failed model=%s prompt_len=%s: %s", _model(), len(user_prompt), exc)
        _log_ai_run(
            run_id=run_id,
            analysis_kind=analysis_kind,
            schema_valid=False,
            status="error",
            error_code="llm_exception",
            latency_ms=_elapsed_ms(),
        )
        raise AnalysisUnavailable("AI analysis failed. Try again.", code="llm_exception") from exc

    try:
        parsed = json.loads(content) if content else None
    except json.JSONDecodeError:
        parsed = None

    if not isinstance(parsed, dict):
        _log_ai_run(
            run_id=run_id,
            analysis_kind=analysis_kind,
            schema_valid=False,
            status="invalid_schema" if content else "empty",
            error_code="invalid_schema" if content else "empty_response",
            latency_ms=_elapsed_ms(),
        )
        raise AnalysisUnavailable("AI analysis could not produce a valid response. Try again.", code="llm_invalid")

    _log_ai_run(
        run_id=run_id,
        analysis_kind=analysis_kind,
        schema_valid=True,
        status="success",
        latency_ms=_elapsed_ms(),
    )
    return parsed
