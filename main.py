from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from starlette.datastructures import UploadFile

from config import API_HOST, API_PORT, APP_VERSION, CORS_ORIGINS, GITHUB_TOKEN, LOG_JSON, LOG_LEVEL, UPLOAD_MAX_BYTES
from errors import PipelineError, explain_error
from intake.analysis import AnalysisFailure, analyze_sow
from intake.text_extract import ParseFailure, parse_direct_text, parse_upload, word_count
from llm_registry import provider_available, resolve_provider
from matching.models import AnswerSet, RequirementProfile
from matching.service import DetailInputError, SearchInputError, run_repository_detail, run_repository_search
from observability import configure_logging, get_logger, log_event
from runtime_metrics import get_runtime_metrics_snapshot, record_request_metric

configure_logging(level=LOG_LEVEL, json_output=LOG_JSON)
APP_LOGGER = get_logger("api")

app = FastAPI(title="SOW Scout", version=APP_VERSION)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Trace-Id"],
    expose_headers=["X-Trace-Id"],
)


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalyzeRequest(RequestModel):
    sow_content: str = ""


class SearchRequest(RequestModel):
    analysis: Optional[Dict[str, Any]] = None
    question_answers: Dict[str, Any] = Field(default_factory=dict)
    additional_context: str = ""


class RepoDetailRequest(SearchRequest):
    owner: str = ""
    name: str = ""


def _request_trace_id(request: Request) -> str:
    raw = str(getattr(request.state, "trace_id", "") or "").strip()
    if raw:
        return raw
    return uuid.uuid4().hex


def _profile_from_payload(raw: Optional[Dict[str, Any]], error_cls: type[PipelineError], code: str) -> RequirementProfile:
    if not raw:
        raise error_cls(code, "Analysis is required")
    try:
        return RequirementProfile.model_validate(raw)
    except ValidationError as exc:
        raise error_cls(code, f"Analysis is invalid: {exc.error_count()} validation errors") from exc


def _answers_from_payload(payload: SearchRequest) -> AnswerSet:
    return AnswerSet(answers=payload.question_answers, additional_context=payload.additional_context)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    trace_id = str(request.headers.get("X-Trace-Id") or uuid.uuid4().hex).strip()[:64]
    request.state.trace_id = trace_id
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = int((time.perf_counter() - started) * 1000)
    log_event(
        APP_LOGGER,
        logging.INFO,
        "request.completed",
        trace_id=trace_id,
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=duration_ms,
    )
    record_request_metric(path=request.url.path, status_code=response.status_code, duration_ms=duration_ms)
    response.headers["X-Trace-Id"] = trace_id
    return response


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    trace_id = _request_trace_id(request)
    log_event(
        APP_LOGGER,
        logging.WARNING,
        "request.pipeline_error",
        trace_id=trace_id,
        path=request.url.path,
        stage=exc.stage,
        error_code=exc.code,
        error=exc.message,
    )
    info = explain_error(exc.code) or {}
    return JSONResponse(
        status_code=exc.http_status,
        content={
            "error": exc.message,
            "error_code": exc.code,
            "stage": exc.stage,
            "hint": info.get("hint", ""),
            "trace_id": trace_id,
        },
        headers={"X-Trace-Id": trace_id},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    trace_id = _request_trace_id(request)
    log_event(
        APP_LOGGER,
        logging.ERROR,
        "request.unhandled_exception",
        trace_id=trace_id,
        method=request.method,
        path=request.url.path,
        exception_type=type(exc).__name__,
        exception_message=str(exc),
    )
    info = explain_error("INTERNAL_SERVER_ERROR") or {}
    return JSONResponse(
        status_code=500,
        content={
            "error": info.get("message", "internal server error"),
            "error_code": "INTERNAL_SERVER_ERROR",
            "stage": "api",
            "hint": info.get("hint", ""),
            "trace_id": trace_id,
        },
        headers={"X-Trace-Id": trace_id},
    )


@app.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "version": APP_VERSION,
        "github_token_configured": bool(GITHUB_TOKEN),
        "llm": {scope: resolve_provider(scope).name for scope in ("analysis", "coverage", "detail")},
        "llm_configured": {scope: provider_available(scope) for scope in ("analysis", "coverage", "detail")},
    }


@app.get("/metrics/runtime")
async def runtime_metrics() -> dict:
    return get_runtime_metrics_snapshot()


@app.post("/upload")
async def upload(request: Request) -> dict:
    """Accept pasted text as JSON `{text}` or a multipart `file` (PDF, TXT, MD)."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            body = await request.json()
        except ValueError as exc:
            raise ParseFailure("PARSE_FAILED", "Text content is required") from exc
        text = body.get("text") if isinstance(body, dict) else None
        if not isinstance(text, str) or not text:
            raise ParseFailure("PARSE_FAILED", "Text content is required")
        content = parse_direct_text(text)
        return {"success": True, "content": content, "filename": "Pasted Text", "wordCount": word_count(content)}

    if "multipart/form-data" in content_type:
        form = await request.form()
        upload_file = form.get("file")
        if not isinstance(upload_file, UploadFile):
            raise ParseFailure("PARSE_FAILED", "No file provided")
        raw = await upload_file.read(UPLOAD_MAX_BYTES + 1)
        content = parse_upload(upload_file.filename, raw)
        return {
            "success": True,
            "content": content,
            "filename": upload_file.filename,
            "fileSize": len(raw),
            "wordCount": word_count(content),
        }

    raise ParseFailure("PARSE_FAILED", "Invalid request format")


@app.post("/analyze")
async def analyze(payload: AnalyzeRequest) -> dict:
    if not payload.sow_content.strip():
        raise AnalysisFailure("ANALYSIS_INPUT_MISSING", "SOW content is required")
    profile = await analyze_sow(payload.sow_content)
    return {"success": True, "analysis": profile.model_dump(by_alias=True, mode="json")}


@app.post("/search")
async def search(payload: SearchRequest) -> dict:
    profile = _profile_from_payload(payload.analysis, SearchInputError, "SEARCH_INPUT_INVALID")
    outcome = await run_repository_search(profile, _answers_from_payload(payload))
    response: Dict[str, Any] = {
        "success": True,
        "results": [item.model_dump(by_alias=True, mode="json") for item in outcome.results],
        "queries": outcome.queries,
    }
    if outcome.message:
        response["message"] = outcome.message
    return response


@app.post("/repo-detail")
async def repo_detail(payload: RepoDetailRequest) -> dict:
    if not payload.owner.strip() or not payload.name.strip():
        raise DetailInputError("DETAIL_INPUT_INVALID", "Owner and name are required")
    profile = _profile_from_payload(payload.analysis, DetailInputError, "DETAIL_INPUT_INVALID")
    detail = await run_repository_detail(payload.owner, payload.name, profile, _answers_from_payload(payload))
    return {"success": True, "detail": detail.model_dump(by_alias=True, mode="json")}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)
