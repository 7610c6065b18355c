from typing import Dict, Optional

ERROR_CODE_MAP: Dict[str, Dict[str, str]] = {
    "PARSE_FAILED": {
        "message": "Document could not be read",
        "hint": "Upload a PDF, TXT or MD file with selectable text, or paste the SOW directly.",
    },
    "UNSUPPORTED_FORMAT": {
        "message": "Unsupported document format",
        "hint": "Please upload PDF, TXT, or MD files only.",
    },
    "DOCUMENT_TOO_LARGE": {
        "message": "Document is too large",
        "hint": "File size must be under the configured upload limit.",
    },
    "ANALYSIS_INPUT_MISSING": {
        "message": "SOW content is required",
        "hint": "Upload or paste the SOW before requesting an analysis.",
    },
    "ANALYSIS_FAILED": {
        "message": "SOW analysis failed",
        "hint": "The model returned an unusable response; retry or check the LLM provider configuration.",
    },
    "LLM_NOT_CONFIGURED": {
        "message": "No language model configured",
        "hint": "Set LLM_PROVIDER and the matching API key (e.g. CLAUDE_API_KEY or OPENAI_API_KEY).",
    },
    "SEARCH_INPUT_INVALID": {
        "message": "Repository search input is invalid",
        "hint": "Run the SOW analysis first; the project type or deliverables must contain searchable terms.",
    },
    "DETAIL_INPUT_INVALID": {
        "message": "Owner and name are required",
        "hint": "Pick a repository from the search results.",
    },
    "DETAIL_FETCH_FAILED": {
        "message": "Repository details could not be fetched",
        "hint": "Check that the repository exists and that GITHUB_TOKEN is valid.",
    },
    "GITHUB_RATE_LIMIT": {
        "message": "GitHub rate limit reached",
        "hint": "Wait for the rate limit window to reset or configure GITHUB_TOKEN.",
    },
    "INTERNAL_SERVER_ERROR": {
        "message": "internal server error",
        "hint": "Check the service logs using the trace id.",
    },
}

HTTP_STATUS_BY_CODE: Dict[str, int] = {
    "PARSE_FAILED": 400,
    "UNSUPPORTED_FORMAT": 400,
    "DOCUMENT_TOO_LARGE": 413,
    "ANALYSIS_INPUT_MISSING": 400,
    "ANALYSIS_FAILED": 502,
    "LLM_NOT_CONFIGURED": 503,
    "SEARCH_INPUT_INVALID": 400,
    "DETAIL_INPUT_INVALID": 400,
    "DETAIL_FETCH_FAILED": 502,
    "GITHUB_RATE_LIMIT": 429,
}


class PipelineError(RuntimeError):
    """A failure that is reported to the caller as one explicit stage error."""

    stage = "pipeline"

    def __init__(self, code: str, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        if stage:
            self.stage = stage

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.code, 500)


def explain_error(code: str | None) -> Dict[str, str] | None:
    if not code:
        return None
    return ERROR_CODE_MAP.get(code)
