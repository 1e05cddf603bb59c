from functools import lru_cache
from time import perf_counter
from typing import Callable, Dict, Optional, Sequence

import azure.functions as func

from src.functions.submit_candidate import SubmissionPipeline
from src.shared.blob_store import ContactArchive
from src.shared.config import DEFAULT_ALLOWED_ORIGIN, AppConfig, load_config
from src.shared.github_client import create_github_client
from src.shared.logging_utils import error as log_error, info as log_info
from src.shared.turnstile import TurnstileVerifier
from src.specs.common.errors import ConfigurationError, SubmissionValidationError, VerificationError
from src.specs.http.submit_candidate import SubmissionResponse


bp = func.Blueprint()

INTERNAL_ERROR_MESSAGE = "An error occurred processing your submission. Please try again."


def cors_headers(origin: str, allowed_origins: Sequence[str]) -> Dict[str, str]:
    # Echo the caller's origin rather than "*" so browsers accept the reply
    allowed = origin if origin in allowed_origins else allowed_origins[0]
    return {
        "Access-Control-Allow-Origin": allowed,
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Max-Age": "86400",
    }


def _json_response(resp: SubmissionResponse, status_code: int, headers: Dict[str, str]) -> func.HttpResponse:
    return func.HttpResponse(
        body=resp.to_json(),
        mimetype="application/json",
        status_code=status_code,
        headers=headers,
    )


def build_pipeline(config: AppConfig) -> SubmissionPipeline:
    return SubmissionPipeline(
        config,
        verifier=TurnstileVerifier(config),
        archive_factory=lambda: ContactArchive.from_config(config),
        client_factory=lambda: create_github_client(config),
    )


@lru_cache(maxsize=1)
def _default_pipeline() -> SubmissionPipeline:
    return build_pipeline(load_config())


def handle_submission(
    req: func.HttpRequest,
    config: AppConfig,
    pipeline_factory: Optional[Callable[[], SubmissionPipeline]] = None,
) -> func.HttpResponse:
    """Map one HTTP request onto the submission pipeline and its outcome onto a status code."""
    start = perf_counter()
    headers = cors_headers(req.headers.get("origin") or "", config.allowed_origins)

    if req.method == "OPTIONS":
        return func.HttpResponse(status_code=204, headers=headers)

    try:
        payload = req.get_json()
    except ValueError:
        log_error(None, "submit:invalid_json")
        resp = SubmissionResponse(success=False, message="Invalid JSON body", errors=["Request body must be JSON"])
        return _json_response(resp, 400, headers)

    try:
        pipeline = (pipeline_factory or _default_pipeline)()
        result = pipeline.submit(payload)
    except SubmissionValidationError as exc:
        log_info(None, "submit:validation_failed", errorCount=len(exc.errors))
        resp = SubmissionResponse(success=False, message=str(exc), errors=exc.errors)
        return _json_response(resp, 400, headers)
    except VerificationError:
        log_info(None, "submit:verification_failed")
        return _json_response(SubmissionResponse(success=False, message="Invalid security token"), 401, headers)
    except Exception as exc:
        log_error(None, "submit:error", error=str(exc), errorType=type(exc).__name__)
        resp = SubmissionResponse(success=False, message=INTERNAL_ERROR_MESSAGE, correlationId="")
        return _json_response(resp, 500, headers)

    duration_ms = int((perf_counter() - start) * 1000)
    log_info(result.correlationId, "submit:completed", pullRequestUrl=result.pullRequestUrl, durationMs=duration_ms)
    return _json_response(result, 200, headers)


@bp.function_name(name="submitCandidate")
@bp.route(route="submitCandidate", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def submit_candidate(req: func.HttpRequest) -> func.HttpResponse:
    try:
        config = load_config()
    except ConfigurationError as exc:
        log_error(None, "submit:config_error", error=str(exc))
        resp = SubmissionResponse(success=False, message=INTERNAL_ERROR_MESSAGE, correlationId="")
        headers = cors_headers(req.headers.get("origin") or "", (DEFAULT_ALLOWED_ORIGIN,))
        return _json_response(resp, 500, headers)
    return handle_submission(req, config)
