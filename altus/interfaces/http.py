"""HTTP surface for ``POST search``: body parsing, response envelopes and rate-limit headers.

Framework-agnostic: routing and authentication live in the hosting web app,
which passes the authenticated credential and gets back status, headers and
a JSON-ready body.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from altus.contracts.search_v1 import Credential, SearchRequest
from altus.core.config import config
from altus.core.logger import logger
from altus.orchestrators.search.errors import (
    AltusError,
    BackendUnavailable,
    RateLimitExceeded,
    ValidationError,
)
from altus.orchestrators.search.orchestrator import SearchOrchestrator
from altus.orchestrators.search.rate_limiter import RateLimitDecision

STATUS_BY_ERROR: dict[type[AltusError], int] = {
    ValidationError: 400,
    RateLimitExceeded: 429,
    BackendUnavailable: 503,
}


@dataclass
class HttpResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)


def parse_search_request(body: Any, caller_id: str | None = None) -> SearchRequest:
    """Validate a ``POST search`` body into a SearchRequest.

    ``caller_id`` (the authenticated user) overrides any ``userId`` in the body.
    Raises ValidationError naming the first offending field.
    """
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", field="body")
    payload = dict(body)
    if caller_id:
        payload["userId"] = caller_id
    try:
        return SearchRequest.model_validate(payload)
    except PydanticValidationError as e:
        errors = e.errors(include_url=False, include_context=False)
        first = errors[0] if errors else {}
        loc = first.get("loc") or ()
        field_name = str(loc[0]) if loc else "offset"
        message = first.get("msg", "Invalid search request")
        raise ValidationError(
            f"{field_name}: {message}",
            field=field_name,
            details={
                "errors": [
                    {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
                    for err in errors
                ]
            },
        ) from e


def rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(int(decision.reset_at)),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


def _meta(request_id: str, credential: Credential) -> dict[str, Any]:
    return {
        "timestamp": datetime.now(UTC).isoformat(),
        "requestId": request_id,
        "version": config.api_version,
        "apiKeyTier": str(credential.tier),
    }


def success_envelope(data: dict[str, Any], request_id: str, credential: Credential) -> dict[str, Any]:
    return {"success": True, "data": data, "meta": _meta(request_id, credential)}


def error_envelope(error: AltusError, request_id: str, credential: Credential) -> dict[str, Any]:
    return {"success": False, "error": error.to_dict(), "meta": _meta(request_id, credential)}


async def handle_search(
    orchestrator: SearchOrchestrator,
    body: Any,
    credential: Credential,
    *,
    caller_id: str | None = None,
    request_id: str | None = None,
) -> HttpResponse:
    """Run ``POST search`` end to end and shape the HTTP response."""
    request_id = request_id or uuid.uuid4().hex
    try:
        request = parse_search_request(body, caller_id=caller_id)
        response = await orchestrator.search(request, credential, request_id=request_id)
    except RateLimitExceeded as e:
        headers = {
            "X-RateLimit-Limit": str(e.limit),
            "X-RateLimit-Remaining": str(e.remaining),
            "X-RateLimit-Reset": str(int(e.reset_at)),
            "Retry-After": str(e.retry_after_seconds),
        }
        return HttpResponse(429, headers, error_envelope(e, request_id, credential))
    except (ValidationError, BackendUnavailable) as e:
        logger.info("Search %s rejected: %s %s", request_id, e.code, e.message)
        headers = rate_limit_headers(await orchestrator.rate_limiter.peek(credential))
        return HttpResponse(STATUS_BY_ERROR[type(e)], headers, error_envelope(e, request_id, credential))

    headers = rate_limit_headers(await orchestrator.rate_limiter.peek(credential))
    data = response.model_dump(mode="json", by_alias=True)
    return HttpResponse(200, headers, success_envelope(data, request_id, credential))
