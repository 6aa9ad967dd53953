"""HTTP contract of the recipe endpoints, independent of the web framework.

handle_request() is the single entry point for every deployment shape:
- src/api/server.py (FastAPI) builds an IncomingRequest from the ASGI request
- handle_event() adapts serverless function events
  ({"httpMethod", "headers", "body", "isBase64Encoded"})

Responses:
- OPTIONS              → 204, empty body
- non-POST             → 405 {"error"}
- success              → 200 Recipe JSON
- InvalidRequest / UnsupportedImage → 400 {"error", "code"}
- QuotaExceeded        → 429 {"error": "QUOTA_EXCEEDED", "message", "retryAfter", "userMessage": {"ar", "en"}}
- everything else      → 500 {"error", "code"}
All responses carry permissive CORS headers and Content-Type: application/json.
"""

import json
import time
import uuid
from typing import Optional

from src.errors.classifier import classify_error
from src.errors.errors import ResponseUnparseable
from src.models.models import ErrorReport, HttpResponse, IncomingRequest
from src.pipeline.pipeline import run_pipeline
from src.utils.config import Config
from src.utils.logger import request_logger

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Content-Type": "application/json",
}

def json_response(status_code: int, payload: dict, extra_headers: Optional[dict] = None) -> HttpResponse:
    headers = dict(CORS_HEADERS)
    if extra_headers:
        headers.update(extra_headers)
    return HttpResponse(
        status_code=status_code,
        headers=headers,
        body=json.dumps(payload, ensure_ascii=False),
    )


def to_http_response(report: ErrorReport) -> HttpResponse:
    """Render an ErrorReport as the HTTP error contract."""
    if report.kind == "QuotaExceeded":
        return json_response(
            report.status_code,
            {
                "error": "QUOTA_EXCEEDED",
                "message": report.message,
                "retryAfter": report.retry_after_seconds,
                "userMessage": report.localized_message,
            },
            extra_headers={"Retry-After": str(report.retry_after_seconds)},
        )

    return json_response(report.status_code, {"error": report.message, "code": report.kind})


async def handle_request(
    incoming: IncomingRequest,
    settings: Config,
    generator,
    uploader=None,
) -> HttpResponse:
    """Run the pipeline for one HTTP request and render the terminal response.

    Never raises for pipeline failures: every exception is classified into an
    ErrorReport and rendered. Either a complete Recipe or an error is returned.
    """
    method = incoming.method.upper()
    if method == "OPTIONS":
        return HttpResponse(status_code=204, headers=dict(CORS_HEADERS), body="")
    if method != "POST":
        return json_response(405, {"error": "Method not allowed. Use POST."})

    request_id = uuid.uuid4().hex[:12]
    log = request_logger(request_id)
    started = time.monotonic()

    try:
        recipe = await run_pipeline(incoming, settings, generator, uploader, log=log)
    except Exception as e:
        report = classify_error(e, settings.DEFAULT_RETRY_AFTER_SECONDS)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        summary = f"Request failed after {elapsed_ms}ms: {report.kind} ({report.status_code}) {report.message}"
        if report.status_code >= 500:
            log.error(summary, exc_info=report.kind == "UpstreamFailure")
        else:
            log.warning(summary)
        if isinstance(e, ResponseUnparseable) and e.raw_text is not None:
            log.debug(f"Unparseable model output: {e.raw_text[:2000]}")
        return to_http_response(report)

    elapsed_ms = int((time.monotonic() - started) * 1000)
    log.info(f"Request completed in {elapsed_ms}ms")
    return json_response(200, recipe.to_wire())


async def handle_event(event: dict, settings: Config, generator, uploader=None) -> dict:
    """Serverless-function adapter: event dict in, {statusCode, headers, body} out."""
    incoming = IncomingRequest(
        method=event.get("httpMethod") or "GET",
        headers=event.get("headers") or {},
        body=event.get("body") or b"",
        is_base64_encoded=bool(event.get("isBase64Encoded")),
    )
    response = await handle_request(incoming, settings, generator, uploader)
    return {
        "statusCode": response.status_code,
        "headers": response.headers,
        "body": response.body,
    }
