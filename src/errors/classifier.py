"""Error classification: any pipeline failure → exactly one ErrorReport.

Two entry points:
- translate_provider_error(): used at the Gemini adapter boundary to turn a raw
  provider exception into one of our typed errors.
- classify_error(): used by the request handler to turn any exception into the
  terminal ErrorReport with fixed, localized user messages.

Precedence (first match wins):
1. MissingCredential   - no API key configured, checked before any call
2. InvalidRequest      - malformed input (ingestor)
3. UnsupportedImage    - image decode failure (normalizer)
4. QuotaExceeded       - 429 / RESOURCE_EXHAUSTED / "quota" / "429"
5. InvalidCredential   - expired, leaked, invalid or referer-restricted key
6. RequestTimeout      - local timeout, 504 / DEADLINE_EXCEEDED, "timed out"
7. ResponseUnparseable - output failed JSON repair
8. UpstreamFailure     - anything else, upstream message passed through

The keyword matching in 4-6 depends on Gemini's error wording and is best
effort. Structured code/status from google-genai's APIError are checked first.
"""

import asyncio
import json
import math
import re
from typing import Any, Optional

import httpx

from src.errors.errors import (
    InvalidCredential,
    QuotaExceeded,
    RecipePipelineError,
    RequestTimeout,
    UpstreamFailure,
)
from src.models.models import ErrorReport

DEFAULT_RETRY_AFTER_SECONDS = 60

_RETRY_IN_PATTERN = re.compile(r"retry in\s+(\d+(?:\.\d+)?)\s*s", re.IGNORECASE)
_RETRY_DELAY_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*s\s*$")

QUOTA_KEYWORDS = ("quota", "429")
CREDENTIAL_KEYWORDS = ("expired", "renew", "leaked", "api key", "api_key_invalid", "referer")
TIMEOUT_KEYWORDS = ("timed out", "timeout", "sandbox")

INVALID_CREDENTIAL_MESSAGE = (
    "API key issue. Check the key in Google AI Studio (aistudio.google.com/apikey), "
    "update GEMINI_API_KEY in the deployment environment, then redeploy."
)
REQUEST_TIMEOUT_MESSAGE = "Request took too long. Try a smaller image or try again."

USER_MESSAGES: dict[str, dict[str, str]] = {
    "MissingCredential": {
        "en": "GEMINI_API_KEY is not set",
        "ar": "مفتاح GEMINI_API_KEY غير مُعدّ على الخادم",
    },
    "InvalidRequest": {
        "en": "The request is invalid. Add ingredients or choose an image and try again.",
        "ar": "الطلب غير صالح. أضف مكونات أو اختر صورة ثم حاول مرة أخرى.",
    },
    "UnsupportedImage": {
        "en": "The image could not be read. Please upload a JPEG, PNG or WebP photo.",
        "ar": "تعذّرت قراءة الصورة. يرجى رفع صورة بصيغة JPEG أو PNG أو WebP.",
    },
    "QuotaExceeded": {
        "en": "You've exceeded the request quota. Please wait before trying again.",
        "ar": "لقد استنفدت حصتك من الطلبات. يرجى الانتظار قبل المحاولة مرة أخرى.",
    },
    "InvalidCredential": {
        "en": INVALID_CREDENTIAL_MESSAGE,
        "ar": "مشكلة في مفتاح API. تحقق من المفتاح في Google AI Studio وحدّث GEMINI_API_KEY ثم أعد النشر.",
    },
    "RequestTimeout": {
        "en": REQUEST_TIMEOUT_MESSAGE,
        "ar": "استغرق الطلب وقتاً طويلاً. جرّب صورة أصغر أو حاول مرة أخرى.",
    },
    "ResponseUnparseable": {
        "en": "The recipe could not be generated. Please try again.",
        "ar": "تعذّر إنشاء الوصفة. يرجى المحاولة مرة أخرى.",
    },
    "UpstreamFailure": {
        "en": "Sorry, an error occurred while generating the recipe.",
        "ar": "عذراً، حدث خطأ أثناء إنشاء الوصفة.",
    },
}

# Kinds whose own message is returned instead of the fixed text: request validation
# messages we wrote, and provider text passed through for upstream failures
_PASSTHROUGH_KINDS = ("InvalidRequest", "UpstreamFailure")


def provider_message(exc: BaseException) -> str:
    """Best-effort human message of a provider exception.

    google-genai APIError exposes .message; other errors may carry a JSON
    document ({"error": {"message": ...}}) as their string form.
    """
    message = getattr(exc, "message", None)
    text = message if isinstance(message, str) and message else str(exc)
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return text
    if isinstance(parsed, dict):
        inner = parsed.get("error", {})
        if isinstance(inner, dict) and isinstance(inner.get("message"), str):
            return inner["message"]
        if isinstance(parsed.get("message"), str):
            return parsed["message"]
    return text


def _structured_retry_delay(details: Any) -> Optional[float]:
    """Find google.rpc.RetryInfo.retryDelay ("12s") in an APIError response body."""
    if not isinstance(details, dict):
        return None
    error = details.get("error", details)
    entries = error.get("details") if isinstance(error, dict) else None
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if isinstance(entry, dict) and isinstance(entry.get("retryDelay"), str):
            match = _RETRY_DELAY_PATTERN.match(entry["retryDelay"])
            if match:
                return float(match.group(1))
    return None


def extract_retry_after(
    text: str,
    details: Any = None,
    default: int = DEFAULT_RETRY_AFTER_SECONDS,
) -> int:
    """Seconds a caller should wait before resubmitting after a quota failure.

    Uses the structured RetryInfo delay when present, otherwise a
    "retry in <n>s" fragment in the provider text (rounded up), otherwise default.

    Example:
        >>> extract_retry_after("Quota exceeded. Please retry in 12.5s.")
        13
    """
    seconds = _structured_retry_delay(details)
    if seconds is None:
        match = _RETRY_IN_PATTERN.search(text or "")
        if match:
            seconds = float(match.group(1))
    if seconds is None:
        return default
    return max(1, math.ceil(seconds))


def translate_provider_error(
    exc: BaseException,
    default_retry_after: int = DEFAULT_RETRY_AFTER_SECONDS,
) -> RecipePipelineError:
    """Map a raw provider (or transport) exception onto the error taxonomy.

    Args:
        exc: Exception raised by the Gemini SDK, httpx, or asyncio.
        default_retry_after: Retry hint when a quota failure names no delay.

    Returns:
        QuotaExceeded, InvalidCredential, RequestTimeout or UpstreamFailure.
    """
    if isinstance(exc, RecipePipelineError):
        return exc

    code = getattr(exc, "code", None)
    status = str(getattr(exc, "status", None) or "").upper()
    text = provider_message(exc)
    lowered = text.lower()

    if code == 429 or status == "RESOURCE_EXHAUSTED" or any(k in lowered for k in QUOTA_KEYWORDS):
        retry_after = extract_retry_after(text, getattr(exc, "details", None), default_retry_after)
        return QuotaExceeded(text, retry_after_seconds=retry_after)

    if code == 401 or status == "UNAUTHENTICATED" or any(k in lowered for k in CREDENTIAL_KEYWORDS):
        return InvalidCredential(INVALID_CREDENTIAL_MESSAGE)

    if (
        isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException))
        or code == 504
        or status == "DEADLINE_EXCEEDED"
        or any(k in lowered for k in TIMEOUT_KEYWORDS)
    ):
        return RequestTimeout(REQUEST_TIMEOUT_MESSAGE)

    return UpstreamFailure(text or exc.__class__.__name__)


def classify_error(
    exc: BaseException,
    default_retry_after: int = DEFAULT_RETRY_AFTER_SECONDS,
) -> ErrorReport:
    """Produce the terminal ErrorReport for any failure of a pipeline run."""
    error = translate_provider_error(exc, default_retry_after)
    localized = USER_MESSAGES[error.kind]

    if error.kind in _PASSTHROUGH_KINDS:
        message = error.message
    else:
        message = localized["en"]

    retry_after = error.retry_after_seconds if isinstance(error, QuotaExceeded) else None
    return ErrorReport(
        kind=error.kind,
        status_code=error.status_code,
        message=message,
        retry_after_seconds=retry_after,
        localized_message=dict(localized),
    )
