"""Gemini adapter: one GenerationRequest → generated text.

GenerationClient wraps a single google-genai Client built once at startup.
Each generate() call makes exactly ONE generate_content request:
- no retry loop (retrying after QuotaExceeded is the caller's decision)
- bounded by asyncio.wait_for so the call is cancelled at the timeout budget
- provider failures are translated into the pipeline error taxonomy here,
  at the adapter boundary, so nothing downstream depends on SDK error types

The API key is never logged, and is scrubbed from any provider text that is
passed through.
"""

import asyncio
import time
from typing import Optional

from google import genai
from google.genai import types

from src.errors.classifier import (
    DEFAULT_RETRY_AFTER_SECONDS,
    REQUEST_TIMEOUT_MESSAGE,
    translate_provider_error,
)
from src.errors.errors import MissingCredential, RecipePipelineError, RequestTimeout
from src.models.models import GenerationRequest, ImageReferencePart, InlineImagePart, TextPart
from src.utils.logger import logger


class GenerationClient:
    """Single-call adapter around the Gemini generate_content API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-3-flash-preview",
        timeout_seconds: float = 60.0,
        temperature: float = 0.4,
        max_output_tokens: int = 4096,
        default_retry_after: int = DEFAULT_RETRY_AFTER_SECONDS,
        client: Optional[genai.Client] = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            api_key: Gemini API key.
            model: Gemini model id.
            timeout_seconds: Wall-clock budget for one generation call.
            temperature: Sampling temperature.
            max_output_tokens: Output token cap.
            default_retry_after: Retry hint for quota failures that name no delay.
            client: Pre-built genai.Client (tests); built from api_key when omitted.

        Raises:
            MissingCredential: If api_key is None or empty.
        """
        if not api_key or not api_key.strip():
            raise MissingCredential()

        self._api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.default_retry_after = default_retry_after
        self._client = client or genai.Client(api_key=api_key)

    @classmethod
    def from_config(cls, config) -> "GenerationClient":
        """Build the adapter from a Config instance."""
        return cls(
            api_key=config.GEMINI_API_KEY,
            model=config.GEMINI_MODEL,
            timeout_seconds=config.REQUEST_TIMEOUT_SECONDS,
            temperature=config.TEMPERATURE,
            max_output_tokens=config.MAX_OUTPUT_TOKENS,
            default_retry_after=config.DEFAULT_RETRY_AFTER_SECONDS,
        )

    @staticmethod
    def to_parts(request: GenerationRequest) -> list[types.Part]:
        """Convert our transport-neutral parts to google-genai Parts (order preserved)."""
        parts = []
        for part in request.parts:
            if isinstance(part, TextPart):
                parts.append(types.Part.from_text(text=part.text))
            elif isinstance(part, InlineImagePart):
                parts.append(types.Part.from_bytes(data=part.data, mime_type=part.mime_type))
            elif isinstance(part, ImageReferencePart):
                parts.append(types.Part.from_uri(file_uri=part.url, mime_type=part.mime_type))
        return parts

    def build_config(self, request: GenerationRequest) -> types.GenerateContentConfig:
        """Generation config: system policy, sampling limits and (optionally) the output schema."""
        config_kwargs = {
            "system_instruction": request.system_policy,
            "temperature": self.temperature,
            "max_output_tokens": self.max_output_tokens,
        }
        if request.response_schema is not None:
            config_kwargs["response_mime_type"] = "application/json"
            config_kwargs["response_schema"] = request.response_schema
        return types.GenerateContentConfig(**config_kwargs)

    def _scrub(self, error: RecipePipelineError) -> RecipePipelineError:
        if self._api_key in error.message:
            error.message = error.message.replace(self._api_key, "***")
            error.args = (error.message,)
        return error

    async def generate(self, request: GenerationRequest) -> str:
        """Run the single generation call for one pipeline run.

        Args:
            request: Composed GenerationRequest.

        Returns:
            Raw generated text (may be empty; ResponseRepair decides what it is worth).

        Raises:
            QuotaExceeded: Rate-limit/quota failure, with retry_after_seconds.
            InvalidCredential: Provider rejected the API key.
            RequestTimeout: Call exceeded timeout_seconds or provider reported a timeout.
            UpstreamFailure: Any other provider failure.
        """
        contents = [types.Content(role="user", parts=self.to_parts(request))]
        config = self.build_config(request)

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Gemini call exceeded {self.timeout_seconds:.0f}s budget, cancelled")
            raise RequestTimeout(REQUEST_TIMEOUT_MESSAGE) from e
        except Exception as e:
            error = self._scrub(translate_provider_error(e, self.default_retry_after))
            logger.warning(f"Gemini call failed ({error.kind}): {error.message}")
            raise error from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        text = response.text or ""
        logger.info(f"Gemini call completed in {elapsed_ms}ms ({len(text)} chars, model={self.model})")
        return text
