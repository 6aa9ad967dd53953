"""Repair and validation of generated text into a Recipe.

Two parsing attempts, nothing more:
1. json.loads on the text as returned
2. strip surrounding code fences (```json ... ```) and whitespace, parse again

A parsed value that is not an object, or lacks any required Recipe field, is
still a repair failure. The raw text travels on ResponseUnparseable for logs
and is never shown to the end user.
"""

import json
import re
from typing import Any, Optional

from pydantic import ValidationError

from src.errors.errors import ResponseUnparseable
from src.models.models import GenerationMode, Recipe
from src.utils.logger import logger

_LEADING_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\r?\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove one pair of surrounding markdown code-fence markers and outer whitespace.

    Example:
        >>> strip_code_fences('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
    """
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned, count=1)
    cleaned = _TRAILING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def _parse_json(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None


def parse_recipe_response(text: Optional[str], mode: GenerationMode) -> Recipe:
    """Turn raw generated text into a validated Recipe.

    Args:
        text: Raw text returned by the generation call.
        mode: Generation mode; detectedIngredients is dropped outside image mode.

    Returns:
        Recipe with every required field present and non-empty.

    Raises:
        ResponseUnparseable: If the text is not (fenced) JSON or fails Recipe validation.
    """
    raw = text or ""

    parsed = _parse_json(raw)
    if parsed is None:
        logger.debug("Direct JSON parse failed, retrying without code fences")
        parsed = _parse_json(strip_code_fences(raw))

    if parsed is None:
        raise ResponseUnparseable("Generated text is not valid JSON", raw_text=raw)
    if not isinstance(parsed, dict):
        raise ResponseUnparseable(
            f"Generated JSON is a {type(parsed).__name__}, expected an object", raw_text=raw
        )

    if mode != GenerationMode.ANALYZE_IMAGE:
        parsed.pop("detectedIngredients", None)

    try:
        return Recipe.model_validate(parsed)
    except ValidationError as e:
        fields = sorted({".".join(str(loc) for loc in err["loc"]) for err in e.errors()})
        raise ResponseUnparseable(
            f"Generated recipe is missing or has invalid fields: {', '.join(fields)}", raw_text=raw
        ) from e
