"""Data models for the recipe generation pipeline.

Defines Pydantic models for the values that flow through one pipeline run:
IncomingRequest → ParsedForm → (NormalizedImage) → GenerationRequest → Recipe,
plus ErrorReport and HttpResponse for the terminal response.
All models use Pydantic v2. Recipe serializes with the camelCase field names
the web client expects (recipeName, prepTime, ...).
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class GenerationMode(str, Enum):
    """Which task the generation call performs."""

    ANALYZE_IMAGE = "analyze-image"
    FROM_INGREDIENTS = "from-ingredients"


class IncomingRequest(BaseModel):
    """Raw inbound HTTP request as received from the server or a serverless event."""

    model_config = ConfigDict(frozen=True)

    method: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    is_base64_encoded: bool = False

    @field_validator("headers", mode="before")
    @classmethod
    def lowercase_header_names(cls, headers: Optional[dict]) -> dict:
        """Header lookup is case-insensitive: store names lowercased."""
        if not headers:
            return {}
        return {str(name).lower(): str(value) for name, value in headers.items()}

    @field_validator("body", mode="before")
    @classmethod
    def encode_text_body(cls, body: Union[str, bytes, None]) -> bytes:
        if body is None:
            return b""
        if isinstance(body, str):
            return body.encode("utf-8")
        return body

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)


class ImageBlob(BaseModel):
    """Raw uploaded image bytes with the MIME type the client declared (or we sniffed)."""

    data: bytes
    mime_type: str = "image/jpeg"


class ParsedForm(BaseModel):
    """Normalized form fields from either a multipart or a JSON request body.

    Exactly one input mode must be present: an image (bytes or an https URL)
    or a non-empty ingredient list.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    image: Optional[ImageBlob] = None
    image_url: Optional[str] = None
    language: Literal["ar", "en"] = "en"
    cuisine_type: Annotated[str, Field(min_length=1, max_length=100)] = "Middle Eastern"
    ingredients: List[str] = Field(default_factory=list)

    @field_validator("language", mode="before")
    @classmethod
    def normalize_language(cls, language: Optional[str]) -> str:
        """Anything other than Arabic falls back to English."""
        if isinstance(language, str) and language.strip().lower() == "ar":
            return "ar"
        return "en"

    @field_validator("ingredients", mode="before")
    @classmethod
    def drop_blank_ingredients(cls, ingredients: Optional[list]) -> list:
        if not ingredients:
            return []
        return [item.strip() for item in ingredients if isinstance(item, str) and item.strip()]

    @model_validator(mode="after")
    def exactly_one_mode(self) -> "ParsedForm":
        """Either an image or an ingredient list, never both and never neither."""
        has_image = self.image is not None or bool(self.image_url)
        has_ingredients = bool(self.ingredients)
        if has_image and has_ingredients:
            raise ValueError("Provide either an image or an ingredients list, not both")
        if not has_image and not has_ingredients:
            raise ValueError("Either an image or a non-empty ingredients list is required")
        return self

    @property
    def mode(self) -> GenerationMode:
        if self.image is not None or self.image_url:
            return GenerationMode.ANALYZE_IMAGE
        return GenerationMode.FROM_INGREDIENTS


class NormalizedImage(BaseModel):
    """Image re-encoded to a bounded resolution and JPEG quality."""

    data: bytes
    mime_type: str = "image/jpeg"
    width: Annotated[int, Field(ge=1)]
    height: Annotated[int, Field(ge=1)]


class TextPart(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class InlineImagePart(BaseModel):
    kind: Literal["inline_image"] = "inline_image"
    data: bytes
    mime_type: str


class ImageReferencePart(BaseModel):
    kind: Literal["image_reference"] = "image_reference"
    url: str
    mime_type: str = "image/jpeg"


GenerationPart = Annotated[
    Union[TextPart, InlineImagePart, ImageReferencePart],
    Field(discriminator="kind"),
]


class GenerationRequest(BaseModel):
    """Everything the generation call needs: policy, ordered parts, optional output schema."""

    system_policy: Annotated[str, Field(min_length=1)]
    response_schema: Optional[dict] = None
    parts: Annotated[List[GenerationPart], Field(min_length=1)]


NonEmptyStr = Annotated[str, Field(min_length=1)]


class Recipe(BaseModel):
    """A single generated recipe.

    Required: recipeName, origin, cuisineType, prepTime, cookTime, difficulty,
    ingredients, instructions (all non-empty). chefTips and detectedIngredients
    are optional; detectedIngredients is only kept for image analysis.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    recipe_name: NonEmptyStr
    origin: NonEmptyStr
    cuisine_type: NonEmptyStr
    prep_time: NonEmptyStr
    cook_time: NonEmptyStr
    difficulty: NonEmptyStr
    ingredients: Annotated[List[NonEmptyStr], Field(min_length=1)]
    instructions: Annotated[List[NonEmptyStr], Field(min_length=1)]
    chef_tips: Optional[str] = None
    detected_ingredients: Optional[List[str]] = None

    @field_validator("ingredients", "instructions", "detected_ingredients", mode="before")
    @classmethod
    def drop_blank_items(cls, items):
        """Strip list entries and drop blank ones before the min_length check."""
        if not isinstance(items, list):
            return items
        cleaned = []
        for item in items:
            if isinstance(item, str):
                item = item.strip()
                if not item:
                    continue
            cleaned.append(item)
        return cleaned

    @field_validator("chef_tips", mode="before")
    @classmethod
    def blank_tips_to_none(cls, tips):
        if isinstance(tips, str) and not tips.strip():
            return None
        return tips

    def to_wire(self) -> dict:
        """Serialize with camelCase names, omitting absent optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


ErrorKind = Literal[
    "MissingCredential",
    "InvalidRequest",
    "UnsupportedImage",
    "QuotaExceeded",
    "InvalidCredential",
    "RequestTimeout",
    "ResponseUnparseable",
    "UpstreamFailure",
]


class ErrorReport(BaseModel):
    """Classified terminal failure of one pipeline run."""

    kind: ErrorKind
    message: str
    status_code: int = 500
    retry_after_seconds: Optional[int] = None
    localized_message: Optional[dict[str, str]] = None


class HttpResponse(BaseModel):
    """Transport-neutral HTTP response produced by the request handler."""

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
