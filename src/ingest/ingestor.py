"""Request ingestion: raw HTTP body → ParsedForm.

Handles the two request encodings the web client sends:

1. multipart/form-data (image upload form):
   - Decoded with python-multipart's streaming MultipartParser callbacks
   - Only the first non-empty file under the field name "image" is buffered;
     any further files (same or other field names) are drained and discarded
   - Scalar fields "language" and "cuisineType": the LAST value sent wins
   - Repeated "ingredients" fields are collected (values may be comma-separated)

2. application/json:
   - {"ingredients": [...], "cuisineType"?, "language"?} for ingredient mode
   - {"image": "<data URL | base64 | https URL>", ...} for image mode
     ("imageUrl" is accepted as an alias of "image")

Bodies flagged as base64-transported (serverless platforms do this for binary
payloads) are decoded before either parser sees them. Everything is buffered
in memory; nothing is written to disk.
"""

import base64
import binascii
import json
from typing import Optional

import filetype
from pydantic import ValidationError
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from src.errors.errors import InvalidRequest
from src.models.models import ImageBlob, IncomingRequest, ParsedForm
from src.utils.config import Config
from src.utils.logger import logger

IMAGE_FIELD = "image"
SCALAR_FIELDS = ("language", "cuisineType")
LIST_FIELDS = ("ingredients",)
DEFAULT_IMAGE_MIME = "image/jpeg"


def sniff_image_mime(data: bytes, declared: Optional[str] = None) -> str:
    """Return the declared image MIME type, or detect it from magic bytes.

    Generic declarations (missing, application/octet-stream) are replaced by
    what filetype detects; falls back to image/jpeg.
    """
    if declared and declared.startswith("image/"):
        return declared
    guessed = filetype.guess_mime(data) if data else None
    return guessed or DEFAULT_IMAGE_MIME


class _MultipartCollector:
    """Callback sink for MultipartParser.

    Keeps per-part header state, buffers at most one image file plus the small
    text fields, and ignores the bytes of every other part.
    """

    def __init__(self) -> None:
        self.image: Optional[ImageBlob] = None
        self.scalars: dict[str, str] = {}
        self.ingredients: list[str] = []
        self.ended = False

        self._header_field = bytearray()
        self._header_value = bytearray()
        self._headers: dict[str, bytes] = {}
        self._name = ""
        self._is_file = False
        self._collecting = False
        self._buffer = bytearray()

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_end": self.on_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}
        self._name = ""
        self._is_file = False
        self._collecting = False
        self._buffer = bytearray()

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[self._header_field.decode("latin-1").lower()] = bytes(self._header_value)
        self._header_field = bytearray()
        self._header_value = bytearray()

    def on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get("content-disposition", b""))
        self._name = options.get(b"name", b"").decode("utf-8", errors="replace")
        self._is_file = b"filename" in options

        if self._is_file:
            # First image wins; later files are drained without buffering
            self._collecting = self._name == IMAGE_FIELD and self.image is None
        else:
            self._collecting = self._name in SCALAR_FIELDS or self._name in LIST_FIELDS

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._collecting:
            self._buffer += data[start:end]

    def on_part_end(self) -> None:
        if not self._collecting:
            if self._is_file:
                logger.debug(f"Discarded extra file part '{self._name}'")
            return

        if self._is_file:
            # Browsers send an empty file part when no file was chosen
            if self._buffer:
                declared = self._headers.get("content-type", b"").decode("latin-1").strip().lower()
                data = bytes(self._buffer)
                self.image = ImageBlob(data=data, mime_type=sniff_image_mime(data, declared))
            return

        value = self._buffer.decode("utf-8", errors="replace")
        if self._name in LIST_FIELDS:
            self.ingredients.extend(item.strip() for item in value.split(",") if item.strip())
        else:
            self.scalars[self._name] = value

    def on_end(self) -> None:
        self.ended = True


def _decode_transport(incoming: IncomingRequest) -> bytes:
    if not incoming.is_base64_encoded:
        return incoming.body
    try:
        return base64.b64decode(incoming.body, validate=False)
    except (binascii.Error, ValueError) as e:
        raise InvalidRequest("Request body is not valid base64") from e


def _build_form(**fields) -> ParsedForm:
    try:
        return ParsedForm(**fields)
    except ValidationError as e:
        messages = "; ".join(err["msg"].removeprefix("Value error, ") for err in e.errors())
        raise InvalidRequest(messages) from e


def parse_multipart(body: bytes, content_type: str, default_cuisine: str) -> ParsedForm:
    """Decode a multipart/form-data body into a ParsedForm.

    Raises:
        InvalidRequest: Missing boundary, malformed or truncated body, or no image
            and no ingredients.
    """
    _, options = parse_options_header(content_type)
    boundary = options.get(b"boundary")
    if not boundary:
        raise InvalidRequest("Missing multipart boundary")

    collector = _MultipartCollector()
    parser = MultipartParser(boundary, callbacks=collector.callbacks())
    try:
        parser.write(body)
        parser.finalize()
    except MultipartParseError as e:
        raise InvalidRequest(f"Malformed multipart body: {e}") from e

    if not collector.ended:
        raise InvalidRequest("Malformed multipart body: unexpected end of data")

    if collector.image is None and not collector.ingredients:
        raise InvalidRequest("No image uploaded")

    return _build_form(
        image=collector.image,
        language=collector.scalars.get("language"),
        cuisine_type=collector.scalars.get("cuisineType", "").strip() or default_cuisine,
        ingredients=collector.ingredients,
    )


def decode_image_field(value: str) -> tuple[Optional[ImageBlob], Optional[str]]:
    """Interpret the JSON "image" value.

    Returns:
        (ImageBlob, None) for data URLs and bare base64 strings,
        (None, url) for https URLs the generation service fetches itself.

    Raises:
        InvalidRequest: Undecodable base64 or a non-https URL.
    """
    value = value.strip()
    if value.startswith("https://"):
        return None, value
    if value.startswith("http://"):
        raise InvalidRequest("Image URLs must use https://")

    declared = None
    payload = value
    if value.startswith("data:"):
        header, sep, payload = value.partition(",")
        if not sep or ";base64" not in header:
            raise InvalidRequest("Image data URL must be base64-encoded")
        declared = header[len("data:"):].split(";", 1)[0].lower() or None

    try:
        data = base64.b64decode(payload, validate=declared is None)
    except (binascii.Error, ValueError) as e:
        raise InvalidRequest("Image must be a data URL, an https URL, or base64 data") from e
    if not data:
        raise InvalidRequest("Image data is empty")
    return ImageBlob(data=data, mime_type=sniff_image_mime(data, declared)), None


def _optional_str(body: dict, key: str) -> Optional[str]:
    value = body.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequest(f"{key} must be a string")
    return value


def parse_json(body: bytes, default_cuisine: str) -> ParsedForm:
    """Decode an application/json body into a ParsedForm.

    Raises:
        InvalidRequest: Malformed JSON, wrong field types, or invalid mode combination.
    """
    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidRequest("Malformed JSON body") from e
    if not isinstance(payload, dict):
        raise InvalidRequest("JSON body must be an object")

    ingredients = payload.get("ingredients")
    if ingredients is not None:
        if not isinstance(ingredients, list) or not all(isinstance(item, str) for item in ingredients):
            raise InvalidRequest("ingredients must be an array of strings")

    image = image_url = None
    image_value = _optional_str(payload, "image") or _optional_str(payload, "imageUrl")
    if image_value and image_value.strip():
        image, image_url = decode_image_field(image_value)

    return _build_form(
        image=image,
        image_url=image_url,
        language=_optional_str(payload, "language"),
        cuisine_type=(_optional_str(payload, "cuisineType") or "").strip() or default_cuisine,
        ingredients=ingredients or [],
    )


def ingest_request(incoming: IncomingRequest, settings: Config) -> ParsedForm:
    """Decode an inbound request into a ParsedForm.

    Args:
        incoming: Raw request (method, headers, body, base64 flag).
        settings: Process configuration (body size bound, default cuisine).

    Returns:
        ParsedForm with exactly one input mode present.

    Raises:
        InvalidRequest: Oversized body, unsupported content type, or any decode failure.
    """
    if len(incoming.body) > settings.max_body_bytes:
        raise InvalidRequest(f"Request body too large (max {settings.MAX_BODY_SIZE_MB}MB)")

    body = _decode_transport(incoming)
    if len(body) > settings.max_body_bytes:
        raise InvalidRequest(f"Request body too large (max {settings.MAX_BODY_SIZE_MB}MB)")

    content_type = incoming.header("content-type")
    media_type = parse_options_header(content_type)[0].decode("latin-1").lower()

    if media_type == "multipart/form-data":
        form = parse_multipart(body, content_type, settings.DEFAULT_CUISINE)
    elif media_type == "application/json":
        form = parse_json(body, settings.DEFAULT_CUISINE)
    else:
        raise InvalidRequest(f"Unsupported content type: {media_type or 'none'}")

    logger.debug(
        f"Ingested {media_type} request: mode={form.mode.value}, language={form.language}, "
        f"cuisine={form.cuisine_type}, ingredients={len(form.ingredients)}"
    )
    return form
