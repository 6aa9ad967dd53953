"""Unit tests for the pipeline and the HTTP handler contract.

End-to-end scenarios run through handle_request with a FakeGenerator in place
of Gemini:
- chicken/rice ingredient request → 200 recipe without detectedIngredients
- multipart upload without an image → 400 "No image uploaded"
- provider quota error "retry in 5s" → 429 with retryAfter 5 and Retry-After header
- fenced JSON output → repaired, 200
- missing credential → 500 before any generation call
"""

import base64
import json
from unittest.mock import AsyncMock

import pytest

from helpers import CHICKEN_RICE_RECIPE, FakeGenerator, build_multipart, make_image_bytes
from src.models.models import IncomingRequest, InlineImagePart, ImageReferencePart
from src.errors.classifier import classify_error
from src.errors.errors import (
    InvalidCredential,
    InvalidRequest,
    MissingCredential,
    QuotaExceeded,
    RequestTimeout,
    ResponseUnparseable,
    UnsupportedImage,
    UpstreamFailure,
)
from src.pipeline.handler import CORS_HEADERS, handle_event, handle_request, to_http_response
from src.pipeline.pipeline import run_pipeline


def _json_post(payload) -> IncomingRequest:
    return IncomingRequest(
        method="POST",
        headers={"Content-Type": "application/json"},
        body=json.dumps(payload),
    )


def _multipart_post(fields=(), files=()) -> IncomingRequest:
    body, content_type = build_multipart(fields=fields, files=files)
    return IncomingRequest(method="POST", headers={"Content-Type": content_type}, body=body)


class QuotaError(Exception):
    """Provider error shaped like google-genai's APIError."""

    code = 429
    status = "RESOURCE_EXHAUSTED"

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class TestRunPipeline:
    """Tests for run_pipeline stage wiring."""

    @pytest.mark.asyncio
    async def test_missing_credential_checked_first(self, settings_without_key):
        generator = FakeGenerator(text="{}")
        # Body is invalid too: the credential check must win
        with pytest.raises(MissingCredential):
            await run_pipeline(IncomingRequest(method="POST"), settings_without_key, generator)
        assert generator.requests == []

    @pytest.mark.asyncio
    async def test_no_generator_is_missing_credential(self, settings):
        with pytest.raises(MissingCredential):
            await run_pipeline(_json_post({"ingredients": ["rice"]}), settings, None)

    @pytest.mark.asyncio
    async def test_invalid_request_makes_no_call(self, settings, recipe_json):
        generator = FakeGenerator(text=recipe_json)
        with pytest.raises(InvalidRequest):
            await run_pipeline(_json_post({"ingredients": []}), settings, generator)
        assert generator.requests == []

    @pytest.mark.asyncio
    async def test_image_is_normalized_and_sent_inline(self, settings, recipe_json):
        generator = FakeGenerator(text=recipe_json)
        incoming = _multipart_post(files=[("image", "big.png", "image/png", make_image_bytes(1600, 1200))])

        await run_pipeline(incoming, settings, generator)

        (request,) = generator.requests
        image_part = request.parts[1]
        assert isinstance(image_part, InlineImagePart)
        assert image_part.mime_type == "image/jpeg"
        assert image_part.data[:2] == b"\xff\xd8"

    @pytest.mark.asyncio
    async def test_reference_transport_uploads_normalized_image(self, settings, recipe_json):
        generator = FakeGenerator(text=recipe_json)
        uploader = AsyncMock()
        uploader.upload.return_value = "https://cdn.example.com/uploads/a.jpg"
        incoming = _multipart_post(files=[("image", "dish.png", "image/png", make_image_bytes())])

        await run_pipeline(incoming, settings, generator, uploader=uploader)

        uploader.upload.assert_awaited_once()
        data, mime_type = uploader.upload.call_args.args
        assert mime_type == "image/jpeg"
        image_part = generator.requests[0].parts[1]
        assert isinstance(image_part, ImageReferencePart)
        assert image_part.url == "https://cdn.example.com/uploads/a.jpg"

    @pytest.mark.asyncio
    async def test_remote_image_url_passed_by_reference(self, settings, recipe_json):
        generator = FakeGenerator(text=recipe_json)
        await run_pipeline(_json_post({"image": "https://example.com/dish.jpg"}), settings, generator)
        assert generator.requests[0].parts[1].url == "https://example.com/dish.jpg"


class TestHandleRequest:
    """Tests for the HTTP contract of handle_request."""

    @pytest.mark.asyncio
    async def test_chicken_rice_recipe(self, settings, recipe_json):
        generator = FakeGenerator(text=recipe_json)
        response = await handle_request(
            _json_post({"ingredients": ["chicken", "rice"], "language": "en"}), settings, generator
        )

        assert response.status_code == 200
        body = json.loads(response.body)
        assert body["recipeName"] == "Chicken Kabsa"
        assert "detectedIngredients" not in body
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert response.headers["Content-Type"] == "application/json"
        assert "chicken, rice" in generator.requests[0].parts[0].text

    @pytest.mark.asyncio
    async def test_image_analysis_keeps_detected_ingredients(self, settings):
        payload = dict(CHICKEN_RICE_RECIPE, detectedIngredients=["chicken", "rice"])
        generator = FakeGenerator(text=json.dumps(payload))
        incoming = _multipart_post(
            fields=[("language", "ar")],
            files=[("image", "dish.png", "image/png", make_image_bytes())],
        )

        response = await handle_request(incoming, settings, generator)

        assert response.status_code == 200
        assert json.loads(response.body)["detectedIngredients"] == ["chicken", "rice"]
        assert "Arabic" in generator.requests[0].system_policy

    @pytest.mark.asyncio
    async def test_multipart_without_image(self, settings, recipe_json):
        generator = FakeGenerator(text=recipe_json)
        response = await handle_request(_multipart_post(fields=[("language", "en")]), settings, generator)

        assert response.status_code == 400
        assert json.loads(response.body) == {"error": "No image uploaded", "code": "InvalidRequest"}
        assert generator.requests == []

    @pytest.mark.asyncio
    async def test_undecodable_image(self, settings, recipe_json):
        generator = FakeGenerator(text=recipe_json)
        incoming = _multipart_post(files=[("image", "x.jpg", "image/jpeg", b"not really a jpeg")])

        response = await handle_request(incoming, settings, generator)

        assert response.status_code == 400
        assert json.loads(response.body)["code"] == "UnsupportedImage"
        assert generator.requests == []

    @pytest.mark.asyncio
    async def test_quota_exceeded(self, settings):
        generator = FakeGenerator(error=QuotaError("Quota exceeded for metric. Please retry in 5s."))
        response = await handle_request(_json_post({"ingredients": ["rice"]}), settings, generator)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "5"
        body = json.loads(response.body)
        assert body["error"] == "QUOTA_EXCEEDED"
        assert body["retryAfter"] == 5
        assert body["message"] == "You've exceeded the request quota. Please wait before trying again."
        assert set(body["userMessage"]) == {"ar", "en"}

    @pytest.mark.asyncio
    async def test_fenced_json_is_repaired(self, settings):
        text = "```json\n" + json.dumps(CHICKEN_RICE_RECIPE) + "\n```"
        response = await handle_request(_json_post({"ingredients": ["rice"]}), settings, FakeGenerator(text=text))

        assert response.status_code == 200
        assert json.loads(response.body)["recipeName"] == "Chicken Kabsa"

    @pytest.mark.asyncio
    async def test_unparseable_output(self, settings):
        generator = FakeGenerator(text="I'd love to help, here's a recipe: rice and chicken!")
        response = await handle_request(_json_post({"ingredients": ["rice"]}), settings, generator)

        assert response.status_code == 500
        body = json.loads(response.body)
        assert body["code"] == "ResponseUnparseable"
        assert "I'd love to help" not in response.body

    @pytest.mark.asyncio
    async def test_missing_credential(self, settings_without_key, recipe_json):
        generator = FakeGenerator(text=recipe_json)
        response = await handle_request(_json_post({"ingredients": ["rice"]}), settings_without_key, generator)

        assert response.status_code == 500
        assert json.loads(response.body) == {"error": "GEMINI_API_KEY is not set", "code": "MissingCredential"}
        assert generator.requests == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_upstream_failure(self, settings):
        generator = FakeGenerator(error=RuntimeError("model overloaded"))
        response = await handle_request(_json_post({"ingredients": ["rice"]}), settings, generator)

        assert response.status_code == 500
        assert json.loads(response.body) == {"error": "model overloaded", "code": "UpstreamFailure"}

    @pytest.mark.asyncio
    async def test_options_preflight(self, settings):
        response = await handle_request(IncomingRequest(method="OPTIONS"), settings, None)
        assert response.status_code == 204
        assert response.body == ""
        assert response.headers["Access-Control-Allow-Methods"] == "POST, OPTIONS"

    @pytest.mark.asyncio
    async def test_get_not_allowed(self, settings):
        response = await handle_request(IncomingRequest(method="GET"), settings, None)
        assert response.status_code == 405
        assert json.loads(response.body) == {"error": "Method not allowed. Use POST."}
        assert response.headers == CORS_HEADERS


class TestHandleEvent:
    """Tests for the serverless event adapter."""

    @pytest.mark.asyncio
    async def test_base64_multipart_event(self, settings):
        payload = dict(CHICKEN_RICE_RECIPE, detectedIngredients=["tomato"])
        body, content_type = build_multipart(files=[("image", "dish.png", "image/png", make_image_bytes())])
        event = {
            "httpMethod": "POST",
            "headers": {"Content-Type": content_type},
            "body": base64.b64encode(body).decode("ascii"),
            "isBase64Encoded": True,
        }

        result = await handle_event(event, settings, FakeGenerator(text=json.dumps(payload)))

        assert result["statusCode"] == 200
        assert json.loads(result["body"])["detectedIngredients"] == ["tomato"]
        assert result["headers"]["Access-Control-Allow-Origin"] == "*"

    @pytest.mark.asyncio
    async def test_json_event(self, settings, recipe_json):
        event = {
            "httpMethod": "POST",
            "headers": {"content-type": "application/json"},
            "body": json.dumps({"ingredients": ["chicken", "rice"]}),
        }
        result = await handle_event(event, settings, FakeGenerator(text=recipe_json))
        assert result["statusCode"] == 200

    @pytest.mark.asyncio
    async def test_options_event(self, settings):
        result = await handle_event({"httpMethod": "OPTIONS"}, settings, None)
        assert result == {"statusCode": 204, "headers": CORS_HEADERS, "body": ""}


class TestToHttpResponse:
    """Rendered status codes for every error kind."""

    @pytest.mark.parametrize(
        "exc,status_code",
        [
            (MissingCredential(), 500),
            (InvalidRequest("bad"), 400),
            (UnsupportedImage("bad image"), 400),
            (QuotaExceeded("quota", retry_after_seconds=9), 429),
            (InvalidCredential("key"), 500),
            (RequestTimeout("slow"), 500),
            (ResponseUnparseable("bad json"), 500),
            (UpstreamFailure("boom"), 500),
        ],
    )
    def test_status_code(self, exc, status_code):
        response = to_http_response(classify_error(exc))
        assert response.status_code == status_code
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_quota_body_and_header(self):
        response = to_http_response(classify_error(QuotaExceeded("quota", retry_after_seconds=9)))
        assert response.headers["Retry-After"] == "9"
        assert json.loads(response.body)["retryAfter"] == 9
