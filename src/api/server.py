"""FastAPI application factory for the recipe generation service.

Routes:
- /api/generate-recipe  (ingredient list, JSON or multipart)
- /api/analyze-image    (image upload, multipart or JSON with data URL / https URL)
- /api/health

Both recipe routes are served by the same pipeline: the mode is inferred from
the payload, not the path. Every method is routed to the handler so OPTIONS
preflights and the 405 contract come from one place.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from src.generation.client import GenerationClient
from src.models.models import IncomingRequest
from src.pipeline.handler import CORS_HEADERS, handle_request
from src.storage.blob import BlobStorageClient
from src.utils.config import Config
from src.utils.logger import logger

RECIPE_ROUTES = ("/api/generate-recipe", "/api/analyze-image")
ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


async def read_body(request: Request, limit: int) -> bytes:
    """Buffer the request body, stopping one byte past `limit`.

    An oversized body is handed on truncated to limit + 1 bytes; the ingestor
    rejects it with InvalidRequest, so the full payload is never held in memory.
    """
    chunks = []
    received = 0
    async for chunk in request.stream():
        chunks.append(chunk)
        received += len(chunk)
        if received > limit:
            break
    return b"".join(chunks)[: limit + 1]


def create_app(
    settings: Config,
    generator=None,
    uploader=None,
) -> FastAPI:
    """Build the FastAPI app around one Config and its long-lived clients.

    Args:
        settings: Validated configuration.
        generator: Generation adapter; built from settings when a credential is set.
        uploader: Blob storage adapter; built from settings for the reference transport.

    Returns:
        Configured FastAPI application.
    """
    logger.info("Step 1/3: Building generation client...")
    if generator is None and settings.has_credential:
        generator = GenerationClient.from_config(settings)
    if generator is not None:
        logger.info(f"✓ Generation client ready (model={settings.GEMINI_MODEL})")
    else:
        logger.warning("GEMINI_API_KEY is not set: recipe requests will fail with MissingCredential")

    logger.info("Step 2/3: Configuring image transport...")
    if uploader is None:
        uploader = BlobStorageClient.from_config(settings)
    logger.info(f"✓ Image transport: {'reference' if uploader is not None else 'inline'}")

    logger.info("Step 3/3: Registering routes...")
    app = FastAPI(
        title="East & West Kitchen",
        description="Recipe generation from an ingredient list or a food photo",
    )
    app.state.settings = settings
    app.state.generator = generator
    app.state.uploader = uploader

    async def recipe_endpoint(request: Request) -> Response:
        incoming = IncomingRequest(
            method=request.method,
            headers=dict(request.headers),
            body=await read_body(request, settings.max_body_bytes),
        )
        result = await handle_request(
            incoming,
            settings,
            app.state.generator,
            app.state.uploader,
        )
        return Response(
            content=result.body,
            status_code=result.status_code,
            headers=result.headers,
            media_type="application/json",
        )

    for path in RECIPE_ROUTES:
        app.add_api_route(path, recipe_endpoint, methods=ALL_METHODS)

    @app.get("/api/health")
    async def health() -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "model": settings.GEMINI_MODEL,
                "credentialConfigured": settings.has_credential,
                "imageTransport": settings.IMAGE_TRANSPORT,
            },
            headers=CORS_HEADERS,
        )

    logger.info(f"✓ Routes registered: {', '.join(RECIPE_ROUTES)}, /api/health")
    return app

