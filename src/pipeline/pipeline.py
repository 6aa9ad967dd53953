"""Request-to-recipe pipeline.

One run per inbound request, stages in order:
1. credential check (MissingCredential before anything else happens)
2. ingest_request: body → ParsedForm
3. normalize_image (image bytes only, in a worker thread)
4. optional blob upload when the reference transport is configured
5. compose_generation_request
6. generator.generate: the single Gemini call
7. parse_recipe_response: repair + validation

Every stage raises typed errors; nothing here catches them. The handler
(src/pipeline/handler.py) classifies whatever escapes.
"""

import asyncio
import logging
from typing import Optional, Union

from src.errors.errors import MissingCredential
from src.generation.repair import parse_recipe_response
from src.images.normalizer import normalize_image
from src.ingest.ingestor import ingest_request
from src.models.models import GenerationMode, IncomingRequest, Recipe
from src.prompts.prompts import compose_generation_request
from src.utils.config import Config
from src.utils.logger import logger as default_logger


async def run_pipeline(
    incoming: IncomingRequest,
    settings: Config,
    generator,
    uploader=None,
    log: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
) -> Recipe:
    """Run one request through every pipeline stage.

    Args:
        incoming: Raw inbound request.
        settings: Process configuration built at startup.
        generator: Object with `async generate(GenerationRequest) -> str`
            (GenerationClient in production). None when no credential is configured.
        uploader: Object with `async upload(bytes, mime_type) -> url` for the
            reference image transport (BlobStorageClient), or None for inline images.
        log: Logger (usually a request-scoped adapter).

    Returns:
        Validated Recipe.

    Raises:
        RecipePipelineError: Any classified stage failure.
    """
    log = log or default_logger

    if not settings.has_credential or generator is None:
        raise MissingCredential()

    form = ingest_request(incoming, settings)
    log.info(
        f"Pipeline start: mode={form.mode.value}, language={form.language}, cuisine={form.cuisine_type}"
    )

    image = None
    image_url = form.image_url
    if form.image is not None:
        image = await asyncio.to_thread(
            normalize_image,
            form.image.data,
            settings.MAX_IMAGE_EDGE,
            settings.IMAGE_QUALITY,
        )
        log.debug(f"Normalized image {image.width}x{image.height} ({len(image.data)} bytes)")
        if uploader is not None:
            image_url = await uploader.upload(image.data, image.mime_type)
            image = None

    request = compose_generation_request(
        form,
        structured_output=settings.STRUCTURED_OUTPUT,
        image=image,
        image_url=image_url,
    )

    text = await generator.generate(request)
    recipe = parse_recipe_response(text, form.mode)

    if form.mode == GenerationMode.ANALYZE_IMAGE:
        log.info(f"Recipe '{recipe.recipe_name}' generated, detected: {recipe.detected_ingredients or []}")
    else:
        log.info(f"Recipe '{recipe.recipe_name}' generated from {len(form.ingredients)} ingredients")
    return recipe
