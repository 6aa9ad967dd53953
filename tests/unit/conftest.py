"""Shared fixtures for unit tests.

No test here talks to Gemini or blob storage: generation is replaced by
helpers.FakeGenerator and uploads by AsyncMock objects.
"""

import json

import pytest

from helpers import CHICKEN_RICE_RECIPE, TEST_API_KEY
from src.utils.config import Config


@pytest.fixture
def settings():
    """Config with a credential and the documented defaults."""
    config = Config()
    config.GEMINI_API_KEY = TEST_API_KEY
    config.GEMINI_MODEL = "gemini-3-flash-preview"
    config.MAX_IMAGE_EDGE = 800
    config.IMAGE_QUALITY = 82
    config.MAX_BODY_SIZE_MB = 10
    config.REQUEST_TIMEOUT_SECONDS = 60.0
    config.STRUCTURED_OUTPUT = True
    config.IMAGE_TRANSPORT = "inline"
    config.BLOB_UPLOAD_URL = None
    config.BLOB_READ_WRITE_TOKEN = None
    config.DEFAULT_CUISINE = "Middle Eastern"
    config.DEFAULT_RETRY_AFTER_SECONDS = 60
    return config


@pytest.fixture
def settings_without_key(settings):
    settings.GEMINI_API_KEY = ""
    return settings


@pytest.fixture
def recipe_json():
    return json.dumps(CHICKEN_RICE_RECIPE)
