"""Pytest configuration and fixtures for integration tests.

Ensures environment variables are loaded and skips the live Gemini tests
when no API key is configured.
"""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv


def pytest_configure(config):
    """Load .env before collection so the key check below sees it."""
    env_path = Path(__file__).parent.parent.parent / ".env"
    load_dotenv(env_path)

    # Inline transport keeps the live tests independent of blob storage
    os.environ["IMAGE_TRANSPORT"] = "inline"

    print("\n" + "=" * 70)
    print("Note: These tests call the live Gemini API and require GEMINI_API_KEY")
    print(f"Environment loaded from: {env_path}")
    print("=" * 70 + "\n")


@pytest.fixture(scope="session", autouse=True)
def check_api_keys():
    """Skip every integration test when GEMINI_API_KEY is not set."""
    if not os.getenv("GEMINI_API_KEY"):
        pytest.skip(
            "Integration tests skipped. Missing API key: GEMINI_API_KEY. Please set it in your .env file.",
            allow_module_level=True,
        )
