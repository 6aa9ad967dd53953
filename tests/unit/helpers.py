"""Test helpers shared by the unit test modules (fake generator, image and multipart builders)."""

from io import BytesIO
from typing import Optional

from PIL import Image

TEST_API_KEY = "test-gemini-key-123"

CHICKEN_RICE_RECIPE = {
    "recipeName": "Chicken Kabsa",
    "origin": "Saudi Arabia",
    "cuisineType": "Middle Eastern",
    "prepTime": "20 minutes",
    "cookTime": "60 minutes",
    "difficulty": "Medium",
    "ingredients": ["1 whole chicken, cut into pieces", "2 cups basmati rice", "1 onion"],
    "instructions": ["Brown the chicken.", "Add spices and water.", "Add rice and simmer."],
    "chefTips": "Soak the rice for 30 minutes first.",
}


class FakeGenerator:
    """Stands in for GenerationClient: records requests, returns canned text or raises."""

    def __init__(self, text: str = "", error: Optional[BaseException] = None) -> None:
        self.text = text
        self.error = error
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.text


def make_image_bytes(width: int = 64, height: int = 48, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    """Render a small solid-color image in memory."""
    color = (200, 80, 40, 128) if mode == "RGBA" else (200, 80, 40)
    img = Image.new(mode, (width, height), color)
    output = BytesIO()
    img.save(output, format=fmt)
    return output.getvalue()


def build_multipart(fields=(), files=(), boundary: str = "testboundary42"):
    """Build a multipart/form-data body.

    Args:
        fields: Iterable of (name, value) text fields.
        files: Iterable of (name, filename, content_type, data) file parts.

    Returns:
        (body bytes, content-type header value)
    """
    chunks = []
    for name, value in fields:
        chunks.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
            f"{value}\r\n".encode("utf-8")
        )
    for name, filename, content_type, data in files:
        chunks.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n".encode("utf-8")
            + data
            + b"\r\n"
        )
    chunks.append(f"--{boundary}--\r\n".encode("utf-8"))
    return b"".join(chunks), f"multipart/form-data; boundary={boundary}"
