"""Image normalization before the generation call.

Uploaded photos are decoded with Pillow, rotated upright per their EXIF
Orientation tag, shrunk so the longest edge is at most
MAX_IMAGE_EDGE (never enlarged), flattened to RGB and re-encoded as JPEG at
IMAGE_QUALITY. This bounds payload size and provider cost regardless of the
camera resolution.

Output is deterministic: the same bytes and (max_edge, quality) always give
byte-identical JPEG output, since no EXIF, ICC or timestamp metadata is written.
"""

import warnings
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from src.errors.errors import UnsupportedImage
from src.models.models import NormalizedImage
from src.utils.logger import logger

OUTPUT_FORMAT = "JPEG"
OUTPUT_MIME = "image/jpeg"


def target_size(width: int, height: int, max_edge: int) -> tuple[int, int]:
    """Dimensions that fit inside max_edge x max_edge, preserving aspect ratio.

    The scale factor is capped at 1.0, so images already within bounds keep
    their size.

    Example:
        >>> target_size(1600, 1200, 800)
        (800, 600)
        >>> target_size(400, 300, 800)
        (400, 300)
    """
    scale = min(1.0, max_edge / width, max_edge / height)
    if scale >= 1.0:
        return width, height
    new_width = min(max_edge, max(1, round(width * scale)))
    new_height = min(max_edge, max(1, round(height * scale)))
    return new_width, new_height


def _decode(data: bytes) -> Image.Image:
    """Fully decode image bytes; Image.open alone only reads the header."""
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            img = Image.open(BytesIO(data))
            img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, Image.DecompressionBombWarning) as e:
        raise UnsupportedImage(f"Unsupported or oversized image: {e}") from e
    except (OSError, ValueError, SyntaxError) as e:
        # Truncated or corrupt files surface as OSError/SyntaxError from the codec plugins
        raise UnsupportedImage(f"Image could not be decoded: {e}") from e
    return img


def _to_rgb(img: Image.Image) -> Image.Image:
    """Flatten palette/alpha images onto white; JPEG has no alpha channel."""
    if img.mode in ("RGBA", "LA", "P", "PA"):
        img = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def normalize_image(data: bytes, max_edge: int = 800, quality: int = 82) -> NormalizedImage:
    """Decode, downsize and re-encode an uploaded image.

    CPU-bound: call through asyncio.to_thread from async code.

    Args:
        data: Raw uploaded bytes (any format Pillow can decode).
        max_edge: Longest allowed edge in pixels.
        quality: JPEG quality of the output.

    Returns:
        NormalizedImage with JPEG bytes and final dimensions.

    Raises:
        UnsupportedImage: If the bytes cannot be decoded as an image.
    """
    if not data:
        raise UnsupportedImage("Image is empty")

    img = _decode(data)
    # Phone cameras store sensor-oriented pixels plus an EXIF Orientation tag;
    # the tag is dropped on re-encode, so apply it to the pixels first
    img = ImageOps.exif_transpose(img)
    original_size = img.size
    img = _to_rgb(img)

    width, height = target_size(img.width, img.height, max_edge)
    if (width, height) != img.size:
        img = img.resize((width, height), Image.Resampling.LANCZOS)

    output = BytesIO()
    img.save(output, format=OUTPUT_FORMAT, quality=quality, optimize=True)
    encoded = output.getvalue()

    logger.debug(
        f"Image normalized: {original_size[0]}x{original_size[1]} → {width}x{height}, "
        f"{len(data) / 1024:.1f}KB → {len(encoded) / 1024:.1f}KB"
    )
    return NormalizedImage(data=encoded, mime_type=OUTPUT_MIME, width=width, height=height)
