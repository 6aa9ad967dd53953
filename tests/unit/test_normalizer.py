"""Unit tests for image normalization."""

from io import BytesIO

import pytest
from PIL import Image

from helpers import make_image_bytes
from src.errors.errors import UnsupportedImage
from src.images.normalizer import OUTPUT_MIME, normalize_image, target_size


class TestTargetSize:
    @pytest.mark.parametrize(
        "size,max_edge,expected",
        [
            ((1600, 1200), 800, (800, 600)),
            ((1200, 1600), 800, (600, 800)),
            ((400, 300), 800, (400, 300)),
            ((800, 800), 800, (800, 800)),
            ((4000, 10), 800, (800, 2)),
            ((10000, 1), 800, (800, 1)),
        ],
    )
    def test_target_size(self, size, max_edge, expected):
        assert target_size(*size, max_edge) == expected


class TestNormalizeImage:
    """Tests for normalize_image."""

    def test_large_image_is_downscaled(self):
        result = normalize_image(make_image_bytes(1600, 1200), max_edge=800)

        assert (result.width, result.height) == (800, 600)
        assert result.mime_type == OUTPUT_MIME
        with Image.open(BytesIO(result.data)) as img:
            assert img.format == "JPEG"
            assert img.size == (800, 600)

    def test_small_image_is_not_upscaled(self):
        result = normalize_image(make_image_bytes(120, 90), max_edge=800)
        assert (result.width, result.height) == (120, 90)

    def test_output_is_deterministic(self):
        data = make_image_bytes(900, 700)
        first = normalize_image(data, max_edge=800, quality=82)
        second = normalize_image(data, max_edge=800, quality=82)
        assert first.data == second.data

    def test_exif_orientation_applied(self):
        """A landscape-stored photo tagged Orientation=6 comes out portrait."""
        img = Image.new("RGB", (1600, 900), (200, 80, 40))
        exif = Image.Exif()
        exif[0x0112] = 6
        output = BytesIO()
        img.save(output, format="JPEG", exif=exif.tobytes())

        result = normalize_image(output.getvalue(), max_edge=800)

        assert (result.width, result.height) == (450, 800)
        with Image.open(BytesIO(result.data)) as normalized:
            assert normalized.size == (450, 800)
            assert normalized.getexif().get(0x0112) is None

    def test_alpha_image_flattened_to_rgb(self):
        result = normalize_image(make_image_bytes(50, 50, mode="RGBA"))
        with Image.open(BytesIO(result.data)) as img:
            assert img.mode == "RGB"

    def test_corrupt_bytes_rejected(self):
        with pytest.raises(UnsupportedImage):
            normalize_image(b"definitely not an image")

    def test_truncated_image_rejected(self):
        data = make_image_bytes(400, 400, fmt="JPEG")
        with pytest.raises(UnsupportedImage):
            normalize_image(data[: len(data) // 3])

    def test_empty_bytes_rejected(self):
        with pytest.raises(UnsupportedImage, match="empty"):
            normalize_image(b"")
