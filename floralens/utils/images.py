"""
Image intake helpers.

Uploaded photos are validated once with Pillow before either pipeline sees
them: the cloud path needs raw bytes plus an accurate MIME type, the offline
path needs a decoded RGB image for the classifier.

HEIC/HEIF photos (the iPhone default) are decoded through the
``pillow-heif`` plugin and re-encoded as JPEG, which every provider accepts.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

from floralens.domain.exceptions import ValidationError

register_heif_opener()

HEIC_MIME_TYPES = frozenset({"image/heic", "image/heif"})
HEIC_EXTENSIONS = (".heic", ".heif")
HEIF_FORMATS = frozenset({"HEIF", "HEIC"})
HEIC_JPEG_QUALITY = 90

HEIC_UNSUPPORTED_MESSAGE = "Could not process HEIC image. Please try a JPEG or PNG."
UNREADABLE_IMAGE_MESSAGE = "Uploaded file is not a readable image"


@dataclass(frozen=True)
class ImagePayload:
    """Raw image bytes together with their MIME type."""

    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


def _is_heic(filename: str | None, mime_type: str | None) -> bool:
    if mime_type and mime_type.lower() in HEIC_MIME_TYPES:
        return True
    return bool(filename) and filename.lower().endswith(HEIC_EXTENSIONS)


def convert_heic_to_jpeg(data: bytes) -> ImagePayload:
    """
    Decode a HEIC/HEIF photo and re-encode it as JPEG.

    Raises:
        ValidationError: With the HEIC message when the photo cannot be decoded
    """
    try:
        with Image.open(BytesIO(data)) as img:
            rgb = img.convert("RGB")
        buf = BytesIO()
        rgb.save(buf, format="JPEG", quality=HEIC_JPEG_QUALITY)
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise ValidationError(HEIC_UNSUPPORTED_MESSAGE) from exc
    return ImagePayload(data=buf.getvalue(), mime_type="image/jpeg")


def load_image_payload(
    data: bytes,
    *,
    filename: str | None = None,
    mime_type: str | None = None,
) -> ImagePayload:
    """
    Validate an uploaded image and resolve its MIME type.

    HEIC/HEIF uploads, recognised by filename, declared type or decoded
    format, are converted to JPEG.

    Args:
        data: Raw uploaded bytes
        filename: Original filename, used to detect HEIC uploads
        mime_type: Client-declared content type, if any

    Returns:
        ImagePayload with the MIME type Pillow detected

    Raises:
        ValidationError: Empty, undecodable, or unconvertible HEIC payloads
    """
    if not data:
        raise ValidationError("No image data received")

    if _is_heic(filename, mime_type):
        return convert_heic_to_jpeg(data)

    try:
        with Image.open(BytesIO(data)) as img:
            fmt = (img.format or "").upper()
            detected = Image.MIME.get(fmt)
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValidationError(UNREADABLE_IMAGE_MESSAGE) from exc

    if fmt in HEIF_FORMATS:
        return convert_heic_to_jpeg(data)

    resolved = detected or (mime_type or "").lower()
    if not resolved.startswith("image/"):
        raise ValidationError(UNREADABLE_IMAGE_MESSAGE)
    return ImagePayload(data=data, mime_type=resolved)


def open_rgb_image(source: ImagePayload | bytes | Image.Image) -> Image.Image:
    """Decode *source* into an RGB Pillow image for the classifier."""
    if isinstance(source, Image.Image):
        return source.convert("RGB")
    raw = source.data if isinstance(source, ImagePayload) else source
    try:
        img = Image.open(BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError(UNREADABLE_IMAGE_MESSAGE) from exc
    return img.convert("RGB")
