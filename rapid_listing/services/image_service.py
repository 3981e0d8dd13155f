import base64
import binascii
import io
import re
from dataclasses import dataclass

from PIL import Image as PILImage, UnidentifiedImageError
from flask import current_app

from rapid_listing.errors import FileTooLarge, UnsupportedInput


DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<data>.+)$", re.DOTALL)


@dataclass(frozen=True)
class EncodedImage:
    """Encoded image bytes plus their media type."""

    data: bytes
    mime_type: str = "image/jpeg"
    width: int = 0
    height: int = 0

    def to_base64(self):
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self):
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    @classmethod
    def from_data_url(cls, value):
        """Parse a ``data:`` URL.

        Anything that is not a data URL is treated as bare base64 JPEG.
        """
        match = DATA_URL_RE.match(value.strip())
        if match:
            mime_type, payload = match.group("mime"), match.group("data")
        else:
            mime_type, payload = "image/jpeg", value.strip()
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise UnsupportedInput("Image data is not valid base64")
        return cls(data=data, mime_type=mime_type)


def scaled_size(width, height, max_edge):
    """Return (width, height) with the long edge clamped to ``max_edge``."""
    long_edge = max(width, height)
    if long_edge <= max_edge:
        return width, height
    ratio = max_edge / long_edge
    if width >= height:
        return max_edge, max(1, round(height * ratio))
    return max(1, round(width * ratio)), max_edge


def encode_image(image_bytes, content_type, max_edge=None, quality=None, max_bytes=None):
    """Normalize an uploaded image for transmission to the model.

    - Rejects non-image content types without decoding
    - Rejects files over the byte ceiling before decoding
    - Downscales so the long edge fits ``max_edge``, keeping aspect ratio
    - Re-encodes as JPEG at ``quality`` (0-1), which also strips EXIF

    Returns:
        EncodedImage

    Raises:
        UnsupportedInput, FileTooLarge
    """
    config = current_app.config
    max_edge = max_edge or config["IMAGE_MAX_EDGE"]
    quality = config["IMAGE_QUALITY"] if quality is None else quality
    max_bytes = max_bytes or config["MAX_UPLOAD_BYTES"]

    if not content_type or not content_type.lower().startswith("image/"):
        raise UnsupportedInput(f"Unsupported file type: {content_type or 'unknown'}")
    if len(image_bytes) > max_bytes:
        raise FileTooLarge(f"Image too large: {len(image_bytes)} bytes (max {max_bytes})")

    try:
        img = PILImage.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError):
        raise UnsupportedInput("Invalid image file")

    if img.mode != "RGB":
        img = img.convert("RGB")

    size = scaled_size(img.width, img.height, max_edge)
    if size != img.size:
        img = img.resize(size, PILImage.LANCZOS)

    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=round(quality * 100))
    return EncodedImage(
        data=buffer.getvalue(), mime_type="image/jpeg", width=size[0], height=size[1]
    )


def read_upload(file_storage):
    """Encode a Werkzeug ``FileStorage`` upload."""
    return encode_image(file_storage.read(), file_storage.mimetype)


def read_data_url(value):
    """Encode an image resent as a data URL (drafts, optimized photos)."""
    image = EncodedImage.from_data_url(value)
    return encode_image(image.data, image.mime_type)
