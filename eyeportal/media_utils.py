import io
import os
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import settings
from .exceptions import ValidationError
from .application.ports.device_api import CaptureSource, ScanCapture


def load_upload(data: bytes, filename: Optional[str], content_type: Optional[str]) -> ScanCapture:
    """Validate an uploaded eye image and wrap it as a capture."""
    content_type = content_type or "application/octet-stream"
    if content_type not in settings.ALLOWED_IMAGE_TYPES:
        raise ValidationError(f"File type {content_type} not allowed")
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > settings.MAX_FILE_SIZE:
        raise ValidationError(f"File too large (max {settings.MAX_FILE_SIZE // (1024*1024)}MB)")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationError("Uploaded file is not a readable image") from e
    return ScanCapture(
        image_data=data,
        content_type=content_type,
        source=CaptureSource.UPLOAD,
        filename=os.path.basename(filename or "upload.jpg"),
    )


def rasterize_frame(frame: np.ndarray) -> bytes:
    """Encode an RGB frame as PNG at its native resolution."""
    if frame.ndim != 3 or frame.shape[2] != 3:
        raise ValueError(f"Expected an RGB frame, got shape {frame.shape}")
    img = Image.fromarray(np.ascontiguousarray(frame, dtype=np.uint8))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def encode_jpeg(frame: np.ndarray, quality: int = 80) -> bytes:
    img = Image.fromarray(np.ascontiguousarray(frame, dtype=np.uint8))
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()

