"""
Image utilities for the document reconstruction pipeline.

Provides:
- Cropping a normalized box out of a rendered page bitmap
- Encoding page bitmaps for the OCR service
- Bitmap validation helpers
"""

import logging
from dataclasses import dataclass
from typing import Tuple, Optional

import numpy as np

from .layout import BoundingBox, COORDINATE_SPACE

logger = logging.getLogger(__name__)


class ImageCropError(RuntimeError):
    """Raised when a region cannot be cut out of a page bitmap."""


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class CroppedImage:
    """A standalone PNG crop of a page region."""
    data: bytes
    width: int
    height: int
    mime_type: str = "image/png"


# ============================================================================
# Bitmap Helpers
# ============================================================================

def bitmap_size(image: np.ndarray) -> Tuple[int, int]:
    """
    Get the intrinsic (width, height) of a bitmap.

    Raises:
        ImageCropError: If the bitmap is missing or empty
    """
    if image is None or not isinstance(image, np.ndarray) or image.ndim not in (2, 3):
        raise ImageCropError("Page bitmap is missing or not an image array")
    h, w = image.shape[:2]
    if h == 0 or w == 0:
        raise ImageCropError("Page bitmap is empty")
    return w, h


def encode_image(
    image: np.ndarray,
    fmt: str = ".jpg",
    jpeg_quality: int = 85
) -> bytes:
    """
    Encode a bitmap to compressed bytes.

    Args:
        image: BGR or grayscale bitmap
        fmt: OpenCV extension, '.jpg' or '.png'
        jpeg_quality: JPEG quality (1-100)

    Returns:
        Encoded image bytes
    """
    import cv2

    params = [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality] if fmt in (".jpg", ".jpeg") else []
    ok, buffer = cv2.imencode(fmt, image, params)
    if not ok:
        raise ValueError(f"Could not encode image as {fmt}")
    return buffer.tobytes()


# ============================================================================
# Cropping
# ============================================================================

def normalized_to_pixels(
    bbox: BoundingBox,
    width: int,
    height: int
) -> Tuple[int, int, int, int]:
    """
    Map a normalized box to pixel coordinates.

    x uses the source width and y the source height:
    pixel = normalized / 1000 * dimension.

    Returns:
        (x1, y1, x2, y2) in pixels
    """
    x1 = int(round(bbox.xmin / COORDINATE_SPACE * width))
    x2 = int(round(bbox.xmax / COORDINATE_SPACE * width))
    y1 = int(round(bbox.ymin / COORDINATE_SPACE * height))
    y2 = int(round(bbox.ymax / COORDINATE_SPACE * height))
    return x1, y1, x2, y2


def crop_region(
    image: np.ndarray,
    bbox: BoundingBox,
    source_size: Optional[Tuple[int, int]] = None
) -> CroppedImage:
    """
    Crop a normalized region out of a page bitmap as a PNG.

    Args:
        image: Full rendered page (BGR or grayscale)
        bbox: Region in the 0-1000 normalized space
        source_size: Nominal (width, height) of the page. When absent or
            zero, the bitmap's own pixel size is used.

    Returns:
        CroppedImage with lossless PNG bytes

    Raises:
        ImageCropError: If the bitmap is unusable or the region is empty
    """
    import cv2

    intrinsic_w, intrinsic_h = bitmap_size(image)
    if source_size and source_size[0] > 0 and source_size[1] > 0:
        width, height = source_size
    else:
        width, height = intrinsic_w, intrinsic_h

    x1, y1, x2, y2 = normalized_to_pixels(bbox, width, height)

    # Clip to the actual bitmap
    x1, x2 = max(0, x1), min(intrinsic_w, x2)
    y1, y2 = max(0, y1), min(intrinsic_h, y2)

    if x2 <= x1 or y2 <= y1:
        raise ImageCropError(f"Zero-size crop region for box {bbox.to_list()}")

    region = image[y1:y2, x1:x2]

    try:
        ok, buffer = cv2.imencode(".png", region)
    except cv2.error as e:
        raise ImageCropError(f"PNG encoding failed: {e}")
    if not ok:
        raise ImageCropError("PNG encoding failed")

    logger.debug(f"Cropped {x2 - x1}x{y2 - y1} region at ({x1}, {y1})")

    return CroppedImage(
        data=buffer.tobytes(),
        width=x2 - x1,
        height=y2 - y1
    )
