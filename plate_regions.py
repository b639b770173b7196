"""
Plate region geometry: candidate regions, fallback regions and cropping.
"""

import logging
import math
from dataclasses import dataclass

import anpr_config
from image_ops import decode_image, encode_png

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateRegion:
    """A window that may contain a plate, in source pixel coordinates."""

    x: int
    y: int
    width: float
    height: float
    score: float

    @property
    def aspect_ratio(self):
        return self.width / self.height

    @property
    def center(self):
        return self.x + self.width / 2.0, self.y + self.height / 2.0


@dataclass(frozen=True)
class CropBox:
    """Final integer pixel bounds of a crop."""

    x: int
    y: int
    width: int
    height: int
    safe: bool = False


def primary_fallback_region(image_width, image_height):
    """Region used when the scan finds no candidates.

    Covers the middle 60% of the width, starting 40% down the image.
    """
    fx, fy, fw, fh = anpr_config.FALLBACK_REGION
    return CandidateRegion(
        x=math.floor(image_width * fx),
        y=math.floor(image_height * fy),
        width=math.floor(image_width * fw),
        height=math.floor(image_height * fh),
        score=anpr_config.FALLBACK_SCORE,
    )


def emergency_fallback_region(image_width, image_height):
    """Larger centred region used when detection raised."""
    rw, rh = anpr_config.EMERGENCY_SIZE
    width = math.floor(image_width * rw)
    height = math.floor(image_height * rh)
    return CandidateRegion(
        x=math.floor((image_width - width) / 2),
        y=math.floor(image_height * anpr_config.EMERGENCY_CENTER_Y - height / 2),
        width=width,
        height=height,
        score=anpr_config.EMERGENCY_SCORE,
    )


def compute_crop_box(
    image_width,
    image_height,
    region,
    margin_ratio=anpr_config.CROP_MARGIN_RATIO,
    min_dimension=anpr_config.MIN_CROP_DIMENSION,
):
    """Turn a region into final crop bounds.

    The region is clamped to the image and grown by ``margin_ratio`` on every
    side. If that is still smaller than ``min_dimension`` in either axis, a
    larger safe box centred on the region is used instead.

    Args:
        image_width: Source image width in pixels
        image_height: Source image height in pixels
        region: CandidateRegion to crop
        margin_ratio: Margin added on each side, relative to the region size
        min_dimension: Minimum crop width and height in pixels

    Returns:
        CropBox, or None when no valid crop exists
    """
    x = max(0, math.floor(region.x))
    y = max(0, math.floor(region.y))
    width = min(math.floor(region.width), image_width - x)
    height = min(math.floor(region.height), image_height - y)

    if width <= 0 or height <= 0:
        logger.error("Invalid crop dimensions %dx%d for region %s", width, height, region)
        return None

    margin_x = math.floor(width * margin_ratio)
    margin_y = math.floor(height * margin_ratio)

    final_x = max(0, x - margin_x)
    final_y = max(0, y - margin_y)
    final_width = min(width + 2 * margin_x, image_width - final_x)
    final_height = min(height + 2 * margin_y, image_height - final_y)

    if final_width >= min_dimension and final_height >= min_dimension:
        return CropBox(final_x, final_y, final_width, final_height)

    logger.debug(
        "Crop %dx%d below %dpx, using safe crop", final_width, final_height, min_dimension
    )
    safe_width = max(min_dimension, math.floor(image_width * anpr_config.SAFE_CROP_RATIO))
    safe_height = max(min_dimension, math.floor(image_height * anpr_config.SAFE_CROP_RATIO))

    if safe_width > image_width or safe_height > image_height:
        logger.error(
            "Image %dx%d too small for a %dx%d safe crop",
            image_width,
            image_height,
            safe_width,
            safe_height,
        )
        return None

    safe_x = max(0, min(math.floor(x + width / 2 - safe_width / 2), image_width - safe_width))
    safe_y = max(0, min(math.floor(y + height / 2 - safe_height / 2), image_height - safe_height))

    return CropBox(safe_x, safe_y, safe_width, safe_height, safe=True)


def crop_region(image_bytes, region, image=None):
    """Crop ``region`` out of an encoded image.

    Args:
        image_bytes: Encoded source image
        region: CandidateRegion to crop
        image: Already decoded source image, if available

    Returns:
        PNG bytes of the crop, or ``image_bytes`` unchanged when the crop is
        invalid
    """
    if image is None:
        image = decode_image(image_bytes)

    image_height, image_width = image.shape[:2]
    box = compute_crop_box(image_width, image_height, region)
    if box is None:
        logger.warning("Using original image instead of crop")
        return image_bytes

    logger.debug("Cropping x=%d y=%d width=%d height=%d", box.x, box.y, box.width, box.height)
    cropped = image[box.y : box.y + box.height, box.x : box.x + box.width]
    return encode_png(cropped)
