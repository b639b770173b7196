"""
Image helpers shared by the plate detector and the recognizer.

All math works on float32 arrays in [0, 1]. Convolutions zero-pad the
border and keep the input size.
"""

import logging
import os
import time

import cv2
import numpy as np

logger = logging.getLogger(__name__)

SMOOTHING_KERNEL = np.array(
    [
        [1, 2, 1],
        [2, 4, 2],
        [1, 2, 1],
    ],
    dtype=np.float32,
) / 16.0

SOBEL_X = np.array(
    [
        [-1, 0, 1],
        [-2, 0, 2],
        [-1, 0, 1],
    ],
    dtype=np.float32,
)

SOBEL_Y = SOBEL_X.T.copy()


class ImageDecodeError(ValueError):
    """Raised when a byte buffer cannot be decoded as an image."""


def decode_image(image_bytes, flags=cv2.IMREAD_COLOR):
    """Decode an encoded image buffer.

    Args:
        image_bytes: Encoded image (PNG, JPEG, ...)
        flags: OpenCV imread flags

    Returns:
        Decoded uint8 image
    """
    if not image_bytes:
        raise ImageDecodeError("empty image buffer")

    buf = np.frombuffer(image_bytes, dtype=np.uint8)
    image = cv2.imdecode(buf, flags)
    if image is None:
        raise ImageDecodeError("could not decode image buffer")
    return image


def to_uint8(image):
    """Convert a [0, 1] float image to uint8, leaving uint8 images alone."""
    if image.dtype == np.uint8:
        return image
    scaled = np.clip(np.asarray(image, dtype=np.float32), 0.0, 1.0) * 255.0
    return np.round(scaled).astype(np.uint8)


def encode_png(image):
    """Encode an image (uint8 or [0, 1] float) as PNG bytes."""
    ok, encoded = cv2.imencode(".png", to_uint8(image))
    if not ok:
        raise ValueError("PNG encoding failed")
    return encoded.tobytes()


def to_grayscale(image):
    """Single-channel float32 luminance in [0, 1].

    Accepts gray, BGR or BGRA input, uint8 or already normalized floats.
    """
    if image.dtype == np.uint8:
        image = image.astype(np.float32) / 255.0
    else:
        image = image.astype(np.float32)

    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0]
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def convolve2d(image, kernel):
    """Same-size 2-D correlation with zero padding."""
    return cv2.filter2D(
        np.asarray(image, dtype=np.float32),
        cv2.CV_32F,
        np.asarray(kernel, dtype=np.float32),
        borderType=cv2.BORDER_CONSTANT,
    )


def stretch_contrast(image, factor, pivot=0.5):
    """Scale values away from ``pivot`` and clamp to [0, 1]."""
    return np.clip((image - pivot) * factor + pivot, 0.0, 1.0).astype(np.float32)


def local_mean(image, size):
    """Mean over a ``size`` x ``size`` window centred on each pixel.

    Pixels outside the image are excluded from the mean rather than
    counted as zeros.
    """
    kernel = np.ones((size, size), dtype=np.float32)
    sums = convolve2d(image, kernel)
    counts = convolve2d(np.ones_like(image, dtype=np.float32), kernel)
    return sums / counts


def max_pool(image, size=2):
    """Same-size max filter whose window extends right and down."""
    height, width = image.shape[:2]
    padded = np.pad(image, ((0, size - 1), (0, size - 1)), mode="edge")
    pooled = image.copy()
    for dy in range(size):
        for dx in range(size):
            pooled = np.maximum(pooled, padded[dy : dy + height, dx : dx + width])
    return pooled


def resize_to_min_width(image, min_width):
    """Bilinear upscale so the image is at least ``min_width`` wide."""
    height, width = image.shape[:2]
    if width >= min_width:
        return image

    scale = min_width / float(width)
    new_height = max(1, int(np.floor(height * scale + 0.5)))
    return cv2.resize(image, (min_width, new_height), interpolation=cv2.INTER_LINEAR)


def write_debug_image(debug_dir, title, image):
    """Dump an intermediate image as ``<title>_<ms>.png`` under ``debug_dir``."""
    os.makedirs(debug_dir, exist_ok=True)
    path = os.path.join(debug_dir, f"{title}_{int(time.time() * 1000)}.png")
    with open(path, "wb") as f:
        f.write(encode_png(image))
    logger.debug("Saved debug image to %s", path)
    return path
