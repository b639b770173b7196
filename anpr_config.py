"""
Configuration for the license plate reader.

Detection and recognition constants live here. Values that vary per
deployment can be overridden with ``ANPR_*`` environment variables.
"""

import os


def env_str(key, default=None):
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def env_int(key, default):
    raw = os.getenv(key)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def env_float(key, default):
    raw = os.getenv(key)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


# Region scanning
EDGE_THRESHOLDS = (0.10, 0.15, 0.20, 0.25)
# (width, height) of the sliding window as a fraction of the image
WINDOW_RATIOS = (
    (0.2, 0.05),
    (0.3, 0.08),
    (0.4, 0.10),
    (0.5, 0.12),
)
SAMPLE_RATE = 4  # check every 4th pixel in both axes
MIN_STEP = 4
STEP_DIVISOR = 12
EDGE_DENSITY_THRESHOLD = 0.10

# Plate geometry
MIN_ASPECT_RATIO = 1.5
MAX_ASPECT_RATIO = 5.0
MIN_PLATE_WIDTH_RATIO = 0.05
MAX_PLATE_WIDTH_RATIO = 0.9
MIN_PLATE_HEIGHT_RATIO = 0.01
MAX_PLATE_HEIGHT_RATIO = 0.3

TOP_REGIONS = 5

# Edge map
EDGE_CONTRAST_FACTOR = 1.5

# Cropping
CROP_MARGIN_RATIO = 0.25
MIN_CROP_DIMENSION = 100  # pixels
SAFE_CROP_RATIO = 0.3

# Fallback geometry: (x, y, width, height) as fractions of the image
FALLBACK_REGION = (0.2, 0.4, 0.6, 0.3)
FALLBACK_SCORE = 0.5
EMERGENCY_SIZE = (0.6, 0.4)
EMERGENCY_CENTER_Y = 0.5
EMERGENCY_SCORE = 0.1

# OCR engine
OCR_LANGUAGE = env_str("ANPR_OCR_LANGUAGE", "eng")
OCR_ENGINE_MODE = env_int("ANPR_OCR_OEM", 1)  # LSTM only
OCR_DEFAULT_MODE = 7
OCR_CHAR_WHITELIST = env_str("ANPR_OCR_WHITELIST")
OCR_CALL_TIMEOUT = env_float("ANPR_OCR_CALL_TIMEOUT", 10.0)
TESSERACT_CMD = env_str("ANPR_TESSERACT_CMD")

# OCR orchestration
# 7: single line, 6: block, 8: single word, 11: sparse text, 13: raw line
OCR_SEGMENTATION_MODES = (7, 6, 8, 11, 13)
OCR_EARLY_EXIT_CONFIDENCE = 85.0
OCR_RETRY_CONFIDENCE = 40.0
OCR_RETRY_MIN_LENGTH = 3
OCR_CONTRAST_LEVELS = (1.5, 2.0, 2.5)

# OCR preprocessing
OCR_CONTRAST_FACTOR = 2.0
OCR_LOCAL_WINDOW = 15
OCR_THRESHOLD_OFFSET = 0.05
OCR_MIN_WIDTH = 300

# Optional trained detector
MODEL_PATH = env_str("ANPR_MODEL_PATH")
MODEL_INPUT_SIZE = (300, 300)
MODEL_CONFIDENCE_THRESHOLD = 0.5

# Pipeline
READ_TIMEOUT = env_float("ANPR_READ_TIMEOUT", 30.0)  # seconds, 0 disables
READ_WORKERS = env_int("ANPR_READ_WORKERS", 4)
IMAGE_EXTENSIONS = ("*.jpg", "*.jpeg", "*.png", "*.bmp")
