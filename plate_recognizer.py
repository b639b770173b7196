"""
License plate recognition using OCR.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

import anpr_config
from image_ops import (
    SMOOTHING_KERNEL,
    convolve2d,
    decode_image,
    local_mean,
    max_pool,
    resize_to_min_width,
    stretch_contrast,
    to_grayscale,
    write_debug_image,
)
from ocr_engine import get_engine
from text_normalizer import normalize_plate_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OCRAttempt:
    """One engine call: the mode used, the text read and its confidence."""

    segmentation_mode: Optional[int]
    text: str
    confidence: float


NO_ATTEMPT = OCRAttempt(None, "", 0.0)


def pick_best(attempts, best=NO_ATTEMPT, stop_above=None):
    """Fold attempts into the highest-confidence one.

    Earlier attempts win ties. Iteration stops right after an attempt whose
    confidence exceeds ``stop_above``, so lazily produced attempts after it
    are never run.

    Args:
        attempts: Iterable of OCRAttempt, in priority order
        best: Attempt to beat
        stop_above: Confidence that ends the search early

    Returns:
        OCRAttempt
    """
    for attempt in attempts:
        if attempt.confidence > best.confidence:
            best = attempt
        if stop_above is not None and attempt.confidence > stop_above:
            break
    return best


def preprocess_for_ocr(image_bytes):
    """Binarize and enlarge a plate crop for recognition.

    Steps: grayscale, 3x3 Gaussian blur, contrast stretch, local mean
    adaptive threshold, upscale to OCR_MIN_WIDTH, 2x2 dilation.

    Args:
        image_bytes: Encoded plate crop

    Returns:
        float32 image with values in [0, 1]
    """
    gray = to_grayscale(decode_image(image_bytes))
    blurred = convolve2d(gray, SMOOTHING_KERNEL)
    normalized = stretch_contrast(blurred, anpr_config.OCR_CONTRAST_FACTOR, pivot=0.5)

    mean = local_mean(normalized, anpr_config.OCR_LOCAL_WINDOW)
    binary = (normalized > mean - anpr_config.OCR_THRESHOLD_OFFSET).astype(np.float32)

    resized = resize_to_min_width(binary, anpr_config.OCR_MIN_WIDTH)
    return max_pool(resized, 2)


class LicensePlateRecognizer:
    """Runs OCR over several segmentation modes and keeps the most confident read."""

    def __init__(self, engine=None, debug_dir=None):
        """Initialize the recognizer.

        Args:
            engine: OCR engine handle; the shared engine is used if None
            debug_dir (str): If set, OCR input images are written here
        """
        self._engine = engine
        self.debug_dir = debug_dir

    @property
    def engine(self):
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    def recognize(self, image_bytes):
        """Read and normalize the plate text in a cropped plate image.

        Args:
            image_bytes: Encoded plate crop

        Returns:
            str: Normalized plate text, empty if nothing could be read
        """
        try:
            best = self.read_best_attempt(image_bytes)
        except Exception:
            logger.exception("Error in text recognition")
            return ""

        text = normalize_plate_text(best.text)
        logger.info("Recognized %r (psm %s, confidence %.1f) -> %r",
                    best.text, best.segmentation_mode, best.confidence, text)
        return text

    def read_best_attempt(self, image_bytes):
        """Run the segmentation modes, then the contrast sweep if needed.

        Returns:
            OCRAttempt with the raw text of the most confident read
        """
        prepared = self._prepare(image_bytes)
        self._debug_save("ocr_input", prepared)

        best = pick_best(
            self._mode_attempts(prepared),
            stop_above=anpr_config.OCR_EARLY_EXIT_CONFIDENCE,
        )

        if (
            best.confidence < anpr_config.OCR_RETRY_CONFIDENCE
            and len(best.text) < anpr_config.OCR_RETRY_MIN_LENGTH
        ):
            logger.info("Low confidence result, trying contrast adjustments")
            best = pick_best(self._contrast_attempts(prepared), best=best)

        return best

    def _prepare(self, image_bytes):
        try:
            return preprocess_for_ocr(image_bytes)
        except Exception:
            logger.exception("Error preprocessing image, using original crop")
        return to_grayscale(decode_image(image_bytes))

    def _mode_attempts(self, image):
        for mode in anpr_config.OCR_SEGMENTATION_MODES:
            yield self._attempt(image, mode)

    def _contrast_attempts(self, image):
        for contrast in anpr_config.OCR_CONTRAST_LEVELS:
            adjusted = stretch_contrast(image, contrast, pivot=0.5)
            self._debug_save(f"ocr_adjusted_{contrast}", adjusted)
            attempt = self._attempt(adjusted, anpr_config.OCR_DEFAULT_MODE)
            logger.debug("Contrast %s result: %r confidence %.1f",
                         contrast, attempt.text, attempt.confidence)
            yield attempt

    def _attempt(self, image, mode):
        text, confidence = self.engine.run(image, mode)
        attempt = OCRAttempt(mode, text.strip(), float(confidence))
        logger.debug("PSM %d result: %r confidence %.1f", mode, attempt.text, attempt.confidence)
        return attempt

    def _debug_save(self, title, image):
        """Write a debug image if a debug directory is set."""
        if self.debug_dir:
            write_debug_image(self.debug_dir, title, image)


def recognize_text(image_bytes, recognizer=None):
    """Read the plate text in a cropped plate image; never raises."""
    if recognizer is None:
        recognizer = LicensePlateRecognizer()
    return recognizer.recognize(image_bytes)
