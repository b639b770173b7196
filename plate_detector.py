"""
License plate detector using edge density analysis.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

import anpr_config
from image_ops import (
    SMOOTHING_KERNEL,
    SOBEL_X,
    SOBEL_Y,
    convolve2d,
    decode_image,
    stretch_contrast,
    to_grayscale,
    write_debug_image,
)
from plate_model import load_plate_model
from plate_regions import (
    CandidateRegion,
    crop_region,
    emergency_fallback_region,
    primary_fallback_region,
)

logger = logging.getLogger(__name__)

SOURCE_MODEL = "model"
SOURCE_SCAN = "scan"
SOURCE_FALLBACK = "fallback"
SOURCE_EMERGENCY = "emergency"
SOURCE_ORIGINAL = "original"


@dataclass
class ThresholdTrial:
    """Candidates found at one binarization threshold, in scan order."""

    threshold: float
    regions: List[CandidateRegion] = field(default_factory=list)


@dataclass
class PlateDetection:
    """Outcome of plate detection.

    ``source`` tells which tier produced ``image_bytes``: a trained model,
    the edge scan, the primary or emergency fallback geometry, or the
    untouched original image.
    """

    image_bytes: bytes
    region: Optional[CandidateRegion]
    source: str

    @property
    def located(self):
        return self.source in (SOURCE_MODEL, SOURCE_SCAN)


def build_edge_map(image):
    """Compute a normalized edge magnitude map.

    Args:
        image: Decoded image (gray, BGR or BGRA), at least 3x3

    Returns:
        float32 array of the image size with values in [0, 1]
    """
    gray = to_grayscale(image)

    contrasted = stretch_contrast(gray, anpr_config.EDGE_CONTRAST_FACTOR, pivot=float(gray.mean()))
    blurred = convolve2d(contrasted, SMOOTHING_KERNEL)

    edges_x = convolve2d(blurred, SOBEL_X)
    edges_y = convolve2d(blurred, SOBEL_Y)
    magnitude = np.sqrt(edges_x ** 2 + edges_y ** 2)

    peak = float(magnitude.max())
    if peak <= 0.0:
        return np.zeros_like(magnitude, dtype=np.float32)
    return (magnitude / peak).astype(np.float32)


def binarize(edge_map, threshold):
    return edge_map > threshold


def fits_plate_geometry(width, height, image_width, image_height):
    """Check a window against the plate aspect ratio and size bounds."""
    if width <= 0 or height <= 0:
        return False
    aspect_ratio = width / height
    return (
        anpr_config.MIN_ASPECT_RATIO <= aspect_ratio <= anpr_config.MAX_ASPECT_RATIO
        and image_width * anpr_config.MIN_PLATE_WIDTH_RATIO
        <= width
        <= image_width * anpr_config.MAX_PLATE_WIDTH_RATIO
        and image_height * anpr_config.MIN_PLATE_HEIGHT_RATIO
        <= height
        <= image_height * anpr_config.MAX_PLATE_HEIGHT_RATIO
    )


def sampled_count_table(binary, sample_rate=anpr_config.SAMPLE_RATE):
    """Summed-area table over pixels that share a sampling phase.

    ``table[i + s, j + s]`` holds the number of set pixels at
    ``(i - a*s, j - b*s)`` for all ``a, b >= 0``, where ``s`` is the sample
    rate. The first ``s`` rows and columns are zero padding.
    """
    height, width = binary.shape
    table = np.zeros((height + sample_rate, width + sample_rate), dtype=np.int64)
    table[sample_rate:, sample_rate:] = binary

    for phase in range(sample_rate):
        table[phase::sample_rate, :] = np.cumsum(table[phase::sample_rate, :], axis=0)
    for phase in range(sample_rate):
        table[:, phase::sample_rate] = np.cumsum(table[:, phase::sample_rate], axis=1)
    return table


def scan_threshold(edge_map, threshold, window_ratios=anpr_config.WINDOW_RATIOS):
    """Slide plate-shaped windows over a binarized edge map.

    Every 4th pixel of each window is sampled in both axes, starting at the
    window origin. A window is kept when its edge density is above
    ``EDGE_DENSITY_THRESHOLD`` and its shape passes ``fits_plate_geometry``.

    Args:
        edge_map: Output of build_edge_map
        threshold: Edge magnitude above which a pixel counts as an edge
        window_ratios: (width, height) window sizes relative to the image

    Returns:
        ThresholdTrial with candidates ordered by window size, row, column
    """
    sample_rate = anpr_config.SAMPLE_RATE
    height, width = edge_map.shape
    table = sampled_count_table(binarize(edge_map, threshold), sample_rate)
    trial = ThresholdTrial(threshold)

    for width_ratio, height_ratio in window_ratios:
        window_width = width * width_ratio
        window_height = height * height_ratio
        if not fits_plate_geometry(window_width, window_height, width, height):
            continue

        step_x = max(anpr_config.MIN_STEP, math.floor(window_width / anpr_config.STEP_DIVISOR))
        step_y = max(anpr_config.MIN_STEP, math.floor(window_height / anpr_config.STEP_DIVISOR))

        ys = np.arange(0, height - window_height, step_y, dtype=np.int64)
        xs = np.arange(0, width - window_width, step_x, dtype=np.int64)
        if ys.size == 0 or xs.size == 0:
            continue

        rows = math.ceil(window_height / sample_rate)
        cols = math.ceil(window_width / sample_rate)
        last_ys = ys + rows * sample_rate
        last_xs = xs + cols * sample_rate

        counts = (
            table[np.ix_(last_ys, last_xs)]
            - table[np.ix_(ys, last_xs)]
            - table[np.ix_(last_ys, xs)]
            + table[np.ix_(ys, xs)]
        )
        density = counts / float(rows * cols)

        for iy, ix in zip(*np.nonzero(density > anpr_config.EDGE_DENSITY_THRESHOLD)):
            trial.regions.append(
                CandidateRegion(
                    x=int(xs[ix]),
                    y=int(ys[iy]),
                    width=window_width,
                    height=window_height,
                    score=float(density[iy, ix]),
                )
            )

    return trial


def scan_regions(edge_map, thresholds=anpr_config.EDGE_THRESHOLDS):
    """Run scan_threshold once per threshold."""
    return [scan_threshold(edge_map, threshold) for threshold in thresholds]


def select_regions(trials, top_n=anpr_config.TOP_REGIONS):
    """Pick the best candidates across threshold trials.

    The trial with the most candidates wins; earlier trials win ties.

    Returns:
        Up to ``top_n`` regions of the winning trial, highest score first
    """
    best = None
    for trial in trials:
        if best is None or len(trial.regions) > len(best.regions):
            best = trial

    if best is None or not best.regions:
        return []

    logger.debug("Best threshold was %s with %d regions", best.threshold, len(best.regions))
    ranked = sorted(best.regions, key=lambda region: region.score, reverse=True)
    return ranked[:top_n]


class LicensePlateDetector:
    """License plate detector using edge density, with an optional trained model."""

    def __init__(self, debug_dir=None, model_path=None):
        """Initialize the detector.

        Args:
            debug_dir (str): If set, intermediate images are written here
            model_path (str): Optional trained detector, see plate_model
        """
        self.debug_dir = debug_dir
        self.model = load_plate_model(model_path)

    def detect(self, image_bytes):
        """Detect the plate and return the cropped image bytes.

        Never returns None; falls back to fixed geometry or the original
        image instead.
        """
        return self.locate(image_bytes).image_bytes

    def locate(self, image_bytes):
        """Detect the plate and report which tier produced the crop.

        Args:
            image_bytes: Encoded source image

        Returns:
            PlateDetection
        """
        try:
            return self._locate(image_bytes)
        except Exception:
            logger.exception("Error in license plate detection, using emergency fallback crop")

        try:
            image = decode_image(image_bytes)
            height, width = image.shape[:2]
            region = emergency_fallback_region(width, height)
            logger.info("Emergency fallback region: %s", region)
            return self._crop(image_bytes, image, region, SOURCE_EMERGENCY)
        except Exception:
            logger.exception("Error in emergency fallback, returning original image")
            return PlateDetection(image_bytes, None, SOURCE_ORIGINAL)

    def find_plate_regions(self, image):
        """Rank plate candidates in a decoded image.

        Returns:
            list: Up to five CandidateRegion, best first; empty if none qualify
        """
        edges = build_edge_map(image)
        self._debug_save("edges", edges)

        trials = scan_regions(edges)
        for trial in trials:
            logger.debug("Threshold %s: found %d potential regions", trial.threshold, len(trial.regions))
            self._debug_save(f"threshold_{trial.threshold}", binarize(edges, trial.threshold))

        return select_regions(trials)

    def _locate(self, image_bytes):
        image = decode_image(image_bytes)
        height, width = image.shape[:2]
        logger.debug("Image dimensions: %dx%d", width, height)

        if self.model is not None:
            region = self.model.detect(image)
            if region is not None:
                logger.info("Plate region detected by model: %s", region)
                return self._crop(image_bytes, image, region, SOURCE_MODEL)
            logger.info("Model found no plate, falling back to edge analysis")

        regions = self.find_plate_regions(image)
        if not regions:
            region = primary_fallback_region(width, height)
            logger.info("No license plates detected through edge analysis, using fallback region %s", region)
            return self._crop(image_bytes, image, region, SOURCE_FALLBACK)

        logger.info("Best plate region detected: %s", regions[0])
        return self._crop(image_bytes, image, regions[0], SOURCE_SCAN)

    def _crop(self, image_bytes, image, region, source):
        cropped = crop_region(image_bytes, region, image=image)
        if cropped is image_bytes:
            return PlateDetection(image_bytes, region, SOURCE_ORIGINAL)

        if self.debug_dir:
            write_debug_image(self.debug_dir, f"plate_crop_{source}", decode_image(cropped))
        return PlateDetection(cropped, region, source)

    def _debug_save(self, title, image):
        """Write a debug image if a debug directory is set."""
        if self.debug_dir:
            write_debug_image(self.debug_dir, title, image)


def detect_plate_region(image_bytes, detector=None):
    """Crop the most plate-like region out of ``image_bytes``."""
    if detector is None:
        detector = LicensePlateDetector()
    return detector.detect(image_bytes)
