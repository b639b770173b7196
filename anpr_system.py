"""
Main ANPR system class to coordinate detection and recognition.
"""

import concurrent.futures
import glob
import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

import anpr_config
from plate_detector import LicensePlateDetector, PlateDetection
from plate_recognizer import LicensePlateRecognizer
from result_store import save_recognition_result

logger = logging.getLogger(__name__)


class ImageReadError(IOError):
    """The source image file could not be read."""


class PlateReadTimeout(TimeoutError):
    """Detection and recognition did not finish within the deadline."""


@dataclass
class PlateReadResult:
    plate_text: str
    plate_image: bytes
    detection: PlateDetection
    result_dir: Optional[str] = None


class ANPRSystem:
    """Main ANPR system class to coordinate detection and recognition."""

    def __init__(
        self,
        debug_dir=None,
        model_path=None,
        engine=None,
        timeout=anpr_config.READ_TIMEOUT,
        save_dir=None,
    ):
        """Initialize the ANPR system.

        Args:
            debug_dir (str): Where to write intermediate images, if anywhere
            model_path (str): Optional trained plate detector
            engine: OCR engine handle; the shared engine is used if None
            timeout (float): Deadline in seconds for one read; 0 or None disables it
            save_dir (str): Where to save result records, if anywhere
        """
        self.detector = LicensePlateDetector(debug_dir=debug_dir, model_path=model_path)
        self.recognizer = LicensePlateRecognizer(engine=engine, debug_dir=debug_dir)
        self.timeout = timeout
        self.save_dir = save_dir
        self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        """Wait for in-flight reads and release the worker threads."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def read_plate(self, image_bytes):
        """Detect and recognize the plate in an encoded image.

        Args:
            image_bytes: Encoded source image

        Returns:
            PlateReadResult

        Raises:
            PlateReadTimeout: If the read takes longer than ``timeout``
        """
        if not self.timeout:
            return self._read(image_bytes)

        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=anpr_config.READ_WORKERS, thread_name_prefix="anpr"
            )
        future = self._executor.submit(self._read, image_bytes)
        try:
            return future.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError as e:
            future.cancel()
            raise PlateReadTimeout(f"Plate read exceeded {self.timeout} seconds") from e

    def process_image(self, image_path):
        """Process a single image file.

        Args:
            image_path: Path to the input image

        Returns:
            PlateReadResult

        Raises:
            ImageReadError: If the file cannot be read
            PlateReadTimeout: If the read takes longer than ``timeout``
        """
        try:
            with open(image_path, "rb") as f:
                image_bytes = f.read()
        except OSError as e:
            raise ImageReadError(f"Could not read image {image_path}") from e

        result = self.read_plate(image_bytes)

        if self.save_dir:
            result.result_dir = save_recognition_result(
                image_path, result.plate_text, result.plate_image, self.save_dir
            )
        return result

    def process_directory(self, directory_path):
        """Process all images in a directory.

        Args:
            directory_path: Path to the directory containing images

        Returns:
            dict: Mapping of file name to PlateReadResult
        """
        image_files = set()
        for ext in anpr_config.IMAGE_EXTENSIONS:
            image_files.update(glob.glob(os.path.join(directory_path, ext)))

        if not image_files:
            logger.warning("No image files found in %s", directory_path)
            return {}

        results = {}
        for image_file in sorted(image_files):
            name = os.path.basename(image_file)
            logger.info("Processing %s...", name)
            try:
                results[name] = self.process_image(image_file)
            except (ImageReadError, PlateReadTimeout):
                logger.exception("Failed to process %s", name)
        return results

    def _read(self, image_bytes):
        start_time = time.time()

        detection = self.detector.locate(image_bytes)
        logger.info("Plate region from %s, %d bytes", detection.source, len(detection.image_bytes))

        text = self.recognizer.recognize(detection.image_bytes)

        logger.info("Processing time: %.2f seconds", time.time() - start_time)
        return PlateReadResult(text, detection.image_bytes, detection)
