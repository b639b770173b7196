"""
Persist recognition results to disk.
"""

import json
import logging
import os
import shutil
import time
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def build_result_record(original_image_path, plate_text, timestamp):
    """Metadata stored alongside each saved result.

    Args:
        original_image_path: Path of the source image
        plate_text: Recognized plate text
        timestamp: Milliseconds since the epoch

    Returns:
        dict
    """
    processing_date = datetime.fromtimestamp(timestamp / 1000.0, tz=timezone.utc)
    return {
        "originalImage": original_image_path,
        "timestamp": timestamp,
        "recognizedText": plate_text,
        "processingDate": processing_date.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    }


def save_recognition_result(original_image_path, plate_text, plate_image_bytes, data_dir="data"):
    """Write metadata, the plate crop and a copy of the original image.

    Results go to ``<data_dir>/result_<timestamp>/``.

    Returns:
        str: The result directory, or None if saving failed
    """
    timestamp = int(time.time() * 1000)
    try:
        result_dir = os.path.join(data_dir, f"result_{timestamp}")
        suffix = 1
        while os.path.exists(result_dir):
            result_dir = os.path.join(data_dir, f"result_{timestamp}_{suffix}")
            suffix += 1
        os.makedirs(result_dir)

        metadata = build_result_record(original_image_path, plate_text, timestamp)
        with open(os.path.join(result_dir, "metadata.json"), "w", encoding="utf-8") as f:
            json.dump(metadata, f, indent=2)

        with open(os.path.join(result_dir, "plate.png"), "wb") as f:
            f.write(plate_image_bytes)

        extension = os.path.splitext(original_image_path)[1].lower() or ".jpg"
        shutil.copyfile(original_image_path, os.path.join(result_dir, f"original{extension}"))
    except OSError:
        logger.exception("Error saving recognition results for %s", original_image_path)
        return None

    logger.info("Recognition results saved to %s", result_dir)
    return result_dir
