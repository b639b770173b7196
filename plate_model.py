"""
Optional trained plate detector run through OpenCV's DNN module.

The network is expected to output normalized boxes ``[y1, x1, y2, x2]`` and
their scores, best first. When no model file is configured the detector
falls back to edge analysis.
"""

import logging
import math
import os

import cv2
import numpy as np

import anpr_config
from plate_regions import CandidateRegion

logger = logging.getLogger(__name__)


class PlateModelDetector:
    """Wraps a loaded cv2.dnn network that predicts plate boxes."""

    def __init__(
        self,
        net,
        input_size=anpr_config.MODEL_INPUT_SIZE,
        confidence_threshold=anpr_config.MODEL_CONFIDENCE_THRESHOLD,
    ):
        self.net = net
        self.input_size = input_size
        self.confidence_threshold = confidence_threshold

    @classmethod
    def from_path(cls, model_path):
        logger.info("Loading license plate detection model from %s", model_path)
        net = cv2.dnn.readNet(model_path)
        logger.info("Model loaded successfully")
        return cls(net)

    def detect(self, image):
        """Run the network on a decoded BGR image.

        Returns:
            CandidateRegion of the best box, or None if nothing scores above
            the confidence threshold
        """
        height, width = image.shape[:2]
        try:
            blob = cv2.dnn.blobFromImage(
                image, scalefactor=1.0 / 255.0, size=self.input_size, swapRB=True
            )
            self.net.setInput(blob)
            outputs = self.net.forward(self.net.getUnconnectedOutLayersNames())
        except cv2.error:
            logger.exception("Model inference failed")
            return None

        if len(outputs) < 2:
            logger.warning("Model returned %d outputs, expected boxes and scores", len(outputs))
            return None

        boxes = np.asarray(outputs[0], dtype=np.float32).reshape(-1, 4)
        scores = np.asarray(outputs[1], dtype=np.float32).reshape(-1)
        if scores.size == 0 or boxes.shape[0] == 0:
            return None

        best = int(np.argmax(scores[: boxes.shape[0]]))
        score = float(scores[best])
        if score < self.confidence_threshold:
            logger.debug("Best model score %.3f below threshold", score)
            return None

        y1, x1, y2, x2 = (float(v) for v in boxes[best])
        return CandidateRegion(
            x=math.floor(x1 * width),
            y=math.floor(y1 * height),
            width=(x2 - x1) * width,
            height=(y2 - y1) * height,
            score=score,
        )


def load_plate_model(model_path):
    """Load the trained detector if ``model_path`` points at a file.

    Returns:
        PlateModelDetector, or None to use edge analysis only
    """
    if not model_path:
        return None
    if not os.path.exists(model_path):
        logger.warning("No model found at %s, using image processing-based detection", model_path)
        return None
    try:
        return PlateModelDetector.from_path(model_path)
    except cv2.error:
        logger.exception("Error loading model %s", model_path)
        return None
