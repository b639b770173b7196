import cv2
import numpy as np
import pytest


class FakeEngine:
    """Scripted stand-in for TesseractEngine.

    Each call to run() pops the next (text, confidence) pair and records the
    segmentation mode it was given.
    """

    def __init__(self, results):
        self.results = list(results)
        self.modes = []
        self.images = []

    def run(self, image, segmentation_mode):
        self.modes.append(segmentation_mode)
        self.images.append(image)
        if not self.results:
            return "", 0.0
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def encode_png():
    def _encode(image):
        ok, buf = cv2.imencode(".png", image)
        assert ok
        return buf.tobytes()

    return _encode


@pytest.fixture
def black_image():
    return np.zeros((200, 200, 3), dtype=np.uint8)


@pytest.fixture
def noise_patch_image():
    """Flat gray 200x200 image with a 100x30 noise patch at (50, 120)."""
    rng = np.random.default_rng(7)
    image = np.full((200, 200, 3), 128, dtype=np.uint8)
    patch = rng.integers(0, 256, size=(30, 100), dtype=np.uint8)
    image[120:150, 50:150] = patch[:, :, None]
    return image


@pytest.fixture
def plate_crop_image():
    """White plate-like crop with dark text, 60x200."""
    image = np.full((60, 200, 3), 255, dtype=np.uint8)
    cv2.putText(image, "AB123", (10, 45), cv2.FONT_HERSHEY_SIMPLEX, 1.4, (0, 0, 0), 3)
    return image


@pytest.fixture
def fake_engine_factory():
    return FakeEngine
