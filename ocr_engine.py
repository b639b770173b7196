"""
Tesseract OCR engine handle.

One engine is shared per process. Its segmentation mode is mutable, so a
configure + recognize pair always runs under the engine lock.
"""

import atexit
import logging
import signal
import sys
import threading

import pytesseract
from PIL import Image

import anpr_config
from image_ops import to_uint8

logger = logging.getLogger(__name__)


class OCREngineError(RuntimeError):
    """Tesseract is unavailable, terminated, or a recognition call failed."""


def data_to_text(data):
    """Join image_to_data words into text, one output line per Tesseract line."""
    lines = []
    words = []
    current_line = None

    for block, par, line, word in zip(
        data.get("block_num", []),
        data.get("par_num", []),
        data.get("line_num", []),
        data.get("text", []),
    ):
        word = str(word or "").strip()
        if not word:
            continue
        key = (block, par, line)
        if key != current_line:
            if words:
                lines.append(" ".join(words))
            words = []
            current_line = key
        words.append(word)

    if words:
        lines.append(" ".join(words))
    return "\n".join(lines)


def data_to_confidence(data):
    """Mean word confidence (0-100); Tesseract reports -1 for non-words."""
    valid = []
    for word, conf in zip(data.get("text", []), data.get("conf", [])):
        if not str(word or "").strip():
            continue
        try:
            value = float(conf)
        except (TypeError, ValueError):
            continue
        if value >= 0.0:
            valid.append(value)

    if not valid:
        return 0.0
    return max(0.0, min(100.0, sum(valid) / len(valid)))


class TesseractEngine:
    """Tesseract via pytesseract, with lock-guarded mutable configuration."""

    def __init__(
        self,
        language=anpr_config.OCR_LANGUAGE,
        engine_mode=anpr_config.OCR_ENGINE_MODE,
        segmentation_mode=anpr_config.OCR_DEFAULT_MODE,
        char_whitelist=anpr_config.OCR_CHAR_WHITELIST,
        call_timeout=anpr_config.OCR_CALL_TIMEOUT,
        tesseract_cmd=anpr_config.TESSERACT_CMD,
    ):
        self.language = language
        self.engine_mode = engine_mode
        self.segmentation_mode = segmentation_mode
        self.char_whitelist = char_whitelist
        self.call_timeout = call_timeout
        self.tesseract_cmd = tesseract_cmd

        self._lock = threading.Lock()
        self._started = False
        self._terminated = False

    @property
    def config(self):
        """Tesseract command-line options for the current configuration."""
        options = f"--oem {self.engine_mode} --psm {self.segmentation_mode}"
        if self.char_whitelist:
            options += f" -c tessedit_char_whitelist={self.char_whitelist}"
        return options

    @property
    def terminated(self):
        return self._terminated

    def start(self):
        """Check that Tesseract is installed and reachable."""
        with self._lock:
            self._start()

    def run(self, image, segmentation_mode):
        """Configure the segmentation mode and recognize ``image`` atomically.

        Args:
            image: Grayscale image, uint8 or [0, 1] float
            segmentation_mode: Tesseract page segmentation mode (psm)

        Returns:
            tuple: (text, confidence 0-100)
        """
        with self._lock:
            if self._terminated:
                raise OCREngineError("OCR engine has been terminated")
            if not self._started:
                self._start()
            self.segmentation_mode = segmentation_mode
            return self._recognize(image)

    def terminate(self):
        """Shut the engine down once any in-flight recognition finishes."""
        with self._lock:
            self._terminated = True

    def _start(self):
        if self._started:
            return
        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        try:
            version = pytesseract.get_tesseract_version()
        except (OSError, RuntimeError) as e:
            raise OCREngineError(
                "Tesseract OCR is not properly installed or configured"
            ) from e
        self._started = True
        logger.info("OCR engine initialized (tesseract %s, lang=%s)", version, self.language)

    def _recognize(self, image):
        pil_image = Image.fromarray(to_uint8(image))
        try:
            data = pytesseract.image_to_data(
                pil_image,
                lang=self.language,
                config=self.config,
                output_type=pytesseract.Output.DICT,
                timeout=self.call_timeout,
            )
        except (OSError, RuntimeError) as e:
            raise OCREngineError(f"Tesseract call failed: {e}") from e

        return data_to_text(data), data_to_confidence(data)


_engine = None
_engine_lock = threading.Lock()


def get_engine():
    """Return the process-wide engine, creating it on first use."""
    global _engine
    with _engine_lock:
        if _engine is None:
            engine = TesseractEngine()
            engine.start()
            _engine = engine
        return _engine


def terminate_engine():
    """Terminate the process-wide engine, waiting for in-flight work."""
    global _engine
    with _engine_lock:
        engine, _engine = _engine, None
    if engine is not None:
        engine.terminate()
        logger.info("OCR worker terminated")


def install_shutdown_hooks():
    """Terminate the engine at exit and on SIGINT / SIGTERM / SIGQUIT.

    The signal handler only raises SystemExit. The handler may run on a
    thread that holds the engine lock, so the lock is released while the
    stack unwinds and the atexit hook does the actual teardown.
    """
    atexit.register(terminate_engine)

    def _handle_signal(signum, frame):
        logger.info("Received signal %d, exiting", signum)
        sys.exit(0)

    for name in ("SIGINT", "SIGTERM", "SIGQUIT"):
        signum = getattr(signal, name, None)
        if signum is not None:
            signal.signal(signum, _handle_signal)
