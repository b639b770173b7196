import os
import subprocess
import sys
import textwrap
import threading

import numpy as np
import pytest
import pytesseract

import ocr_engine
from ocr_engine import (
    OCREngineError,
    TesseractEngine,
    data_to_confidence,
    data_to_text,
    get_engine,
    terminate_engine,
)

SAMPLE_DATA = {
    "block_num": [1, 1, 1, 1, 1],
    "par_num": [1, 1, 1, 1, 1],
    "line_num": [0, 1, 1, 2, 2],
    "text": ["", "KA", "05", "", "1234"],
    "conf": ["-1", "91.5", "80", "-1", 70],
}


@pytest.fixture
def fake_tesseract(monkeypatch):
    calls = []

    def image_to_data(image, lang=None, config="", output_type=None, timeout=0):
        calls.append({"image": image, "lang": lang, "config": config, "timeout": timeout})
        return SAMPLE_DATA

    monkeypatch.setattr(pytesseract, "get_tesseract_version", lambda: "5.3.0")
    monkeypatch.setattr(pytesseract, "image_to_data", image_to_data)
    return calls


@pytest.fixture
def reset_engine(monkeypatch):
    monkeypatch.setattr(ocr_engine, "_engine", None)


def test_data_to_text_groups_lines():
    assert data_to_text(SAMPLE_DATA) == "KA 05\n1234"


def test_data_to_text_empty():
    assert data_to_text({}) == ""
    assert data_to_text({"block_num": [1], "par_num": [1], "line_num": [1], "text": ["  "]}) == ""


def test_data_to_confidence_ignores_non_words():
    assert data_to_confidence(SAMPLE_DATA) == pytest.approx((91.5 + 80 + 70) / 3)
    assert data_to_confidence({"text": ["", "A"], "conf": [-1, -1]}) == 0.0


def test_config_string():
    engine = TesseractEngine(engine_mode=1, segmentation_mode=7, char_whitelist="AB12")
    assert engine.config == "--oem 1 --psm 7 -c tessedit_char_whitelist=AB12"
    assert TesseractEngine(char_whitelist="").config == "--oem 1 --psm 7"


def test_run_sets_mode_and_returns_text(fake_tesseract):
    engine = TesseractEngine(language="eng", char_whitelist="", call_timeout=5)
    image = np.full((10, 20), 0.5, dtype=np.float32)

    text, confidence = engine.run(image, 8)

    assert text == "KA 05\n1234"
    assert confidence == pytest.approx(80.5)
    assert engine.segmentation_mode == 8
    assert fake_tesseract[0]["config"] == "--oem 1 --psm 8"
    assert fake_tesseract[0]["lang"] == "eng"
    assert fake_tesseract[0]["timeout"] == 5
    assert fake_tesseract[0]["image"].size == (20, 10)


def test_tesseract_failure_is_wrapped(monkeypatch, fake_tesseract):
    def fail(*args, **kwargs):
        raise RuntimeError("Tesseract process timeout")

    monkeypatch.setattr(pytesseract, "image_to_data", fail)
    with pytest.raises(OCREngineError):
        TesseractEngine().run(np.zeros((4, 4), dtype=np.uint8), 7)


def test_missing_tesseract_raises(monkeypatch):
    def not_found():
        raise pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(pytesseract, "get_tesseract_version", not_found)
    with pytest.raises(OCREngineError):
        TesseractEngine().start()


def test_terminated_engine_rejects_work(fake_tesseract):
    engine = TesseractEngine()
    engine.terminate()
    assert engine.terminated
    with pytest.raises(OCREngineError):
        engine.run(np.zeros((4, 4), dtype=np.uint8), 7)
    assert fake_tesseract == []


def test_concurrent_runs_keep_their_own_mode(monkeypatch):
    seen = []

    def image_to_data(image, lang=None, config="", output_type=None, timeout=0):
        seen.append(config)
        return {"block_num": [1], "par_num": [1], "line_num": [1], "text": [config], "conf": [90]}

    monkeypatch.setattr(pytesseract, "get_tesseract_version", lambda: "5.3.0")
    monkeypatch.setattr(pytesseract, "image_to_data", image_to_data)
    engine = TesseractEngine(char_whitelist="")
    results = {}

    def worker(mode):
        results[mode] = engine.run(np.zeros((4, 4), dtype=np.uint8), mode)[0]

    threads = [threading.Thread(target=worker, args=(mode,)) for mode in (6, 7, 8, 11, 13)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    for mode, text in results.items():
        assert text == f"--oem 1 --psm {mode}"
    assert len(seen) == 5


def test_get_engine_is_shared(fake_tesseract, reset_engine):
    first = get_engine()
    assert get_engine() is first


def test_terminate_engine_resets_shared_engine(fake_tesseract, reset_engine):
    first = get_engine()
    terminate_engine()
    assert first.terminated
    assert get_engine() is not first


def test_terminate_engine_without_engine(reset_engine):
    terminate_engine()
    assert ocr_engine._engine is None


SIGNAL_DURING_RUN = textwrap.dedent(
    """
    import atexit
    import os
    import signal
    import time

    import numpy as np
    import pytesseract

    import ocr_engine

    def report():
        print("terminated" if engine.terminated else "running", flush=True)

    def image_to_data(*args, **kwargs):
        os.kill(os.getpid(), signal.SIGTERM)
        time.sleep(10)

    pytesseract.get_tesseract_version = lambda: "5.3.0"
    pytesseract.image_to_data = image_to_data

    atexit.register(report)
    ocr_engine.install_shutdown_hooks()
    engine = ocr_engine.get_engine()
    engine.run(np.zeros((4, 4), dtype=np.uint8), 7)
    """
)


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signals")
def test_signal_during_recognition_exits_and_terminates_engine():
    root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    env = dict(os.environ, PYTHONPATH=root)

    completed = subprocess.run(
        [sys.executable, "-c", SIGNAL_DURING_RUN],
        cwd=root,
        env=env,
        capture_output=True,
        text=True,
        timeout=30,
    )

    assert completed.returncode == 0, completed.stderr
    assert completed.stdout.strip() == "terminated"
