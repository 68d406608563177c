import json
import logging

import pytest

from evidence_integrity.logging_config import capture_id_var


SCREENSHOT = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 8
PAGE_HTML = "<html><body><h1>Publicação</h1></body></html>".encode("utf-8")
METADATA = {
    "url": "https://example.com/post/42",
    "capturedAt": "2025-01-10T12:00:00.000Z",
    "viewport": {"width": 1920, "height": 1080},
    "userAgent": "Mozilla/5.0",
}


@pytest.fixture(autouse=True)
def _reset_capture_id():
    token = capture_id_var.set("")
    yield
    capture_id_var.reset(token)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    # the CLI reconfigures the root logger
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def capture_dir(tmp_path):
    """A captured page on disk: screenshot, HTML and metadata."""
    (tmp_path / "screenshot.png").write_bytes(SCREENSHOT)
    (tmp_path / "page.html").write_bytes(PAGE_HTML)
    (tmp_path / "metadata.json").write_text(json.dumps(METADATA), encoding="utf-8")
    return tmp_path
