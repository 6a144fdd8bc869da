"""Shared fixtures for the watermark service tests.

``config`` creates its output directories on import, so the environment is
pointed at throwaway directories before anything imports it.
"""

import io
import os
import tempfile

os.environ.setdefault("WATERMARK_OUTPUT_DIR", tempfile.mkdtemp(prefix="wm-output-"))
os.environ.setdefault("WATERMARK_TEMP_DIR", tempfile.mkdtemp(prefix="wm-temp-"))

import pytest
from PIL import Image

import config


@pytest.fixture(autouse=True)
def no_settings_file(monkeypatch):
    """Tests start from the built-in default table only."""
    monkeypatch.setattr(config, "WATERMARK_SETTINGS_FILE", "")


@pytest.fixture
def make_image_bytes():
    """Factory producing a solid-color image encoded in memory."""
    def _make(fmt="JPEG", size=(800, 600), color=(255, 0, 0), mode="RGB"):
        img = Image.new(mode, size, color)
        buf = io.BytesIO()
        params = {"quality": 95} if fmt in ("JPEG", "WEBP") else {}
        img.save(buf, format=fmt, **params)
        return buf.getvalue()
    return _make


@pytest.fixture
def output_dirs(tmp_path, monkeypatch):
    output_dir = tmp_path / "output"
    temp_dir = tmp_path / "temp"
    output_dir.mkdir()
    temp_dir.mkdir()
    monkeypatch.setattr(config, "OUTPUT_DIR", output_dir)
    monkeypatch.setattr(config, "TEMP_DIR", temp_dir)
    return output_dir, temp_dir


@pytest.fixture
def client(output_dirs):
    from fastapi.testclient import TestClient
    from main import app
    return TestClient(app)
