"""File naming, format detection and output storage helpers."""

import os
import time

import pytest

import config
from models import ImageFormat
from utils.file_handler import (
    cleanup_old_files, detect_image_format, extract_filename_from_url, generate_output_filename,
    get_download_url, parse_content_disposition, resolve_output_path, save_output_file
)


@pytest.mark.parametrize("name,expected", [
    ("jpeg", ImageFormat.JPEG),
    ("JPG", ImageFormat.JPEG),
    (".jpg", ImageFormat.JPEG),
    ("image/jpeg", ImageFormat.JPEG),
    ("image/png; charset=binary", ImageFormat.PNG),
    ("webp", ImageFormat.WEBP),
    ("gif", None),
    ("", None),
    (None, None),
])
def test_image_format_from_name(name, expected):
    assert ImageFormat.from_name(name) is expected


def test_image_format_properties():
    assert ImageFormat.JPEG.content_type == "image/jpeg"
    assert ImageFormat.JPEG.extension == ".jpg"
    assert ImageFormat.WEBP.extension == ".webp"
    assert ImageFormat.PNG.pil_format == "PNG"


def test_detect_image_format():
    assert detect_image_format(".png") is ImageFormat.PNG
    assert detect_image_format("", "image/webp") is ImageFormat.WEBP
    assert detect_image_format(".gif", "image/gif") is None
    assert detect_image_format("", "application/octet-stream") is None


def test_output_filename_uses_output_extension():
    name = generate_output_filename("holiday.png", ImageFormat.JPEG)
    assert name.startswith("watermarked_holiday_")
    assert name.endswith(".jpg")
    assert generate_output_filename("holiday.png") != generate_output_filename("holiday.png")


def test_parse_content_disposition():
    assert parse_content_disposition('attachment; filename="photo.jpg"') == "photo.jpg"
    assert parse_content_disposition("attachment; filename*=UTF-8''%E5%9B%BE%E7%89%87.png") == "图片.png"
    assert parse_content_disposition("") is None


def test_extract_filename_from_url():
    assert extract_filename_from_url("https://cdn.example.com/a/b/photo%201.webp?x=1") == "photo 1.webp"
    assert extract_filename_from_url("https://cdn.example.com/images/") is None


def test_save_and_resolve_output(output_dirs):
    output_dir, _ = output_dirs
    path = save_output_file(b"data", "watermarked_a.png")
    assert path == output_dir / "watermarked_a.png"
    assert resolve_output_path("watermarked_a.png") == path
    assert resolve_output_path("missing.png") is None
    assert resolve_output_path("../config.py") is None
    assert resolve_output_path(".hidden") is None


def test_download_url(monkeypatch):
    monkeypatch.setattr(config, "DOWNLOAD_URL_PREFIX", "https://files.example.com/download")
    assert get_download_url("x.jpg") == "https://files.example.com/download/x.jpg"


def test_cleanup_removes_only_expired_files(output_dirs, monkeypatch):
    output_dir, temp_dir = output_dirs
    monkeypatch.setattr(config, "FILE_RETENTION_SECONDS", 60)
    old = output_dir / "old.jpg"
    fresh = output_dir / "fresh.jpg"
    stale_temp = temp_dir / "upload.tmp"
    for path in (old, fresh, stale_temp):
        path.write_bytes(b"x")
    expired = time.time() - 3600
    os.utime(old, (expired, expired))
    os.utime(stale_temp, (expired, expired))

    assert cleanup_old_files() == 2
    assert not old.exists()
    assert not stale_temp.exists()
    assert fresh.exists()
