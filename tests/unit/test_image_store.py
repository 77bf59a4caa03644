"""
Tests for the ImageStore upload target.
"""

import io
import re

import pytest
from PIL import Image

from atelier.services.image_store import (
    ImageStore,
    generate_ai_image_path,
    generate_image_path,
    inspect_image,
)


def png_bytes(size=(40, 30), color="red"):
    buffer = io.BytesIO()
    Image.new("RGB", size, color=color).save(buffer, "PNG")
    return buffer.getvalue()


@pytest.fixture
def image_store(tmp_path):
    return ImageStore(str(tmp_path / "media"), base_url="https://cdn.example.com/media")


def test_generate_image_path_cleans_filename():
    path = generate_image_path("hero", "My Photo (1).jpg")
    assert re.fullmatch(r"hero/\d+_My_Photo__1_\.jpg", path)


def test_generate_image_path_rejects_unknown_category():
    with pytest.raises(ValueError):
        generate_image_path("avatars", "a.png")


def test_generate_ai_image_path():
    assert generate_ai_image_path("hero/123_photo.jpg", 2) == "hero/123_photo_ai_v2.png"


def test_inspect_image():
    assert inspect_image(png_bytes((40, 30))) == ("PNG", (40, 30))
    with pytest.raises(ValueError):
        inspect_image(b"not an image")


def test_upload_writes_file_and_reports_progress(image_store, tmp_path):
    progress = []
    data = png_bytes((600, 400))

    url = image_store.upload(data, "hero/1_photo.png", progress.append)

    assert url == "https://cdn.example.com/media/hero/1_photo.png"
    assert (tmp_path / "media" / "hero" / "1_photo.png").read_bytes() == data
    assert progress[0] == 0
    assert progress[-1] == 100
    assert progress == sorted(progress)


def test_upload_rejects_non_images(image_store, tmp_path):
    with pytest.raises(ValueError):
        image_store.upload(b"plain text", "hero/1_notes.png")
    assert not (tmp_path / "media" / "hero" / "1_notes.png").exists()


def test_upload_rejects_paths_outside_root(image_store):
    with pytest.raises(ValueError):
        image_store.upload(png_bytes(), "../escape.png")


def test_delete_by_url_and_missing(image_store):
    url = image_store.upload(png_bytes(), "gallery/1_a.png")
    assert image_store.delete(url) is True
    assert image_store.delete(url) is False
    assert image_store.delete("gallery/never_existed.png") is False


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ATELIER_ASSET_ROOT", str(tmp_path / "assets"))
    monkeypatch.setenv("ATELIER_ASSET_BASE_URL", "https://cdn.example.com")

    store = ImageStore.from_env()

    assert store.root == tmp_path / "assets"
    assert store.base_url == "https://cdn.example.com/"
    assert store.url_for("blog/1_a.png") == "https://cdn.example.com/blog/1_a.png"
