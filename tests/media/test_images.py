from __future__ import annotations

import io
from pathlib import Path

import httpx
import pytest
from PIL import Image

from media.images import (
    ImageDerivationError,
    ImageDownloadError,
    VARIANTS,
    crop_center,
    derive_variants,
    prepare_image,
    resize,
    unique_file_name,
)


def _png_bytes(width: int = 1200, height: int = 800) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_unique_file_name_normalizes_extension():
    assert unique_file_name("https://cdn/x/photo.PNG?w=100").endswith(".png")
    assert unique_file_name("https://cdn/x/photo.gif").endswith(".gif")
    assert unique_file_name("https://cdn/x/photo").endswith(".jpg")
    assert unique_file_name("https://cdn/a.jpg") != unique_file_name("https://cdn/a.jpg")


def test_resize_keeps_aspect_ratio():
    image = Image.new("RGB", (1200, 800))

    assert resize(image, 0, 158).size == (237, 158)
    assert resize(image, 800, 0).size == (800, 533)


def test_crop_center_never_exceeds_source():
    image = Image.new("RGB", (100, 50))

    assert crop_center(image, 80, 80).size == (80, 50)


def test_derive_variants_writes_every_size(tmp_path: Path):
    source = tmp_path / "abc.png"
    source.write_bytes(_png_bytes())

    width, height, written = derive_variants(source)

    assert (width, height) == (1200, 800)
    assert set(written) == {variant.prefix for variant in VARIANTS}
    sizes = {prefix: Image.open(path).size for prefix, path in written.items()}
    assert sizes["s_"] == (111, 74)
    assert sizes["ssq_"] == (158, 158)
    assert sizes["m_"][0] == 506
    assert sizes["msq_"] == (506, 506)
    assert sizes["l_"] == (800, 533)


def test_derive_variants_rejects_garbage(tmp_path: Path):
    source = tmp_path / "bad.jpg"
    source.write_bytes(b"not an image")

    with pytest.raises(ImageDerivationError):
        derive_variants(source)


def test_prepare_image_downloads_and_derives(httpx_mock, tmp_path: Path):
    httpx_mock.add_response(url="https://cdn.example.com/pic.png", content=_png_bytes(600, 400))

    prepared = prepare_image("https://cdn.example.com/pic.png", tmp_path, client=httpx.Client())

    assert prepared.filename.endswith(".png")
    assert (prepared.width, prepared.height) == (600, 400)
    assert len(prepared.files) == 1 + len(VARIANTS)
    assert all((tmp_path / name).is_file() for name in prepared.files)


def test_prepare_image_cleans_up_on_failure(httpx_mock, tmp_path: Path):
    httpx_mock.add_response(url="https://cdn.example.com/broken.jpg", content=b"<html>nope</html>")

    with pytest.raises(ImageDerivationError):
        prepare_image("https://cdn.example.com/broken.jpg", tmp_path, client=httpx.Client())

    assert list(tmp_path.iterdir()) == []


def test_prepare_image_reports_http_errors(httpx_mock, tmp_path: Path):
    httpx_mock.add_response(url="https://cdn.example.com/missing.jpg", status_code=404)

    with pytest.raises(ImageDownloadError):
        prepare_image("https://cdn.example.com/missing.jpg", tmp_path, client=httpx.Client())


def test_download_rejects_malformed_url(tmp_path: Path):
    with pytest.raises(ImageDownloadError):
        prepare_image("http://cdn.example.com:abc/pic.png", tmp_path)

    assert list(tmp_path.iterdir()) == []


def test_derive_variants_rejects_oversized_images(monkeypatch, tmp_path: Path):
    source = tmp_path / "huge.png"
    source.write_bytes(_png_bytes(200, 200))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)

    with pytest.raises(ImageDerivationError):
        derive_variants(source)
