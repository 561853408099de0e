"""Image download and size-variant derivation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import httpx
from PIL import Image, UnidentifiedImageError

from crawler.models.domain import PreparedImage
from crawler.utils.logging import get_logger

logger = get_logger(__name__)

ALLOWED_EXTENSIONS = (".jpg", ".png", ".gif", ".webp")
DEFAULT_EXTENSION = ".jpg"


class MediaError(Exception):
    """Base media pipeline error."""


class ImageDownloadError(MediaError):
    """The original image could not be fetched."""


class ImageDerivationError(MediaError):
    """A variant could not be derived or saved."""


@dataclass(frozen=True)
class Variant:
    prefix: str
    width: int = 0
    height: int = 0
    crop: Optional[Tuple[int, int]] = None


# Resize keeps the aspect ratio (0 means "derive from the other side"),
# then the optional crop is anchored at the centre.
VARIANTS: Tuple[Variant, ...] = (
    Variant("s_", height=111, crop=(111, 74)),
    Variant("ssq_", height=158, crop=(158, 158)),
    Variant("m_", width=506),
    Variant("msq_", height=506, crop=(506, 506)),
    Variant("l_", width=800),
)


def unique_file_name(url: str) -> str:
    """UUID4 file name whose extension is normalized to the allow-list."""
    path = urlsplit(url).path.lower()
    extension = DEFAULT_EXTENSION
    for candidate in ALLOWED_EXTENSIONS:
        if candidate in path:
            extension = candidate
            break
    return f"{uuid.uuid4()}{extension}"


def download(url: str, destination: Path, *, client: Optional[httpx.Client] = None, timeout: float = 10.0) -> Path:
    try:
        if client is not None:
            resp = client.get(url, timeout=timeout)
        else:
            resp = httpx.get(url, timeout=timeout, follow_redirects=True)
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        raise ImageDownloadError(f"download of {url} failed: {exc}") from exc
    if resp.status_code >= 400:
        raise ImageDownloadError(f"{url} responded with {resp.status_code}")
    destination.write_bytes(resp.content)
    return destination


def resize(image: Image.Image, width: int, height: int) -> Image.Image:
    if width <= 0 and height <= 0:
        return image.copy()
    src_w, src_h = image.size
    if width <= 0:
        width = max(1, round(src_w * height / src_h))
    elif height <= 0:
        height = max(1, round(src_h * width / src_w))
    return image.resize((width, height), Image.Resampling.LANCZOS)


def crop_center(image: Image.Image, width: int, height: int) -> Image.Image:
    src_w, src_h = image.size
    width, height = min(width, src_w), min(height, src_h)
    left = (src_w - width) // 2
    top = (src_h - height) // 2
    return image.crop((left, top, left + width, top + height))


def derive_variants(source: Path, variants: Tuple[Variant, ...] = VARIANTS) -> Tuple[int, int, Dict[str, Path]]:
    """Write every variant next to ``source`` as ``<prefix><name>``.

    Returns the original pixel dimensions and the written paths.
    """
    try:
        with Image.open(source) as opened:
            opened.load()
            image = opened
            width, height = image.size
            if source.suffix == ".jpg" and image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            written: Dict[str, Path] = {}
            for variant in variants:
                derived = resize(image, variant.width, variant.height)
                if variant.crop is not None:
                    derived = crop_center(derived, *variant.crop)
                target = source.with_name(f"{variant.prefix}{source.name}")
                derived.save(target)
                written[variant.prefix] = target
    except (OSError, UnidentifiedImageError, Image.DecompressionBombError, ValueError) as exc:
        raise ImageDerivationError(f"cannot derive variants of {source.name}: {exc}") from exc
    return width, height, written


def prepare_image(
    url: str,
    temp_dir: Path,
    *,
    client: Optional[httpx.Client] = None,
    timeout: float = 10.0,
) -> PreparedImage:
    """Download ``url`` into ``temp_dir`` and derive its variants.

    On failure the partial files are removed so the upload pool never ships
    an incomplete set.
    """
    filename = unique_file_name(url)
    original = temp_dir / filename
    try:
        download(url, original, client=client, timeout=timeout)
        width, height, written = derive_variants(original)
    except MediaError:
        _cleanup(temp_dir, filename)
        raise
    files: List[str] = [filename] + [path.name for path in written.values()]
    logger.debug("media.prepared", extra={"image": filename, "width": width, "height": height})
    return PreparedImage(filename=filename, width=width, height=height, files=files)


def _cleanup(temp_dir: Path, filename: str) -> None:
    for prefix in ("",) + tuple(v.prefix for v in VARIANTS):
        (temp_dir / f"{prefix}{filename}").unlink(missing_ok=True)
