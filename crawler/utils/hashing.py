"""Headline identity hashing."""

from __future__ import annotations

import hashlib


def content_hash(link: str) -> str:
    """Return the 128-bit hex digest identifying a harvested link.

    Only the link string is hashed, so a re-titled headline keeps its identity.
    """
    return hashlib.md5(link.encode("utf-8")).hexdigest()  # noqa: S324 - identity key, not a security boundary
