"""Shared URL utilities."""

from __future__ import annotations

from urllib.parse import urlparse


def normalize_case_url(url: str) -> str:
    """Return a navigable URL for a case, adding ``https://`` when no scheme is given.

    Raises ValueError when the result still has no host.
    """
    url = (url or "").strip()
    if not url:
        raise ValueError("Case has no URL")
    if "://" not in url and not url.startswith(("about:", "data:", "file:")):
        url = f"https://{url}"
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https") and not parsed.netloc:
        raise ValueError(f"Invalid case URL: {url}")
    return url
