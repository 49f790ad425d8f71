"""
Local copies of downloaded sub-sitemaps.

One file per sub-sitemap, named from the basename of the URL path. The
directory is a fallback source and a write target, never authoritative.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import urljoin, urlparse

from django.conf import settings

logger = logging.getLogger(__name__)


def _natural_key(name: str):
    """Sort key treating digit runs as numbers: page2 < page10."""
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", name)]


class LocalSitemapCache:
    """
    Filesystem store for sub-sitemap bodies.
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        self.directory = Path(
            directory or getattr(settings, "CRAWLER_SITEMAP_CACHE_DIR", "sitemaps")
        )

    @staticmethod
    def filename_for(url: str) -> str:
        """Local file name for a sub-sitemap URL (basename of its path)."""
        name = Path(urlparse(url).path).name
        return name or "sitemap.xml"

    def path_for(self, url: str) -> Path:
        return self.directory / self.filename_for(url)

    def has(self, url: str) -> bool:
        return self.path_for(url).is_file()

    def read(self, url: str) -> Optional[bytes]:
        """Return the cached body for ``url``, or None if there is none."""
        path = self.path_for(url)
        if not path.is_file():
            return None
        return path.read_bytes()

    def write(self, url: str, content: bytes) -> Path:
        """Store ``content`` as the local copy of ``url``, replacing any previous copy."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(url)
        path.write_bytes(content)
        logger.debug(f"Saved {len(content)} bytes for {url} to {path}")
        return path

    def list_files(self, marker: str = "") -> List[str]:
        """
        File names of cached ``*.xml`` sitemaps containing ``marker``,
        natural-sorted.
        """
        if not self.directory.is_dir():
            return []

        names = [
            p.name
            for p in self.directory.glob("*.xml")
            if p.is_file() and marker in p.name
        ]
        return sorted(names, key=_natural_key)

    def rebuild_urls(self, index_url: str, marker: str = "") -> List[str]:
        """
        Rebuild sub-sitemap URLs from the cached files, resolved relative to
        the sitemap index URL.
        """
        return [urljoin(index_url, name) for name in self.list_files(marker)]
