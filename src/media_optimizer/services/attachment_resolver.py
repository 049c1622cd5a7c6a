"""Map URLs and filesystem paths back to media library ids."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Protocol
from urllib.parse import urlsplit

from ..config import UploadPaths

logger = logging.getLogger(__name__)

_SIZE_SUFFIX = re.compile(r"-\d+x\d+(?=\.[A-Za-z0-9]+$)")


class AttachmentLookup(Protocol):
    def id_for_url(self, url: str) -> int | None: ...

    def id_for_relative_path(self, relative_path: str) -> int | None: ...

    def id_for_cdn_url(self, url: str) -> int | None: ...


def strip_size_suffix(relative_path: str) -> str:
    """``2024/01/img-300x200.jpg`` -> ``2024/01/img.jpg``."""
    return _SIZE_SUFFIX.sub("", relative_path)


class AttachmentResolver:
    """Recover an asset id from an absolute URL, CDN URL or local path."""

    def __init__(self, lookup: AttachmentLookup, upload_paths: UploadPaths) -> None:
        self._lookup = lookup
        self._paths = upload_paths

    def resolve(self, reference: str | Path) -> int | None:
        value = str(reference).strip()
        if not value:
            return None
        if value.lower().startswith(("http://", "https://")):
            return self.from_url(value)
        return self.from_file_path(value)

    def from_url(self, url: str) -> int | None:
        asset_id = self._lookup.id_for_url(url)
        if asset_id is not None:
            return asset_id

        relative = self._paths.relative_from_url(url)
        if relative is not None:
            asset_id = self._match_relative(relative)
            if asset_id is not None:
                return asset_id

        clean_url = urlsplit(url)._replace(query="", fragment="").geturl()
        asset_id = self._lookup.id_for_cdn_url(url)
        if asset_id is None and clean_url != url:
            asset_id = self._lookup.id_for_cdn_url(clean_url)
        if asset_id is None:
            logger.debug("resolver.url_unmatched", extra={"url": url})
        return asset_id

    def from_file_path(self, path: str | Path) -> int | None:
        relative = self._paths.relative_path(path)
        if relative is None:
            logger.debug("resolver.path_outside_uploads", extra={"path": str(path)})
            return None
        return self._match_relative(relative)

    def _match_relative(self, relative: str) -> int | None:
        asset_id = self._lookup.id_for_relative_path(relative)
        if asset_id is not None:
            return asset_id
        original = strip_size_suffix(relative)
        if original != relative:
            return self._lookup.id_for_relative_path(original)
        return None


__all__ = ["AttachmentLookup", "AttachmentResolver", "strip_size_suffix"]
