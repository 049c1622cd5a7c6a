"""Render-time format negotiation for images and videos.

An original ``<img>`` becomes the last child of a ``<picture>`` element with
one ``<source>`` per converted format ahead of it (AVIF, then WebP). Videos
receive ``<source>`` children for AV1 and WebM ahead of the original source.
The original markup is kept as-is so unsupported clients see exactly what
they saw before.
"""

from __future__ import annotations

import html
import logging
import re
from pathlib import Path
from typing import Callable, Mapping

from bs4 import BeautifulSoup

from ..config import UploadPaths
from ..domain.models import DELIVERY_ORDER, ConvertedFileSet, Format, MediaType
from ..services.attachment_resolver import AttachmentResolver
from ..services.conversion_engine import guess_mime_type
from .srcset import SrcsetCandidate, format_srcset, parse_srcset, swap_extension

logger = logging.getLogger(__name__)

FilesLookup = Callable[[int], ConvertedFileSet]

# Attribute text up to the closing ">", quoted values may contain ">".
_TAG_BODY = r"""(?:[^>"']|"[^"]*"|'[^']*')*"""

_CONTENT_ELEMENTS = re.compile(
    rf"<picture\b.*?</picture>|<video\b.*?</video>|<img\b{_TAG_BODY}>",
    re.IGNORECASE | re.DOTALL,
)
_VIDEO_ELEMENT = re.compile(
    rf"^(?P<lead>\s*)(?P<open><video\b{_TAG_BODY}>)(?P<inner>.*?)(?P<close></video>)(?P<trail>\s*)$",
    re.IGNORECASE | re.DOTALL,
)
_SRC_ATTRIBUTE = re.compile(
    r"\s+src\s*=\s*(?:\"[^\"]*\"|'[^']*'|[^\s>]+)",
    re.IGNORECASE,
)


def _attributes(markup: str, name: str) -> dict[str, str]:
    soup = BeautifulSoup(markup, "html.parser", multi_valued_attributes=None)
    element = soup.find(name)
    if element is None:
        return {}
    return {key: value if isinstance(value, str) else " ".join(value) for key, value in element.attrs.items()}


def _source_tag(attributes: Mapping[str, str]) -> str:
    rendered = " ".join(
        f'{key}="{html.escape(value, quote=True)}"' for key, value in attributes.items()
    )
    return f"<source {rendered}>"


class ContentRewriter:
    """Turn single-format media references into fallback chains."""

    def __init__(
        self,
        upload_paths: UploadPaths,
        *,
        resolver: AttachmentResolver | None = None,
        files_lookup: FilesLookup | None = None,
    ) -> None:
        self._paths = upload_paths
        self._resolver = resolver
        self._files_lookup = files_lookup

    # ------------------------------------------------------------------
    # Single references
    # ------------------------------------------------------------------
    def render(
        self,
        original_reference: str,
        asset_id: int,
        converted_files: ConvertedFileSet | Mapping[Format, Path],
    ) -> str:
        files = self._as_mapping(converted_files)
        if not files:
            return original_reference
        head = original_reference.lstrip()[:6].lower()
        if head.startswith("<img"):
            return self.render_image(original_reference, files)
        if head.startswith("<video"):
            return self.render_video(original_reference, files)
        if head.startswith("http") or head.startswith("/"):
            return self.rewrite_url(original_reference, files)
        logger.debug("rewriter.reference_unrecognized", extra={"asset_id": asset_id})
        return original_reference

    def render_image(self, img_tag: str, files: Mapping[Format, Path]) -> str:
        attributes = _attributes(img_tag, "img")
        src = attributes.get("src", "")
        srcset = attributes.get("srcset")
        sizes = attributes.get("sizes")

        sources: list[str] = []
        for fmt in DELIVERY_ORDER[MediaType.IMAGE]:
            if fmt not in files:
                continue
            candidates = self._format_candidates(fmt, files[fmt], src=src, srcset=srcset)
            if not candidates:
                continue
            source_attributes = {"type": fmt.mime_type, "srcset": candidates}
            if sizes:
                source_attributes["sizes"] = sizes
            sources.append(_source_tag(source_attributes))

        if not sources:
            return img_tag
        return f"<picture>{''.join(sources)}{img_tag}</picture>"

    def render_video(self, video_markup: str, files: Mapping[Format, Path]) -> str:
        match = _VIDEO_ELEMENT.match(video_markup)
        if match is None:
            return video_markup
        open_tag, inner = match["open"], match["inner"]
        attributes = _attributes(open_tag + "</video>", "video")
        src = attributes.get("src")

        sources: list[str] = []
        for fmt in DELIVERY_ORDER[MediaType.VIDEO]:
            if fmt not in files:
                continue
            url = self._paths.url_for(files[fmt])
            if url is None or url in inner:
                continue
            sources.append(_source_tag({"src": url, "type": fmt.mime_type}))
        if not sources:
            return video_markup

        if src:
            # A src attribute would shadow every <source> child.
            open_tag = _SRC_ATTRIBUTE.sub("", open_tag, count=1)
            fallback = {"src": src}
            mime_type = guess_mime_type(src.split("?", 1)[0])
            if mime_type:
                fallback["type"] = mime_type
            sources.append(_source_tag(fallback))

        return f"{match['lead']}{open_tag}{''.join(sources)}{inner}{match['close']}{match['trail']}"

    def rewrite_url(self, url: str, files: Mapping[Format, Path]) -> str:
        """Return the URL of the most modern converted sibling of ``url``."""
        for media_type in (MediaType.IMAGE, MediaType.VIDEO):
            for fmt in Format.for_media_type(media_type):
                if fmt not in files:
                    continue
                converted = self._converted_url(url, fmt)
                if converted is not None:
                    return converted
        return url

    # ------------------------------------------------------------------
    # Post content
    # ------------------------------------------------------------------
    def rewrite_content(self, content: str) -> str:
        """Rewrite every image and video of a post body."""
        if self._resolver is None or self._files_lookup is None or not content:
            return content
        cache: dict[int, ConvertedFileSet] = {}

        def _replace(match: re.Match[str]) -> str:
            element = match.group(0)
            lowered = element[:8].lower()
            if lowered.startswith("<picture"):
                return element
            is_video = lowered.startswith("<video")
            reference = self._video_reference(element) if is_video else _attributes(element, "img").get("src")
            if not reference:
                return element
            asset_id = self._resolver.resolve(reference)  # type: ignore[union-attr]
            if asset_id is None:
                return element
            if asset_id not in cache:
                cache[asset_id] = self._files_lookup(asset_id)  # type: ignore[misc]
            return self.render(element, asset_id, cache[asset_id])

        return _CONTENT_ELEMENTS.sub(_replace, content)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _format_candidates(self, fmt: Format, converted: Path, *, src: str, srcset: str | None) -> str:
        if srcset:
            kept = [
                SrcsetCandidate(url=url, descriptor=candidate.descriptor)
                for candidate in parse_srcset(srcset)
                if (url := self._converted_url(candidate.url, fmt)) is not None
            ]
            if kept:
                return format_srcset(kept)
        if src:
            swapped = self._converted_url(src, fmt)
            if swapped is not None:
                return swapped
        return self._paths.url_for(converted) or ""

    def _converted_url(self, url: str, fmt: Format) -> str | None:
        """``url`` with ``fmt`` substituted, when that sibling exists on disk."""
        original = self._paths.path_for_url(url)
        if original is None:
            return None
        if not original.with_suffix(fmt.extension).is_file():
            return None
        return swap_extension(url, fmt.extension)

    @staticmethod
    def _video_reference(element: str) -> str | None:
        attributes = _attributes(element, "video")
        if attributes.get("src"):
            return attributes["src"]
        source = _attributes(element, "source")
        return source.get("src")

    @staticmethod
    def _as_mapping(converted_files: ConvertedFileSet | Mapping[Format, Path]) -> dict[Format, Path]:
        if isinstance(converted_files, ConvertedFileSet):
            return dict(converted_files.files)
        return {Format(fmt): Path(path) for fmt, path in converted_files.items()}


__all__ = ["ContentRewriter"]
