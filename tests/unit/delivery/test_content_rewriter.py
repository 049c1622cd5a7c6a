from __future__ import annotations

import re

import pytest

from src.media_optimizer.config import UploadPaths
from src.media_optimizer.delivery.content_rewriter import ContentRewriter
from src.media_optimizer.domain.models import ConvertedFileSet, Format
from src.media_optimizer.repositories.attachment_repository import AttachmentRepository
from src.media_optimizer.services.attachment_resolver import AttachmentResolver
from tests.helpers.media import UPLOAD_BASE_URL, write_upload


def _converted(upload_paths: UploadPaths, asset_id: int, stem: str, *formats: Format) -> ConvertedFileSet:
    files = {}
    for fmt in formats:
        files[fmt] = write_upload(upload_paths, f"{stem}{fmt.extension}", b"converted")
    return ConvertedFileSet(asset_id=asset_id, files=files)


@pytest.mark.unit
def test_image_gets_picture_with_avif_then_webp(upload_paths: UploadPaths) -> None:
    write_upload(upload_paths, "2024/01/img.jpg")
    files = _converted(upload_paths, 1, "2024/01/img", Format.WEBP, Format.AVIF)
    img = f'<img src="{UPLOAD_BASE_URL}/2024/01/img.jpg" alt="A &amp; B" class="wp-image-1">'

    html = ContentRewriter(upload_paths).render(img, 1, files)

    assert html.startswith("<picture>")
    assert html.endswith(f"{img}</picture>")
    avif = html.index('type="image/avif"')
    webp = html.index('type="image/webp"')
    assert avif < webp < html.index("<img")
    assert f'srcset="{UPLOAD_BASE_URL}/2024/01/img.avif"' in html
    assert f'srcset="{UPLOAD_BASE_URL}/2024/01/img.webp"' in html


@pytest.mark.unit
def test_empty_file_set_returns_original(upload_paths: UploadPaths) -> None:
    img = '<img src="https://x.test/a.jpg">'

    assert ContentRewriter(upload_paths).render(img, 1, ConvertedFileSet(asset_id=1)) == img


@pytest.mark.unit
def test_srcset_keeps_only_widths_with_converted_siblings(upload_paths: UploadPaths) -> None:
    for size in ("320x200", "640x400", "1024x640"):
        write_upload(upload_paths, f"2024/01/img-{size}.jpg")
    write_upload(upload_paths, "2024/01/img-320x200.avif", b"converted")
    write_upload(upload_paths, "2024/01/img-640x400.avif", b"converted")
    files = _converted(upload_paths, 1, "2024/01/img", Format.AVIF)
    base = f"{UPLOAD_BASE_URL}/2024/01"
    img = (
        f'<img src="{base}/img-640x400.jpg" '
        f'srcset="{base}/img-320x200.jpg 320w, {base}/img-640x400.jpg 640w, {base}/img-1024x640.jpg 1024w" '
        'sizes="(max-width: 640px) 100vw, 640px">'
    )

    html = ContentRewriter(upload_paths).render(img, 1, files)

    source = re.search(r'<source [^>]*type="image/avif"[^>]*>', html).group(0)
    assert f"{base}/img-320x200.avif 320w, {base}/img-640x400.avif 640w" in source
    assert "1024" not in source
    assert 'sizes="(max-width: 640px) 100vw, 640px"' in source
    assert 'type="image/webp"' not in html


@pytest.mark.unit
def test_video_sources_precede_original(upload_paths: UploadPaths) -> None:
    files = _converted(upload_paths, 4, "2024/01/clip", Format.AV1, Format.WEBM)
    video = (
        f'<video controls poster="{UPLOAD_BASE_URL}/2024/01/poster.jpg">'
        f'<source src="{UPLOAD_BASE_URL}/2024/01/clip.mp4" type="video/mp4"></video>'
    )

    html = ContentRewriter(upload_paths).render(video, 4, files)

    av1 = html.index(f'src="{UPLOAD_BASE_URL}/2024/01/clip.av1"')
    webm = html.index(f'src="{UPLOAD_BASE_URL}/2024/01/clip.webm"')
    original = html.index(f'src="{UPLOAD_BASE_URL}/2024/01/clip.mp4"')
    assert av1 < webm < original
    assert 'type="video/mp4; codecs=&quot;av01.0.05M.08&quot;"' in html
    assert html.startswith(f'<video controls poster="{UPLOAD_BASE_URL}/2024/01/poster.jpg">')


@pytest.mark.unit
def test_video_src_attribute_moves_to_trailing_source(upload_paths: UploadPaths) -> None:
    files = _converted(upload_paths, 4, "2024/01/clip", Format.WEBM)
    video = f'<video src="{UPLOAD_BASE_URL}/2024/01/clip.mp4" controls></video>'

    html = ContentRewriter(upload_paths).render(video, 4, files)

    assert html == (
        "<video controls>"
        f'<source src="{UPLOAD_BASE_URL}/2024/01/clip.webm" type="video/webm">'
        f'<source src="{UPLOAD_BASE_URL}/2024/01/clip.mp4" type="video/mp4">'
        "</video>"
    )


@pytest.mark.unit
def test_rewrite_url_prefers_avif(upload_paths: UploadPaths) -> None:
    write_upload(upload_paths, "2024/01/img.jpg")
    files = _converted(upload_paths, 1, "2024/01/img", Format.WEBP, Format.AVIF)
    rewriter = ContentRewriter(upload_paths)

    assert rewriter.rewrite_url(f"{UPLOAD_BASE_URL}/2024/01/img.jpg", files.files) == (
        f"{UPLOAD_BASE_URL}/2024/01/img.avif"
    )
    assert rewriter.rewrite_url("https://elsewhere.test/img.jpg", files.files) == "https://elsewhere.test/img.jpg"


@pytest.mark.unit
def test_rewrite_content_handles_each_element_once(
    upload_paths: UploadPaths, attachments: AttachmentRepository
) -> None:
    write_upload(upload_paths, "2024/01/img.jpg")
    asset = attachments.add(relative_path="2024/01/img.jpg", mime_type="image/jpeg")
    files = _converted(upload_paths, asset.id, "2024/01/img", Format.WEBP)
    lookups: list[int] = []

    def _lookup(asset_id: int) -> ConvertedFileSet:
        lookups.append(asset_id)
        return files

    rewriter = ContentRewriter(
        upload_paths,
        resolver=AttachmentResolver(attachments, upload_paths),
        files_lookup=_lookup,
    )
    img = f'<img src="{UPLOAD_BASE_URL}/2024/01/img.jpg">'
    existing = f"<picture><source srcset=\"x.webp\">{img}</picture>"
    content = f"<p>{img}</p><p>{img}</p>{existing}<img src=\"https://elsewhere.test/x.jpg\">"

    html = rewriter.rewrite_content(content)

    assert html.count("<picture>") == 3
    assert html.count('type="image/webp"') == 2
    assert html.endswith('<img src="https://elsewhere.test/x.jpg">')
    assert lookups == [asset.id]


@pytest.mark.unit
def test_rewrite_content_handles_gt_inside_quoted_attribute(
    upload_paths: UploadPaths, attachments: AttachmentRepository
) -> None:
    write_upload(upload_paths, "2024/01/img.jpg")
    asset = attachments.add(relative_path="2024/01/img.jpg", mime_type="image/jpeg")
    files = _converted(upload_paths, asset.id, "2024/01/img", Format.WEBP)
    rewriter = ContentRewriter(
        upload_paths,
        resolver=AttachmentResolver(attachments, upload_paths),
        files_lookup=lambda asset_id: files,
    )
    img = f'<img src="{UPLOAD_BASE_URL}/2024/01/img.jpg" alt="a > b" loading="lazy">'

    html = rewriter.rewrite_content(f"<p>{img}</p>")

    assert html == (
        f'<p><picture><source type="image/webp" srcset="{UPLOAD_BASE_URL}/2024/01/img.webp">'
        f"{img}</picture></p>"
    )
