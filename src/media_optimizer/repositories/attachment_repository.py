"""Persistence layer for the host media library entries."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..db.db_models import AttachmentModel
from ..domain.models import MediaAsset
from ..exceptions import handle_sqlalchemy_errors
from ..infrastructure.sqlalchemy.schema import conversions


class AttachmentRepository:
    """Read host attachment metadata and the per-asset conversion flag."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def add(
        self,
        *,
        relative_path: str,
        mime_type: str,
        url: str | None = None,
        width: int | None = None,
        height: int | None = None,
        size_variants: Iterable[str] = (),
        cdn_urls: Iterable[str] = (),
        title: str | None = None,
        asset_id: int | None = None,
    ) -> MediaAsset:
        with handle_sqlalchemy_errors(entity="attachment"), self._session_factory() as session:
            model = AttachmentModel(
                id=asset_id,
                url=url,
                relative_path=relative_path,
                mime_type=mime_type,
                width=width,
                height=height,
                size_variants=list(size_variants),
                cdn_urls=list(cdn_urls),
                title=title,
            )
            session.add(model)
            session.commit()
            return self._to_domain(model)

    def get(self, asset_id: int) -> MediaAsset | None:
        with self._session_factory() as session:
            model = session.get(AttachmentModel, asset_id)
            return self._to_domain(model) if model is not None else None

    def id_for_url(self, url: str) -> int | None:
        with self._session_factory() as session:
            return session.scalar(
                select(AttachmentModel.id).where(AttachmentModel.url == url).limit(1)
            )

    def id_for_relative_path(self, relative_path: str) -> int | None:
        with self._session_factory() as session:
            return session.scalar(
                select(AttachmentModel.id)
                .where(AttachmentModel.relative_path == relative_path)
                .order_by(AttachmentModel.id)
                .limit(1)
            )

    def id_for_cdn_url(self, url: str) -> int | None:
        """Scan externally rewritten URLs for an exact match."""
        with self._session_factory() as session:
            rows = session.execute(
                select(AttachmentModel.id, AttachmentModel.cdn_urls).order_by(AttachmentModel.id)
            ).all()
        for asset_id, cdn_urls in rows:
            if cdn_urls and url in cdn_urls:
                return asset_id
        return None

    def set_cdn_urls(self, asset_id: int, urls: Iterable[str]) -> None:
        with self._session_factory() as session:
            model = session.get(AttachmentModel, asset_id)
            if model is None:
                raise KeyError(f"Attachment '{asset_id}' not found")
            model.cdn_urls = list(urls)
            session.commit()

    def set_conversion_disabled(self, asset_id: int, disabled: bool) -> None:
        with self._session_factory() as session:
            model = session.get(AttachmentModel, asset_id)
            if model is None:
                raise KeyError(f"Attachment '{asset_id}' not found")
            model.conversion_disabled = disabled
            session.commit()

    def list_unconverted(self, limit: int, *, after_id: int = 0) -> list[MediaAsset]:
        """Return convertible assets without conversion records, ordered by id."""
        converted_ids = select(conversions.c.attachment_id)
        with self._session_factory() as session:
            rows = session.scalars(
                select(AttachmentModel)
                .where(
                    AttachmentModel.id > after_id,
                    AttachmentModel.conversion_disabled.is_(False),
                    AttachmentModel.id.not_in(converted_ids),
                    or_(
                        AttachmentModel.mime_type.like("image/%"),
                        AttachmentModel.mime_type.like("video/%"),
                    ),
                )
                .order_by(AttachmentModel.id)
                .limit(limit)
            ).all()
            return [self._to_domain(row) for row in rows]

    @staticmethod
    def _to_domain(model: AttachmentModel) -> MediaAsset:
        return MediaAsset(
            id=model.id,
            relative_path=model.relative_path,
            mime_type=model.mime_type,
            url=model.url,
            width=model.width,
            height=model.height,
            size_variants=list(model.size_variants or []),
            cdn_urls=list(model.cdn_urls or []),
            conversion_disabled=bool(model.conversion_disabled),
            created_at=model.created_at,
        )
