import time
from dataclasses import replace
from datetime import timezone
from types import MappingProxyType

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vod_intake.entities import Part, UploadProgress, Video, VideoStatus, utc_now
from vod_intake.errors import ConcurrentUpdateError, InfrastructureError, NotFoundError
from vod_intake.metrics import store_save_latency_seconds
from vod_intake.models import VideoPartRecord, VideoRecord


class VideoStore:
    """Durable storage of :class:`Video` snapshots.

    ``save`` overwrites the whole record. A snapshot with ``version == 0`` is
    inserted; any other snapshot is written only if the stored version still
    equals ``video.version``, otherwise :class:`ConcurrentUpdateError` is raised.
    The returned snapshot carries the new version.
    """

    def get_by_id(self, video_id: str) -> Video:
        raise NotImplementedError

    def save(self, video: Video) -> Video:
        raise NotImplementedError


def _aware(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlVideoStore(VideoStore):
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_id(self, video_id: str) -> Video:
        try:
            record = self.db.get(VideoRecord, video_id, populate_existing=True)
            if record is None:
                raise NotFoundError(video_id)
            part_rows = self.db.scalars(
                select(VideoPartRecord)
                .where(VideoPartRecord.video_id == video_id)
                .order_by(VideoPartRecord.part_number)
            ).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise InfrastructureError("store_get", str(exc), video_id=video_id) from exc
        return self._to_entity(record, part_rows)

    def save(self, video: Video) -> Video:
        t0 = time.perf_counter()
        now = utc_now()
        values = {
            "title": video.title,
            "description": video.description,
            "content_type": video.content_type,
            "size_bytes": video.size,
            "tags": list(video.tags),
            "metadata_": dict(video.metadata),
            "status": video.status.value,
            "multipart_upload_id": video.upload.upload_id if video.upload else None,
            "updated_at": now,
        }
        try:
            if video.version == 0:
                self.db.add(VideoRecord(id=video.id, version=1, created_at=video.created_at, **values))
                self.db.flush()
            else:
                assignments = {getattr(VideoRecord, name): value for name, value in values.items()}
                assignments[VideoRecord.version] = VideoRecord.version + 1
                result = self.db.execute(
                    update(VideoRecord)
                    .where(VideoRecord.id == video.id, VideoRecord.version == video.version)
                    .values(assignments)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    self.db.rollback()
                    raise ConcurrentUpdateError(video.id, video.version)
                self.db.execute(delete(VideoPartRecord).where(VideoPartRecord.video_id == video.id))

            if video.upload is not None:
                for part in video.upload.ordered_parts():
                    self.db.add(
                        VideoPartRecord(
                            video_id=video.id,
                            part_number=part.part_number,
                            etag=part.etag,
                            size_bytes=part.size,
                        )
                    )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise InfrastructureError("store_save", str(exc), video_id=video.id) from exc
        finally:
            store_save_latency_seconds.observe(time.perf_counter() - t0)
        return replace(video, version=video.version + 1, updated_at=now)

    @staticmethod
    def _to_entity(record: VideoRecord, part_rows) -> Video:
        upload = None
        if record.multipart_upload_id:
            parts = {
                row.part_number: Part(part_number=row.part_number, etag=row.etag, size=row.size_bytes)
                for row in part_rows
            }
            upload = UploadProgress(upload_id=record.multipart_upload_id, parts=MappingProxyType(parts))
        return Video(
            id=record.id,
            title=record.title,
            description=record.description,
            content_type=record.content_type,
            size=record.size_bytes,
            tags=tuple(record.tags or ()),
            metadata=MappingProxyType(dict(record.metadata_ or {})),
            status=VideoStatus(record.status),
            upload=upload,
            version=record.version,
            created_at=_aware(record.created_at),
            updated_at=_aware(record.updated_at),
        )
