"""
academy_api.services.chat_archival

Moves old course chat out of the active table into JSON archive batches.

Responsibilities:
- Run archival jobs in fixed-size batches, tracking progress on the job row.
- Record each batch file with its date range and checksum.
- Report archive status and statistics; preview or read back archived ranges.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_409_CONFLICT, HTTP_500_INTERNAL_SERVER_ERROR

from academy_api.api.responses import ApiError
from academy_api.db.base import utcnow
from academy_api.db.models import ArchivalJob, ArchivalJobStatus, ArchivedChatMessage, ChatMessage
from academy_api.db.repositories.chat import ArchiveRepo, ChatMessageRepo, SearchIndexRepo
from academy_api.observability.logging import get_logger
from academy_api.services.archive_storage import ArchiveStorage
from academy_api.settings import Settings

log = get_logger(__name__)

BYTES_PER_MB = 1024 * 1024


def message_payload(m: ChatMessage) -> dict[str, Any]:
    return {
        "id": str(m.id),
        "course_id": str(m.course_id),
        "environment_id": str(m.environment_id) if m.environment_id else None,
        "user_id": str(m.user_id),
        "content": m.content,
        "parent_message_id": str(m.parent_message_id) if m.parent_message_id else None,
        "created_at": m.created_at.isoformat(),
    }


def job_summary(job: ArchivalJob | None) -> dict[str, Any] | None:
    if job is None:
        return None
    return {
        "id": str(job.id),
        "course_id": str(job.course_id),
        "status": job.status.value,
        "cutoff_date": job.cutoff_date,
        "progress": job.progress,
        "messages_archived": job.messages_archived,
        "batches_created": job.batches_created,
        "storage_size_mb": job.storage_size_mb,
        "error_message": job.error_message,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
    }


def archive_summary(a: ArchivedChatMessage) -> dict[str, Any]:
    return {
        "id": str(a.id),
        "message_count": a.message_count,
        "start_date": a.start_date,
        "end_date": a.end_date,
        "storage_size_mb": a.storage_size_mb,
    }


class ChatArchivalService:
    def __init__(self, *, session: AsyncSession, settings: Settings, storage: ArchiveStorage) -> None:
        self._session = session
        self._settings = settings
        self._storage = storage
        self._messages = ChatMessageRepo(session)
        self._archives = ArchiveRepo(session)
        self._index = SearchIndexRepo(session)

    async def status(self, course_id: uuid.UUID) -> dict[str, Any]:
        archives = await self._archives.archives_for_course(course_id)
        return {
            "course_id": str(course_id),
            "latest_job": job_summary(await self._archives.latest_job(course_id)),
            "archive_summary": {
                "total_archives": len(archives),
                "total_archived_messages": sum(a.message_count for a in archives),
                "total_storage_mb": round(sum(a.storage_size_mb for a in archives), 4),
                "earliest_archive": min((a.start_date for a in archives), default=None),
                "latest_archive": max((a.end_date for a in archives), default=None),
            },
        }

    async def trigger(
        self,
        course_id: uuid.UUID,
        *,
        cutoff_date: datetime | None = None,
        force: bool = False,
        triggered_by: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        running = await self._archives.processing_job(course_id)
        if running is not None and not force:
            raise ApiError(
                HTTP_409_CONFLICT,
                "An archival job is already running for this course",
                code="ARCHIVAL_IN_PROGRESS",
                data={"job_id": str(running.id)},
            )

        cutoff = cutoff_date or utcnow() - timedelta(days=self._settings.archival_threshold_days)
        job = await self._archives.create_job(
            course_id=course_id, cutoff_date=cutoff, triggered_by=triggered_by
        )
        await self._session.commit()
        job_id = job.id
        log.info(
            "chat_archival_started",
            course_id=str(course_id),
            job_id=str(job_id),
            cutoff=cutoff.isoformat(),
        )

        try:
            await self._run(job)
        except Exception as e:
            await self._session.rollback()
            job = await self._session.get(ArchivalJob, job_id)
            job.status = ArchivalJobStatus.failed
            job.error_message = str(e)
            job.completed_at = utcnow()
            await self._session.commit()
            log.error("chat_archival_failed", course_id=str(course_id), job_id=str(job_id), error=str(e))
            raise ApiError(
                HTTP_500_INTERNAL_SERVER_ERROR,
                "Chat archival failed",
                code="ARCHIVAL_FAILED",
                data={"job_id": str(job_id)},
            ) from e

        return job_summary(job) or {}

    async def _run(self, job: ArchivalJob) -> None:
        batch_size = self._settings.archival_batch_size
        total = await self._messages.count_older_than(job.course_id, job.cutoff_date)
        archived = 0
        total_bytes = 0
        batches = 0
        # Numbering continues from earlier jobs so batch files never collide.
        first_index = len(await self._archives.archives_for_course(job.course_id))

        # Each batch is written, recorded and removed from the active table in one commit.
        while archived < total:
            batch = await self._messages.batch_older_than(job.course_id, job.cutoff_date, limit=batch_size)
            if not batch:
                break
            now = utcnow()
            batch_index = first_index + batches
            payload = [message_payload(m) for m in batch]
            path, checksum, size = self._storage.write_batch(
                course_id=job.course_id, batch_index=batch_index, messages=payload, now=now
            )
            await self._archives.add_archive(
                course_id=job.course_id,
                archival_job_id=job.id,
                archive_path=path,
                message_count=len(batch),
                storage_size_mb=round(size / BYTES_PER_MB, 4),
                start_date=batch[0].created_at,
                end_date=batch[-1].created_at,
                checksum=checksum,
                batch_index=batch_index,
                archived_date=now,
            )
            batch_ids = [m.id for m in batch]
            await self._messages.delete_ids(batch_ids)
            await self._index.mark_archived([str(i) for i in batch_ids])
            archived += len(batch)
            total_bytes += size
            batches += 1

            job.messages_archived = archived
            job.batches_created = batches
            job.storage_size_mb = round(total_bytes / BYTES_PER_MB, 4)
            job.progress = round(archived / total * 100, 2)
            await self._session.commit()

        job.status = ArchivalJobStatus.completed
        job.progress = 100.0
        job.completed_at = utcnow()
        await self._session.commit()
        log.info(
            "chat_archival_completed",
            course_id=str(job.course_id),
            job_id=str(job.id),
            messages=job.messages_archived,
            batches=job.batches_created,
        )

    async def restore(
        self, course_id: uuid.UUID, *, start: datetime, end: datetime, preview: bool = False
    ) -> dict[str, Any]:
        archives = await self._archives.archives_overlapping(course_id, start=start, end=end)
        if preview:
            return {
                "preview": True,
                "archives": [archive_summary(a) for a in archives],
                "total_archives": len(archives),
                "total_messages": sum(a.message_count for a in archives),
                "total_storage_mb": round(sum(a.storage_size_mb for a in archives), 4),
            }

        messages: list[dict[str, Any]] = []
        skipped = 0
        for archive in archives:
            batch = self._storage.read_verified(archive.archive_path, archive.checksum)
            if batch is None:
                skipped += 1
                log.warning("archive_unreadable", archive_id=str(archive.id), path=archive.archive_path)
                continue
            for m in batch:
                created = datetime.fromisoformat(m["created_at"])
                if start <= created <= end:
                    messages.append(m)
        return {
            "preview": False,
            "messages": messages,
            "total_messages": len(messages),
            "archives_read": len(archives) - skipped,
            "archives_skipped": skipped,
        }

    async def statistics(self, days: int) -> dict[str, Any]:
        since = utcnow() - timedelta(days=days)
        jobs = await self._archives.jobs_since(since)
        archives = await self._archives.archives_since(since)
        by_status = {s: sum(1 for j in jobs if j.status == s) for s in ArchivalJobStatus}
        return {
            "period_days": days,
            "job_statistics": {
                "total_jobs": len(jobs),
                "completed_jobs": by_status[ArchivalJobStatus.completed],
                "failed_jobs": by_status[ArchivalJobStatus.failed],
                "processing_jobs": by_status[ArchivalJobStatus.processing],
                "messages_archived": sum(j.messages_archived for j in jobs),
            },
            "storage_statistics": {
                "total_archives": len(archives),
                "total_messages": sum(a.message_count for a in archives),
                "total_storage_mb": round(sum(a.storage_size_mb for a in archives), 4),
            },
        }
