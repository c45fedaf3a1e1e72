"""
academy_api.services.archive_storage

Filesystem storage for chat archive batches.

Responsibilities:
- Lay out batch files as `chat-archive/Y/m/d/{course}/batch-{i}-{HHMMSS}.json`.
- Compute and verify batch checksums (md5 over the JSON-encoded messages).
- Read and write batch payloads.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

ARCHIVAL_VERSION = "1.0"


def messages_checksum(messages: list[dict[str, Any]]) -> str:
    return hashlib.md5(json.dumps(messages).encode()).hexdigest()


def batch_path(*, course_id: uuid.UUID, batch_index: int, now: datetime) -> str:
    return f"chat-archive/{now:%Y/%m/%d}/{course_id}/batch-{batch_index}-{now:%H%M%S}.json"


class ArchiveStorage:
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def write_batch(
        self,
        *,
        course_id: uuid.UUID,
        batch_index: int,
        messages: list[dict[str, Any]],
        now: datetime,
    ) -> tuple[str, str, int]:
        """Write one batch and return (relative path, checksum, size in bytes)."""
        relative = batch_path(course_id=course_id, batch_index=batch_index, now=now)
        checksum = messages_checksum(messages)
        payload = {
            "course_id": str(course_id),
            "batch_index": batch_index,
            "archived_at": now.isoformat(),
            "message_count": len(messages),
            "archival_version": ARCHIVAL_VERSION,
            "compression": "none",
            "checksum": checksum,
            "messages": messages,
        }
        target = self._root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        encoded = json.dumps(payload).encode()
        target.write_bytes(encoded)
        return relative, checksum, len(encoded)

    def read_batch(self, relative: str) -> dict[str, Any]:
        return json.loads((self._root / relative).read_bytes())

    def read_verified(self, relative: str, expected_checksum: str) -> list[dict[str, Any]] | None:
        # None when the file is missing or its messages no longer match the recorded checksum.
        try:
            payload = self.read_batch(relative)
        except (OSError, ValueError):
            return None
        messages = payload.get("messages") or []
        if messages_checksum(messages) != expected_checksum:
            return None
        return messages
