"""
File storage for ticket message attachments.

Files are written under {root}/tickets/{conversationId}/ and served by the
static mount in main.py under the configured URL prefix.
"""

import base64
import binascii
import logging
import os
import secrets
import time
from pathlib import Path
from urllib.parse import quote

from starlette.concurrency import run_in_threadpool

from helpdesk_relay.utils import sanitize_filename

logger = logging.getLogger(__name__)


class AttachmentDecodeError(ValueError):
    pass


def decode_base64_payload(payload: str) -> bytes:
    """
    Decode an inline attachment.

    Accepts bare base64 or a data URL (data:<mime>;base64,<data>).

    Raises:
        AttachmentDecodeError: if the data is not valid base64
    """
    if "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AttachmentDecodeError(f"invalid base64 attachment data: {e}") from e


def unique_filename(original: str) -> str:
    """Timestamp-prefixed, sanitized file name that will not collide with earlier uploads."""
    sanitized = sanitize_filename(original or "file")
    stem, ext = os.path.splitext(sanitized)
    return f"{int(time.time() * 1000)}_{secrets.token_hex(4)}_{stem}{ext}"


class AttachmentStore:
    def __init__(self, root_dir: str, url_prefix: str):
        self.root_dir = Path(root_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def _write(self, data: bytes, conversation_id: str, filename: str) -> str:
        directory = self.root_dir / "tickets" / sanitize_filename(conversation_id)
        directory.mkdir(parents=True, exist_ok=True)
        stored_name = unique_filename(filename)
        (directory / stored_name).write_bytes(data)
        logger.debug(f"Attachment written: {directory / stored_name} ({len(data)} bytes)")
        return f"{self.url_prefix}/tickets/{quote(sanitize_filename(conversation_id))}/{quote(stored_name)}"

    async def write(self, data: bytes, conversation_id: str, filename: str) -> str:
        """
        Write attachment bytes to durable storage.

        Args:
            data: File contents
            conversation_id: Ticket number the file belongs to
            filename: Original file name from the client

        Returns:
            URL the stored file is served at
        """
        return await run_in_threadpool(self._write, data, conversation_id, filename)
