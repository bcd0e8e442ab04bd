"""Projection of Slack messages and their attachments into index documents."""

import logging
from typing import Any, Dict

from elkbot.errors import IndexWriteError, IngestError
from elkbot.index.writer import ATTACHMENTS_INDEX, MESSAGES_INDEX, IndexWriter
from elkbot.models.messages import Attachment, Message

logger = logging.getLogger(__name__)


def message_document(message: Message) -> Dict[str, Any]:
    return {
        "content": message.content,
        "channel_id": message.channel_id,
        "author_id": message.author_id,
        "timestamp": message.timestamp.isoformat(),
    }


def attachment_document(attachment: Attachment, message: Message) -> Dict[str, Any]:
    # The parent's id and timestamp are duplicated for query convenience
    return {
        "filename": attachment.filename,
        "height": attachment.height,
        "width": attachment.width,
        "size": attachment.size,
        "url": attachment.url,
        "proxy_url": attachment.proxy_url,
        "message_id": message.document_id,
        "timestamp": message.timestamp.isoformat(),
    }


class DocumentProjector:
    """Writes one document per message and one per attachment.

    Document IDs are stable (message: `<channel>:<ts>`, attachment: Slack file
    id), so re-running an ingestion overwrites instead of duplicating.
    """

    def __init__(self, writer: IndexWriter) -> None:
        self.writer = writer

    def project_attachment(self, attachment: Attachment, message: Message) -> None:
        """Index a single attachment of `message` under its own file id.

        Raises:
            IngestError: If the index write fails.
        """
        try:
            self.writer.write(attachment_document(attachment, message), ATTACHMENTS_INDEX, attachment.id)
        except IndexWriteError as err:
            raise IngestError(f"error ingesting attachment: {err}") from err

    def project_message(self, message: Message) -> int:
        """Index a message, then each of its attachments in order.

        A failed message write skips all attachments; a failed attachment
        stops the remaining attachments of the same message.

        Returns:
            int: Number of attachment documents written.

        Raises:
            IngestError: On the first failed write.
        """
        try:
            self.writer.write(message_document(message), MESSAGES_INDEX, message.document_id)
        except IndexWriteError as err:
            raise IngestError(f"error ingesting message: {err}") from err

        for attachment in message.attachments:
            self.project_attachment(attachment, message)

        if message.attachments:
            logger.debug(f"Indexed message {message.document_id} with {len(message.attachments)} attachments")
        return len(message.attachments)
