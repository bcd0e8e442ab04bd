"""The `ingest` command: pull a channel's backlog into the index."""

import logging
import re
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from elkbot.bot.commands import Reply
from elkbot.errors import ElkbotError
from elkbot.ingest.projector import DocumentProjector
from elkbot.metrics import OP_ITEMS, OP_LATENCY, UNAUTHORIZED_COMMANDS
from elkbot.models.messages import Message
from elkbot.sources.history import HistoryPaginator

logger = logging.getLogger(__name__)

SUCCESS_REPLY = "Channel messages successfully ingested."

# Slack renders channel mentions as <#C0123|name>
_CHANNEL_MENTION = re.compile(r"^<#([A-Z0-9]+)(?:\|[^>]*)?>$")

Authorizer = Callable[[str], bool]


def single_principal(owner_id: Optional[str]) -> Authorizer:
    """Allow exactly one caller. An unset owner allows nobody."""

    def is_authorized(caller_id: str) -> bool:
        return bool(owner_id) and caller_id == owner_id

    return is_authorized


class IngestArgs(BaseModel):
    """Arguments of the `ingest` command."""

    channel_id: str = Field(..., description="ID of the channel to ingest logs from.")

    @field_validator("channel_id")
    @classmethod
    def _unwrap_mention(cls, value: str) -> str:
        match = _CHANNEL_MENTION.match(value.strip())
        return match.group(1) if match else value.strip()


@dataclass
class IngestReport:
    """Counters for one ingestion run."""

    channel_id: str
    pages: int = 0
    messages: int = 0
    attachments: int = 0


class IngestCommandHandler:
    """Drives backlog ingestion for an authorized caller and reports back.

    Args:
        history: Paginator over Slack channel history.
        projector: Writes message and attachment documents.
        reply: Posts text into a channel.
        is_authorized: Predicate on the caller's user id.
    """

    def __init__(
        self,
        history: HistoryPaginator,
        projector: DocumentProjector,
        reply: Reply,
        is_authorized: Authorizer,
    ) -> None:
        self.history = history
        self.projector = projector
        self.reply = reply
        self.is_authorized = is_authorized

    def ingest_channel(self, channel_id: str) -> IngestReport:
        """Index every message of `channel_id`, stopping at the first error.

        Raises:
            FetchError: If a history page could not be fetched.
            HandlerError: If projecting a message failed.
        """
        report = IngestReport(channel_id=channel_id)

        def handle_page(messages: List[Message]) -> None:
            for message in messages:
                report.attachments += self.projector.project_message(message)
                report.messages += 1

        op_start = perf_counter()
        outcome = "error"
        logger.info(f"ingest: start channel={channel_id}")
        try:
            report.pages = self.history.paginate(channel_id, handle_page)
            outcome = "success"
        finally:
            elapsed = perf_counter() - op_start
            OP_LATENCY.labels(operation="ingest_channel", outcome=outcome).observe(elapsed)
            OP_ITEMS.labels(operation="ingest_channel").observe(report.messages)
            logger.info(
                f"ingest: {outcome} channel={channel_id} pages={report.pages} messages={report.messages} "
                f"attachments={report.attachments} elapsed={elapsed:.3f}s"
            )
        return report

    def __call__(self, event: Dict[str, Any], args: IngestArgs) -> Optional[IngestReport]:
        """Handle an `ingest` command event.

        Unauthorized callers are logged and ignored without a reply. Any
        ingestion error is reported to the invoking channel as a code block.
        """
        author_id = event.get("user", "")
        reply_channel = event.get("channel", "")
        if not self.is_authorized(author_id):
            UNAUTHORIZED_COMMANDS.inc()
            logger.warning(f"User does not have access to this command: author_id={author_id}")
            return None

        try:
            report = self.ingest_channel(args.channel_id)
        except ElkbotError as err:
            logger.error(f"Error ingesting messages: {err}")
            logger.debug("Ingestion failure trace", exc_info=True)
            self.reply(reply_channel, f"```\n{err}\n```")
            return None

        self.reply(reply_channel, SUCCESS_REPLY)
        return report
