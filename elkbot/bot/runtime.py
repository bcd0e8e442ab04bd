"""Long-running bot process: Socket Mode subscription and graceful shutdown."""

import logging
import signal
import threading
from time import perf_counter
from typing import Any, Optional

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
from slack_sdk.socket_mode import SocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse

from elkbot.bot.commands import CommandParser
from elkbot.bot.handler import IngestArgs, IngestCommandHandler, single_principal
from elkbot.index.writer import IndexWriter
from elkbot.ingest.projector import DocumentProjector
from elkbot.metrics import API_CALLS, API_LATENCY
from elkbot.models.config import ElkbotConfig
from elkbot.sources.history import HistoryPaginator

logger = logging.getLogger(__name__)


class ElkbotRuntime:
    """Wires the Slack and Qdrant clients into the command pipeline.

    The clients are created once and shared by every command invocation.
    Commands run synchronously on the Socket Mode client's worker pool, so
    separate commands may run concurrently.
    """

    def __init__(
        self,
        config: ElkbotConfig,
        web_client: Optional[WebClient] = None,
        index_writer: Optional[IndexWriter] = None,
        socket_client: Optional[SocketModeClient] = None,
    ) -> None:
        self.config = config
        if web_client is None:
            if not config.slack.bot_token:
                raise ValueError("Slack bot token is not set (ELKBOT_TOKEN)")
            web_client = WebClient(token=config.slack.bot_token)
        self.web_client = web_client

        if not config.slack.owner_id:
            logger.warning("No owner configured (ELKBOT_OWNER_ID); every command will be rejected")

        writer = index_writer or IndexWriter.create(config.qdrant)
        self.history = HistoryPaginator.create(self.web_client, config.ingest)
        self.projector = DocumentProjector(writer)
        self.ingest_handler = IngestCommandHandler(
            history=self.history,
            projector=self.projector,
            reply=self.reply,
            is_authorized=single_principal(config.slack.owner_id),
        )

        self.parser = CommandParser(config.slack.prefix, self.reply)
        self.parser.register(
            "ingest",
            "Ingest a backlog of messages from a certain channel.",
            self.ingest_handler,
            IngestArgs,
        )

        self._socket_client = socket_client
        self._stop = threading.Event()

    @property
    def socket_client(self) -> SocketModeClient:
        if self._socket_client is None:
            if not self.config.slack.app_token:
                raise ValueError("Slack app token is not set (ELKBOT_APP_TOKEN)")
            self._socket_client = SocketModeClient(app_token=self.config.slack.app_token, web_client=self.web_client)
        return self._socket_client

    def reply(self, channel_id: str, text: str) -> None:
        """Post a message into a channel; failures are logged, not raised."""
        call_start = perf_counter()
        status = "200"
        try:
            self.web_client.chat_postMessage(channel=channel_id, text=text)
        except SlackApiError as err:
            status = str(getattr(err.response, "status_code", "error"))
            logger.error(f"Failed to post reply to {channel_id}: {err}")
        finally:
            API_CALLS.labels(service="slack", method="chat.postMessage", status=status).inc()
            API_LATENCY.labels(service="slack", method="chat.postMessage", status=status).observe(
                perf_counter() - call_start
            )

    def handle_request(self, client: SocketModeClient, req: SocketModeRequest) -> None:
        """Acknowledge a Socket Mode request and dispatch message events.

        The ack is sent before dispatching because ingestion can take far
        longer than Slack's acknowledgement window.
        """
        client.send_socket_mode_response(SocketModeResponse(envelope_id=req.envelope_id))
        if req.type != "events_api":
            return
        event: dict[str, Any] = (req.payload or {}).get("event", {})
        if event.get("type") == "message":
            self.parser.dispatch(event)

    def start(self) -> None:
        logger.debug("Opening Slack Socket Mode connection")
        self.socket_client.socket_mode_request_listeners.append(self.handle_request)
        self.socket_client.connect()
        logger.debug("Slack connection open")

    def stop(self, *_: Any) -> None:
        self._stop.set()

    def run_forever(self) -> None:
        """Run until SIGINT/SIGTERM, then close the Slack connection."""
        signal.signal(signal.SIGINT, self.stop)
        signal.signal(signal.SIGTERM, self.stop)
        self.start()
        logger.info("Elkbot is now running, press CTRL-C to exit.")
        self._stop.wait()
        logger.info("Quitting Elkbot")
        try:
            self.socket_client.close()
        except Exception as err:
            logger.error(f"Error closing Slack connection: {err}")
