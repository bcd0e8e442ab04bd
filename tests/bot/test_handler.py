from unittest.mock import MagicMock

import pytest
from helpers import FakeSlackHistory, InMemoryIndexWriter, channel_of, slack_file, slack_message

from elkbot.bot.handler import SUCCESS_REPLY, IngestArgs, IngestCommandHandler, single_principal
from elkbot.ingest.projector import DocumentProjector
from elkbot.sources.history import HistoryPaginator

OWNER = "U-owner"


def make_handler(messages, writer, rate_limiter, reply=None):
    client = FakeSlackHistory(messages)
    handler = IngestCommandHandler(
        history=HistoryPaginator(client, rate_limiter=rate_limiter),
        projector=DocumentProjector(writer),
        reply=reply or MagicMock(),
        is_authorized=single_principal(OWNER),
    )
    return handler, client


def invoke(handler: IngestCommandHandler, user: str = OWNER, channel_id: str = "C-target"):
    return handler({"user": user, "channel": "C-home", "text": "elk!ingest"}, IngestArgs(channel_id=channel_id))


def test_single_principal() -> None:
    is_authorized = single_principal("U1")
    assert is_authorized("U1") is True
    assert is_authorized("U2") is False
    assert single_principal(None)("") is False


def test_ingests_messages_and_attachments(index_writer: InMemoryIndexWriter, rate_limiter: MagicMock) -> None:
    messages = channel_of(3) + [slack_message(1_800_000_000.0, files=[slack_file("F1"), slack_file("F2")])]
    reply = MagicMock()
    handler, _ = make_handler(messages, index_writer, rate_limiter, reply)

    report = invoke(handler)

    assert report.pages == 1
    assert report.messages == 4
    assert report.attachments == 2
    assert len(index_writer.ids("messages")) == 4
    assert index_writer.ids("attachments") == ["F1", "F2"]
    assert all(doc_id.startswith("C-target:") for doc_id in index_writer.ids("messages"))
    reply.assert_called_once_with("C-home", SUCCESS_REPLY)


def test_multiple_pages(index_writer: InMemoryIndexWriter, rate_limiter: MagicMock) -> None:
    handler, client = make_handler(channel_of(250), index_writer, rate_limiter)

    report = invoke(handler)

    assert report.pages == 3
    assert report.messages == 250
    assert len(set(index_writer.ids("messages"))) == 250
    assert len(client.calls) == 3


def test_empty_channel_reports_success(index_writer: InMemoryIndexWriter, rate_limiter: MagicMock) -> None:
    reply = MagicMock()
    handler, client = make_handler([], index_writer, rate_limiter, reply)

    report = invoke(handler)

    assert report.messages == 0
    assert index_writer.writes == []
    assert len(client.calls) == 1
    reply.assert_called_once_with("C-home", SUCCESS_REPLY)


def test_unauthorized_caller_is_silently_ignored(index_writer: InMemoryIndexWriter, rate_limiter: MagicMock) -> None:
    reply = MagicMock()
    handler, client = make_handler(channel_of(5), index_writer, rate_limiter, reply)

    assert invoke(handler, user="U-stranger") is None

    assert client.calls == []
    assert index_writer.writes == []
    reply.assert_not_called()


def test_failed_message_write_reported_as_code_block(rate_limiter: MagicMock) -> None:
    messages = [slack_message(2.0), slack_message(1.0, files=[slack_file("F1")])]
    writer = InMemoryIndexWriter(fail_on={("messages", "C-target:1.000000")})
    reply = MagicMock()
    handler, _ = make_handler(messages, writer, rate_limiter, reply)

    assert invoke(handler) is None

    assert writer.ids("messages") == ["C-target:2.000000"]
    assert writer.ids("attachments") == []
    reply.assert_called_once_with(
        "C-home",
        "```\nerror when processing messages: error ingesting message: got status code 503 Service Unavailable\n```",
    )


def test_fetch_failure_reported(index_writer: InMemoryIndexWriter, rate_limiter: MagicMock) -> None:
    from slack_sdk.errors import SlackApiError

    client = MagicMock()
    client.conversations_history.side_effect = SlackApiError("not_in_channel", MagicMock(status_code=403, headers={}))
    reply = MagicMock()
    handler = IngestCommandHandler(
        history=HistoryPaginator(client, rate_limiter=rate_limiter),
        projector=DocumentProjector(index_writer),
        reply=reply,
        is_authorized=single_principal(OWNER),
    )

    invoke(handler)

    text = reply.call_args[0][1]
    assert text.startswith("```\nerror fetching messages from Slack: not_in_channel")
    assert text.endswith("\n```")


def test_malformed_history_reported(index_writer: InMemoryIndexWriter, rate_limiter: MagicMock) -> None:
    client = MagicMock()
    client.conversations_history.return_value = {"messages": [{"ts": "not-a-number"}], "has_more": False}
    reply = MagicMock()
    handler = IngestCommandHandler(
        history=HistoryPaginator(client, rate_limiter=rate_limiter),
        projector=DocumentProjector(index_writer),
        reply=reply,
        is_authorized=single_principal(OWNER),
    )

    invoke(handler)

    text = reply.call_args[0][1]
    assert text.startswith("```\nerror parsing messages from Slack")
    assert text.endswith("\n```")
    assert index_writer.documents == {}


def test_ingest_channel_raises_for_direct_callers(rate_limiter: MagicMock) -> None:
    from elkbot.errors import HandlerError

    writer = InMemoryIndexWriter(fail_on={("messages", "C-target:1.000000")})
    handler, _ = make_handler([slack_message(1.0)], writer, rate_limiter)

    with pytest.raises(HandlerError):
        handler.ingest_channel("C-target")
