"""Fakes for the Slack history API and the index writer shared by tests."""

from typing import Any, Dict, List, Optional, Set, Tuple

from elkbot.errors import IndexWriteError


def slack_message(ts: float, text: str = "hello", user: str = "U1", files: Optional[List[dict]] = None) -> dict:
    msg: Dict[str, Any] = {"type": "message", "ts": f"{ts:.6f}", "user": user, "text": text}
    if files:
        msg["files"] = files
    return msg


def slack_file(file_id: str, **extra: Any) -> dict:
    payload = {
        "id": file_id,
        "name": f"{file_id}.png",
        "size": 2048,
        "url_private": f"https://files.slack.com/{file_id}.png",
        "permalink": f"https://acme.slack.com/files/{file_id}",
    }
    payload.update(extra)
    return payload


class FakeSlackHistory:
    """Minimal `conversations.history` over an in-memory channel.

    Messages are kept newest first; `latest` is an exclusive upper bound.
    """

    def __init__(self, messages: List[dict]):
        self.messages = sorted(messages, key=lambda m: float(m["ts"]), reverse=True)
        self.calls: List[Dict[str, Any]] = []

    def conversations_history(self, channel: str, limit: int, latest: Optional[str] = None, **kwargs: Any) -> dict:
        self.calls.append({"channel": channel, "limit": limit, "latest": latest, **kwargs})
        older = [m for m in self.messages if latest is None or float(m["ts"]) < float(latest)]
        page = older[:limit]
        return {"ok": True, "messages": page, "has_more": len(older) > limit}


class InMemoryIndexWriter:
    """Records writes by (index, document id); ids in `fail_on` raise."""

    def __init__(self, fail_on: Optional[Set[Tuple[str, str]]] = None):
        self.documents: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.writes: List[Tuple[str, str]] = []
        self.fail_on = fail_on or set()

    def write(self, document: Dict[str, Any], index_name: str, document_id: str) -> None:
        if (index_name, document_id) in self.fail_on:
            raise IndexWriteError("got status code 503 Service Unavailable")
        self.writes.append((index_name, document_id))
        self.documents[(index_name, document_id)] = dict(document)

    def ids(self, index_name: str) -> List[str]:
        return [doc_id for idx, doc_id in self.writes if idx == index_name]


def channel_of(count: int, start: float = 1_700_000_000.0) -> List[dict]:
    return [slack_message(start + i, text=f"message {i}") for i in range(count)]


