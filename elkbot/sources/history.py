"""Backward pagination over a Slack channel's message history.

Pages are fetched newest-first with `conversations.history`. The first call
has no upper bound; every following call passes the `ts` of the oldest
message of the previous page as an exclusive `latest` bound, so each page is
strictly older than the one before it. Nothing is persisted between runs.
"""

import logging
from time import perf_counter
from typing import Any, Callable, Dict, Final, Iterator, List, Optional, Tuple

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError, SlackClientError

from elkbot.errors import FetchError, HandlerError
from elkbot.metrics import API_CALLS, API_LATENCY
from elkbot.models.config import IngestConfig
from elkbot.models.messages import Message
from elkbot.sources.ratelimiter import AdaptiveRateLimiter

logger = logging.getLogger(__name__)

PageHandler = Callable[[List[Message]], None]


class HistoryPaginator:
    """Walks a channel's history from the newest message back to the first.

    Args:
        client: Slack WebClient shared by the process.
        page_size: Messages requested per call.
        max_pages: Optional cap on pages per run; unbounded when None.
        rate_limiter: Pacing for `conversations.history`.
        rate_limit_retries: How many HTTP 429 responses to absorb per page.
    """

    HISTORY_METHOD: Final[str] = "conversations.history"

    def __init__(
        self,
        client: WebClient,
        page_size: int = 100,
        max_pages: Optional[int] = None,
        rate_limiter: Optional[AdaptiveRateLimiter] = None,
        rate_limit_retries: int = 5,
    ):
        self.client = client
        self.page_size = page_size
        self.max_pages = max_pages
        self.rate_limiter = rate_limiter or AdaptiveRateLimiter()
        self.rate_limit_retries = rate_limit_retries

    @classmethod
    def create(cls, client: WebClient, config: IngestConfig) -> "HistoryPaginator":
        """Create a paginator with Tier 3 pacing from configuration."""
        limiter = AdaptiveRateLimiter(
            defaults={
                cls.HISTORY_METHOD: {"rpm": config.history_rpm, "cap": config.history_cap, "burst": 10},
            }
        )
        return cls(
            client,
            page_size=config.page_size,
            max_pages=config.max_pages,
            rate_limiter=limiter,
            rate_limit_retries=config.rate_limit_retries,
        )

    def _call_history(self, **kwargs: Any) -> Any:
        """Call conversations.history with pacing and metrics.

        HTTP 429 responses are fed back to the limiter, which blocks until the
        Retry-After window has passed, and the call is issued again. Any other
        error is raised.
        """
        rate_limited = 0
        while True:
            self.rate_limiter.acquire(self.HISTORY_METHOD)
            call_start = perf_counter()
            try:
                resp = self.client.conversations_history(**kwargs)
            except SlackApiError as e:
                status_code = getattr(e.response, "status_code", None)
                status = str(status_code or "error")
                API_CALLS.labels(service="slack", method=self.HISTORY_METHOD, status=status).inc()
                API_LATENCY.labels(service="slack", method=self.HISTORY_METHOD, status=status).observe(
                    perf_counter() - call_start
                )
                if status_code == 429 and rate_limited < self.rate_limit_retries:
                    rate_limited += 1
                    retry_after = int(e.response.headers.get("Retry-After", "1"))
                    logger.info(f"429 on {self.HISTORY_METHOD}, Retry-After={retry_after}s")
                    self.rate_limiter.on_rate_limited(self.HISTORY_METHOD, retry_after)
                    continue
                raise

            status = str(getattr(resp, "status_code", 200))
            API_CALLS.labels(service="slack", method=self.HISTORY_METHOD, status=status).inc()
            API_LATENCY.labels(service="slack", method=self.HISTORY_METHOD, status=status).observe(
                perf_counter() - call_start
            )
            return resp

    def fetch_page(self, channel_id: str, before: Optional[str] = None) -> Tuple[List[Message], bool]:
        """Fetch one page of messages older than `before`.

        Args:
            channel_id: Slack channel ID.
            before: Exclusive upper bound (`ts`); None fetches the newest page.

        Returns:
            Tuple[List[Message], bool]: Messages newest-first, and whether Slack
            reports more history beyond this page.

        Raises:
            FetchError: If the Slack call fails or returns malformed messages.
        """
        kwargs: Dict[str, Any] = {"channel": channel_id, "limit": self.page_size}
        if before is not None:
            kwargs["latest"] = before
            kwargs["inclusive"] = False

        try:
            resp = self._call_history(**kwargs)
        except (SlackClientError, OSError) as err:
            raise FetchError(f"error fetching messages from Slack: {err}") from err

        raw: List[Dict[str, Any]] = resp.get("messages", []) or []
        try:
            messages = [Message.from_slack(m, channel_id=channel_id) for m in raw]
        except (KeyError, TypeError, ValueError) as err:
            raise FetchError(f"error parsing messages from Slack: {err!r}") from err
        return messages, bool(resp.get("has_more", False))

    def iter_pages(self, channel_id: str) -> Iterator[List[Message]]:
        """Lazily yield non-empty pages, newest page first.

        Stops when a fetch returns no messages, or after `max_pages` pages.
        A full page is always followed by one more fetch; a short page ends
        the walk only when Slack also reports no more history, since Slack
        may return short pages before the end of a channel.

        Raises:
            FetchError: If any page fetch fails.
        """
        before: Optional[str] = None
        pages = 0
        while True:
            if self.max_pages is not None and pages >= self.max_pages:
                logger.warning(f"history: channel={channel_id} stopped at max_pages={self.max_pages}")
                return
            logger.debug(f"history: fetching channel={channel_id} before={before}")
            messages, has_more = self.fetch_page(channel_id, before)
            if not messages:
                return
            yield messages
            pages += 1
            logger.debug(f"history: finished page channel={channel_id} count={len(messages)}")
            if len(messages) < self.page_size and not has_more:
                return
            before = messages[-1].id

    def paginate(self, channel_id: str, page_handler: PageHandler) -> int:
        """Invoke `page_handler` for every page until the history is exhausted.

        Returns:
            int: Number of pages handled.

        Raises:
            FetchError: If a page fetch fails.
            HandlerError: If the handler raises; pagination stops immediately.
        """
        pages = 0
        for page in self.iter_pages(channel_id):
            try:
                page_handler(page)
            except Exception as err:
                raise HandlerError(f"error when processing messages: {err}") from err
            pages += 1
        return pages
