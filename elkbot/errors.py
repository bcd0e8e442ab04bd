"""Exception hierarchy for backlog ingestion.

Every failure in the pipeline is raised as a subclass of `ElkbotError` and
chained to its cause, so `str(err)` carries the full wrapped detail that the
command handler reports back to the invoking channel.
"""


class ElkbotError(Exception):
    """Base class for all ingestion errors."""


class FetchError(ElkbotError):
    """Fetching a page of channel history from Slack failed."""


class IndexWriteError(ElkbotError):
    """Writing a document to the index failed or returned an error status."""


class IngestError(ElkbotError):
    """Projecting a message or attachment into the index failed."""


class HandlerError(ElkbotError):
    """A page handler failed while processing a page of messages."""
