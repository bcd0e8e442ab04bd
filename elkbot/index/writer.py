"""Qdrant-backed index writer.

Each logical index ("messages", "attachments") is a payload-only Qdrant
collection. A document is stored as a point whose payload is the flat
document; the point id is derived deterministically from the index name and
document ID, so writing the same document ID again replaces the point.
"""

import json
import logging
import threading
import uuid
from datetime import datetime
from time import perf_counter
from typing import Any, Dict, Optional, Set

from qdrant_client import QdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import PointStruct, UpdateStatus

from elkbot.errors import IndexWriteError
from elkbot.metrics import API_CALLS, API_LATENCY, DOCUMENTS_WRITTEN
from elkbot.models.config import QdrantConfig

logger = logging.getLogger(__name__)

MESSAGES_INDEX = "messages"
ATTACHMENTS_INDEX = "attachments"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class IndexWriter:
    """Upserts flat documents into Qdrant collections."""

    def __init__(self, client: QdrantClient, collection_prefix: str = "") -> None:
        """Initialize the writer around a long-lived Qdrant client.

        Args:
            client: Shared Qdrant client.
            collection_prefix: Optional prefix for every collection name.
        """
        self.client = client
        self.collection_prefix = collection_prefix
        self._known_collections: Set[str] = set()
        self._collections_lock = threading.Lock()

    @classmethod
    def create(cls, config: QdrantConfig) -> "IndexWriter":
        """Create a writer with a new Qdrant client built from configuration."""
        client = QdrantClient(url=config.url, api_key=config.api_key, timeout=config.timeout)
        return cls(client, collection_prefix=config.collection_prefix)

    def collection_name(self, index_name: str) -> str:
        return f"{self.collection_prefix}{index_name}"

    @staticmethod
    def point_id(index_name: str, document_id: str) -> str:
        """Return the deterministic point id for a document.

        Qdrant requires point ids to be UUIDs or unsigned integers.
        """
        return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{index_name}:{document_id}"))

    def _ensure_collection(self, collection_name: str) -> None:
        """Create the collection on first use if it doesn't exist.

        Commands run on the Socket Mode worker pool, so concurrent writers
        share this check. A 409 from a creator in another process counts as
        the collection existing.
        """
        if collection_name in self._known_collections:
            return
        with self._collections_lock:
            if collection_name in self._known_collections:
                return
            existing = [c.name for c in self.client.get_collections().collections]
            if collection_name not in existing:
                try:
                    # Payload-only collection: documents carry no vectors
                    self.client.create_collection(collection_name=collection_name, vectors_config={})
                    logger.info(f"Created collection: {collection_name}")
                except UnexpectedResponse as err:
                    if err.status_code != 409:
                        raise
                    logger.debug(f"Collection {collection_name} created concurrently")
            self._known_collections.add(collection_name)

    def write(self, document: Dict[str, Any], index_name: str, document_id: str) -> None:
        """Upsert a document and wait until it is visible to queries.

        Args:
            document: Flat mapping of field name to scalar/string value.
            index_name: Logical index name.
            document_id: Stable document identifier within the index.

        Raises:
            IndexWriteError: If the transport call fails or Qdrant reports a
                status other than completed.
        """
        collection_name = self.collection_name(index_name)
        payload = json.loads(json.dumps(document, default=_json_default))
        payload["document_id"] = document_id
        point = PointStruct(id=self.point_id(index_name, document_id), vector={}, payload=payload)

        call_start = perf_counter()
        status: Optional[str] = None
        try:
            self._ensure_collection(collection_name)
            result = self.client.upsert(collection_name=collection_name, points=[point], wait=True)
            status = str(getattr(result.status, "value", result.status))
        except UnexpectedResponse as err:
            status = str(err.status_code)
            raise IndexWriteError(f"got status code {err.status_code} {err.reason_phrase}") from err
        except ResponseHandlingException as err:
            status = "transport_error"
            raise IndexWriteError(str(getattr(err, "source", None) or err)) from err
        finally:
            API_CALLS.labels(service="qdrant", method="upsert", status=status or "error").inc()
            API_LATENCY.labels(service="qdrant", method="upsert", status=status or "error").observe(
                perf_counter() - call_start
            )

        if result.status != UpdateStatus.COMPLETED:
            raise IndexWriteError(f"got status code {status}")

        DOCUMENTS_WRITTEN.labels(index=index_name).inc()
        logger.debug(f"Indexed {index_name}/{document_id} into {collection_name}")
