"""
Search Indexer Bridge.

Publishes approved photos to the external search service and forwards
free-text queries to it. Both directions are best-effort: a failure is logged
and reported as ``False`` / an empty result, never raised to the caller.
"""

import logging
import time
from typing import Callable, List, Optional

from pydantic import ValidationError as SchemaError

from ..errors import DeliveryError
from ..schemas.gallery import GalleryEntry
from ..utils.supermemory import SupermemoryClient

logger = logging.getLogger(__name__)

BASE_TAGS = ["hoa", "photo"]


class SearchIndexerBridge:
    def __init__(
        self,
        client: SupermemoryClient,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._sleep = sleep

    def publish(self, entry: GalleryEntry) -> bool:
        """Make an approved entry searchable. Returns whether the service accepted it."""
        content = (
            f"Photo | {entry.title}\n{entry.description or ''}\n"
            f"Category: {entry.category} | Status: approved | "
            f"Uploaded by: {entry.owner_id}\nPhoto URL: {entry.media_ref}"
        )
        tags = BASE_TAGS + [entry.category, "approved"]
        metadata = entry.model_dump(mode="json")

        for attempt in range(1, self.max_attempts + 1):
            try:
                self.client.store(content, tags, metadata)
            except DeliveryError as e:
                if e.retryable and attempt < self.max_attempts:
                    self._sleep(self.retry_delay * (2 ** (attempt - 1)))
                    continue
                logger.warning(
                    "Failed to index submission %s after %d attempt(s): %s",
                    entry.submission_id,
                    attempt,
                    e.detail,
                )
                return False
            logger.info("Indexed submission %s", entry.submission_id)
            return True
        return False

    def search(self, query: str, category: Optional[str] = None) -> List[GalleryEntry]:
        """Ranked entries for ``query``; empty on blank input or any failure"""
        if not query or not query.strip():
            return []

        tags = list(BASE_TAGS)
        if category:
            tags.append(category)

        try:
            hits = self.client.search(query.strip(), tags)
        except DeliveryError as e:
            logger.warning("Photo search failed for %r: %s", query, e.detail)
            return []

        entries = []
        for hit in hits:
            metadata = hit.get("metadata") if isinstance(hit, dict) else None
            if not metadata:
                continue
            try:
                entries.append(GalleryEntry(**metadata))
            except (SchemaError, TypeError):
                logger.debug("Skipping search hit without gallery metadata: %r", hit)
        return entries
