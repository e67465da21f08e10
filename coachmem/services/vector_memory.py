"""
Vector memory over conversation messages: embedding storage, k-NN search and
embedding backfill. Unavailability of the vector store yields empty results.
"""

import asyncio
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..models.core import ChatMessage, VectorSearchResult
from ..utils.async_utils import run_blocking
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.config import AppConfig, config as default_config
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient
from ..utils.supabase_client import SupabaseClient
from ..utils.timestamp_utils import parse_timestamp, to_iso

logger = get_logger(__name__)


def hit_to_result(hit: Dict[str, Any], similarity: Optional[float] = None) -> VectorSearchResult:
    document = hit.get('document', {})
    return VectorSearchResult(id=document.get('message_id') or hit.get('id'),
                              content=document.get('content') or '',
                              person_id=document.get('person_id'),
                              message_type=document.get('message_type') or 'user',
                              created_at=parse_timestamp(document.get('created_at')),
                              similarity=hit.get('similarity', 0.0) if similarity is None else similarity,
                              metadata=document.get('metadata') or {})


class VectorMemoryService:
    """Embeds messages and searches them by semantic similarity."""

    def __init__(self,
                 embedder: BedrockEmbed,
                 index: OpenSearchClient,
                 store: SupabaseClient,
                 config: Optional[AppConfig] = None):
        self.embedder = embedder
        self.index = index
        self.store = store
        self.config = config or default_config

    async def search_similar(self,
                             user_id: str,
                             query: str,
                             person_id: Optional[str] = None,
                             threshold: float = 0.7,
                             limit: int = 20) -> List[VectorSearchResult]:
        """
        Embed the query and return the user's most similar messages.

        Args:
            user_id: Owner of the messages
            query: Search text
            person_id: Restrict to one person's conversation when given
            threshold: Cosine similarity floor
            limit: Maximum results

        Returns:
            Results sorted by similarity descending; [] when the query is empty or
            the embedding or vector service fails
        """
        if not query or not query.strip():
            return []

        timeout = self.config.timeouts.vector_search
        try:
            vector = await run_blocking(self.embedder.embed_query, query, timeout=timeout)
            hits = await run_blocking(self.index.vector_search,
                                      vector,
                                      user_id,
                                      top_k=limit,
                                      min_similarity=threshold,
                                      person_id=person_id,
                                      timeout=timeout)
        except Exception as e:
            logger.warning(f'Vector search unavailable for user {user_id}: {e!r}')
            return []

        results = [hit_to_result(hit) for hit in hits]
        results.sort(key=lambda result: result.similarity, reverse=True)
        logger.debug(f'Vector search returned {len(results)} results (threshold {threshold}, person {person_id})')
        return results[:limit]

    async def find_connected(self,
                             user_id: str,
                             result: VectorSearchResult,
                             window_days: int = 3,
                             limit: int = 5) -> List[VectorSearchResult]:
        """Messages from the same person within +/- window_days of a hit, excluding the hit itself."""
        if not result.person_id or result.created_at is None:
            return []

        start = result.created_at - timedelta(days=window_days)
        end = result.created_at + timedelta(days=window_days)
        try:
            hits = await run_blocking(self.index.time_range_search,
                                      user_id,
                                      result.person_id,
                                      start,
                                      end,
                                      exclude_id=result.id,
                                      limit=limit,
                                      timeout=self.config.timeouts.vector_search)
        except Exception as e:
            logger.warning(f'Connected conversation lookup failed for {result.id}: {e!r}')
            return []

        return [hit_to_result(hit, similarity=0.0) for hit in hits if hit.get('document', {}).get('message_id') != result.id]

    async def store_message_embedding(self, user_id: str, message: ChatMessage, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """
        Embed and index one stored message.

        Returns:
            True if the embedding was indexed, False otherwise (never raises)
        """
        if not message.id or not message.content.strip():
            return False

        timeout = self.config.timeouts.vector_search
        document = {
            'message_id': message.id,
            'user_id': user_id,
            'person_id': message.person_id,
            'topic_id': message.topic_id,
            'message_type': 'user' if message.is_user else 'assistant',
            'content': message.content,
            'created_at': to_iso(message.created_at),
            'metadata': metadata or {},
        }
        try:
            document['embedding'] = await run_blocking(self.embedder.embed_document, message.content, timeout=timeout)
            indexed = await run_blocking(self.index.index_message, document, timeout=timeout)
            if indexed:
                await run_blocking(self.store.mark_embedded, [message.id], timeout=self.config.timeouts.data_store)
            return indexed
        except Exception as e:
            logger.error(f'Failed to store embedding for message {message.id}: {e!r}')
            return False

    async def process_unembedded_messages(self, user_id: str) -> int:
        """
        Backfill embeddings for messages that have none, in rate-limited batches.

        Returns:
            Number of messages embedded
        """
        bg = self.config.background
        try:
            messages = await run_blocking(self.store.list_unembedded_messages,
                                          user_id,
                                          bg.backfill_limit,
                                          timeout=self.config.timeouts.data_store)
        except Exception as e:
            logger.error(f'Could not list unembedded messages for user {user_id}: {e!r}')
            return 0

        if not messages:
            return 0

        logger.info(f'Processing {len(messages)} unembedded messages for user {user_id}')
        embedded = 0
        for start in range(0, len(messages), bg.batch_size):
            batch = messages[start:start + bg.batch_size]
            results = await asyncio.gather(*(self.store_message_embedding(
                user_id, message, {'original_created_at': to_iso(message.created_at)}) for message in batch))
            embedded += sum(1 for ok in results if ok)

            if start + bg.batch_size < len(messages):
                await asyncio.sleep(bg.batch_delay)

        logger.info(f'Embedded {embedded}/{len(messages)} messages for user {user_id}')
        return embedded
