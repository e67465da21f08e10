"""
Context engine: the per-turn entry point that assembles management context,
renders the coaching prompt and schedules post-reply mining in the background.
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from ..models.core import ChatMessage, ConversationTarget, ManagementContext, PersonDetectionResult, ProactiveInsight, \
    UserProfile
from ..utils.async_utils import run_blocking
from ..utils.background import BackgroundTaskQueue
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.bedrock_llm import BedrockLLM
from ..utils.bedrock_rerank import BedrockRerank
from ..utils.config import AppConfig, config as default_config
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient
from ..utils.supabase_client import SupabaseClient
from ..utils.ttl_cache import TTLCache, cache_key
from . import prompt_assembler
from .learning import LearningService
from .person_detection import PersonDetectionService
from .proactive_insights import ProactiveInsightService
from .semantic_search import SemanticSearchService
from .team_context import TeamContextService
from .vector_memory import VectorMemoryService

logger = get_logger(__name__)

DetectionCallback = Callable[[str, PersonDetectionResult], Awaitable[None]]


class ContextEngine:
    """Owns the shared cache, the background queue and every context service."""

    def __init__(self,
                 config: Optional[AppConfig] = None,
                 store: Optional[SupabaseClient] = None,
                 llm: Optional[BedrockLLM] = None,
                 embedder: Optional[BedrockEmbed] = None,
                 index: Optional[OpenSearchClient] = None,
                 reranker: Optional[BedrockRerank] = None):
        """
        Initialize the engine. Clients that are not passed in are built from configuration.

        Args:
            config: Application configuration (global config if None)
            store: Team data store client
            llm: Completion client
            embedder: Embedding client
            index: Vector index client
            reranker: Batch relevance scorer; built only when reranking is enabled
        """
        self.config = config or default_config
        self.store = store or SupabaseClient(self.config.supabase)
        self.llm = llm or BedrockLLM(self.config.bedrock_llm)
        self.embedder = embedder or BedrockEmbed(self.config.bedrock_embed)

        if index is None:
            index = OpenSearchClient(self.config.opensearch)
            if index.create_index_if_not_exists() == 'failed':
                logger.warning('Failed to create OpenSearch index, vector memory will be degraded')
        self.index = index

        if reranker is None and self.config.bedrock_rerank.enabled:
            try:
                reranker = BedrockRerank(self.config.bedrock_rerank)
            except Exception as e:
                logger.warning(f'Reranking disabled: {e}')
                reranker = None
        self.reranker = reranker

        self.cache = TTLCache(max_entries=self.config.cache.max_entries)
        self.background = BackgroundTaskQueue(workers=self.config.background.workers,
                                              queue_size=self.config.background.queue_size)
        self._last_sweep = time.monotonic()

        self.team = TeamContextService(self.store, self.cache, self.config)
        self.vector_memory = VectorMemoryService(self.embedder, self.index, self.store, self.config)
        self.semantic = SemanticSearchService(self.vector_memory, self.llm, self.cache, self.reranker, self.config)
        self.detection = PersonDetectionService(self.llm, self.cache, self.config)
        self.learning = LearningService(self.store, self.llm, self.config)
        self.insights = ProactiveInsightService(self.store, self.llm, self.learning, self.config)

        logger.info('Initialized ContextEngine')

    def _maybe_sweep(self) -> None:
        now = time.monotonic()
        if now - self._last_sweep >= self.config.cache.sweep_interval:
            self._last_sweep = now
            removed = self.cache.sweep()
            if removed:
                logger.debug(f'Swept {removed} expired cache entries')

    async def build_context(self,
                            user_id: str,
                            target: ConversationTarget,
                            query: Optional[str] = None,
                            include_insights: bool = False) -> ManagementContext:
        """
        Assemble the management context for one conversation turn.

        Team aggregation and semantic search run concurrently; either failing
        leaves its part of the context empty.

        Args:
            user_id: Manager whose data is read
            target: Person or topic the conversation is about
            query: Current user message
            include_insights: Also generate proactive insights

        Returns:
            ManagementContext; the empty context when the user id is missing
        """
        if not user_id or not user_id.strip():
            logger.warning('build_context called without a user id, returning empty context')
            return ManagementContext.empty()

        self._maybe_sweep()
        team, semantic = await asyncio.gather(
            self.team.build_context(user_id, target.id, query, is_topic=target.is_general),
            self.semantic.search(user_id, query, target.scope_person_id),
            return_exceptions=True)

        if isinstance(team, BaseException):
            logger.error(f'Team context failed for user {user_id}: {team!r}')
            team = ManagementContext.empty()
        if isinstance(semantic, BaseException):
            logger.error(f'Semantic context failed for user {user_id}: {semantic!r}')
            semantic = None

        team.semantic_context = semantic
        if include_insights:
            team.proactive_insights = await self.get_proactive_insights(user_id, team)
        return team

    async def prepare_turn(self,
                           user_id: str,
                           target: ConversationTarget,
                           user_message: str,
                           history: Sequence[ChatMessage],
                           user_profile: Optional[UserProfile] = None,
                           include_insights: bool = False,
                           profile_context: Optional[str] = None) -> str:
        """Build the context for a turn and render the system prompt."""
        context = await self.build_context(user_id, target, user_message, include_insights)
        return prompt_assembler.render(target,
                                       context,
                                       history,
                                       user_profile,
                                       user_message=user_message,
                                       profile_context=profile_context,
                                       themes_window_days=self.config.context.themes_window_days)

    def _message(self, target: ConversationTarget, content: str, is_user: bool) -> ChatMessage:
        return ChatMessage(content=content,
                           is_user=is_user,
                           person_id=target.id if target.kind == 'person' else None,
                           topic_id=target.id if target.kind == 'topic' else None)

    async def _persist_and_embed(self, user_id: str, messages: List[ChatMessage]) -> None:
        try:
            for message in messages:
                try:
                    stored = await run_blocking(self.store.insert_message,
                                                user_id,
                                                message,
                                                timeout=self.config.timeouts.data_store)
                except Exception as e:
                    logger.error(f'Failed to persist {"user" if message.is_user else "assistant"} message for user {user_id}: {e!r}')
                    continue
                await self.vector_memory.store_message_embedding(user_id, stored, {'source': 'chat'})
        finally:
            self.cache.invalidate(cache_key(user_id, 'semantic'))

    async def _detect(self,
                      user_id: str,
                      user_message: str,
                      existing_names: Optional[Sequence[str]],
                      on_detected: Optional[DetectionCallback]) -> None:
        result = await self.detect_new_people(user_id, user_message, existing_names)
        if on_detected is not None and result.has_new_people:
            await on_detected(user_id, result)

    async def _learn(self,
                     user_id: str,
                     target: ConversationTarget,
                     transcript: List[ChatMessage],
                     context: Optional[ManagementContext]) -> None:
        if context is None:
            context = await self.build_context(user_id, target)
        await self.learning.record_from_conversation(user_id, transcript, target.scope_person_id, context)

    def after_reply(self,
                    user_id: str,
                    target: ConversationTarget,
                    user_message: str,
                    reply: str,
                    history: Sequence[ChatMessage],
                    context: Optional[ManagementContext] = None,
                    existing_names: Optional[Sequence[str]] = None,
                    on_detected: Optional[DetectionCallback] = None) -> Dict[str, bool]:
        """
        Schedule the post-reply mining jobs and return immediately.

        Jobs: persistence and embedding of both messages, new-person detection
        on the user message, and pattern learning over the transcript.

        Args:
            user_id: Manager who sent the message
            target: Conversation target
            user_message: Message the manager sent
            reply: Reply produced by the completion service
            history: Conversation before this turn
            context: Context used for the turn, rebuilt in the background if None
            existing_names: Roster names, fetched in the background if None
            on_detected: Awaited with the detection result when new people are found

        Returns:
            Job name -> whether it was queued
        """
        if not user_id or not user_id.strip():
            logger.warning('after_reply called without a user id, nothing scheduled')
            return {}

        user_msg = self._message(target, user_message, is_user=True)
        reply_msg = self._message(target, reply, is_user=False)
        transcript = list(history) + [user_msg, reply_msg]

        return {
            'persist': self.background.submit(f'persist:{user_id}', lambda: self._persist_and_embed(user_id, [user_msg, reply_msg])),
            'detect': self.background.submit(f'detect:{user_id}',
                                             lambda: self._detect(user_id, user_message, existing_names, on_detected)),
            'learn': self.background.submit(f'learn:{user_id}', lambda: self._learn(user_id, target, transcript, context)),
        }

    async def detect_new_people(self, user_id: str, message: str, existing_names: Optional[Sequence[str]] = None) -> PersonDetectionResult:
        """Run person detection now. Roster names are looked up when not given."""
        if existing_names is None:
            try:
                rows = await run_blocking(self.store.list_people, user_id, timeout=self.config.timeouts.data_store)
                existing_names = [row.get('name') or '' for row in rows]
            except Exception as e:
                logger.warning(f'Roster lookup failed for detection, assuming empty roster: {e!r}')
                existing_names = []
        return await self.detection.detect(message, existing_names)

    def backfill_embeddings(self, user_id: str) -> bool:
        """Queue the embedding backfill for a user's unembedded messages."""
        return self.background.submit(f'backfill:{user_id}', lambda: self.vector_memory.process_unembedded_messages(user_id))

    async def get_proactive_insights(self, user_id: str, context: Optional[ManagementContext] = None) -> List[ProactiveInsight]:
        if context is None:
            context = await self.build_context(user_id, ConversationTarget.general())
        try:
            return await self.insights.generate(user_id, context)
        except Exception as e:
            logger.error(f'Proactive insights failed for user {user_id}: {e!r}')
            return []

    async def get_person_insights(self,
                                  user_id: str,
                                  person_id: str,
                                  context: Optional[ManagementContext] = None) -> List[ProactiveInsight]:
        if context is None:
            context = await self.build_context(user_id, ConversationTarget.general())
        try:
            return await self.insights.get_person_insights(user_id, person_id, context)
        except Exception as e:
            logger.error(f'Person insights failed for {person_id}: {e!r}')
            return []

    async def shutdown(self, drain: bool = True) -> None:
        await self.background.shutdown(drain=drain)
