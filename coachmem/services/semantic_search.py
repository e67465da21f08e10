"""
Semantic memory search over past conversations with AI query expansion,
relevance ranking, connected conversations and cross-snippet pattern detection.
"""

import asyncio
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from ..models.core import (SEMANTIC_PATTERN_TYPES, TREND_DIRECTIONS, EnhancedSearchResult, SemanticContext, SemanticPattern,
                           VectorSearchResult)
from ..models.results import LLMOk
from ..utils.async_utils import ask_json, ask_text, run_blocking
from ..utils.bedrock_llm import BedrockLLM
from ..utils.bedrock_rerank import BedrockRerank
from ..utils.config import AppConfig, config as default_config
from ..utils.json_utils import get_choice, get_score, get_str, get_str_list
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import format_day
from ..utils.ttl_cache import TTLCache, cache_key
from .keywords import MANAGEMENT_INTENT_HINTS, MANAGEMENT_INTENT_MATCH_TERMS
from .vector_memory import VectorMemoryService

logger = get_logger(__name__)

SIMILAR_HINTS = ('management', 'leadership', 'team dynamics')
CROSS_PERSON_HINTS = ('team collaboration', 'similar challenges', 'role matching', 'people search')

BASIC_MATCH = 'Basic similarity match'
BASIC_RELATIONSHIP = 'Related conversation'
MAX_SIMILAR = 5
MAX_CROSS_PERSON = 5
MAX_PATTERNS = 2
PATTERN_SNIPPETS = 8
PATTERN_SNIPPET_LENGTH = 150


def basic_result(result: VectorSearchResult, score: Optional[float] = None) -> EnhancedSearchResult:
    return EnhancedSearchResult(original_result=result,
                                relevance_score=result.similarity if score is None else score,
                                context_match=BASIC_MATCH,
                                relationship_to_query=BASIC_RELATIONSHIP)


class SemanticSearchService:
    """Finds related past discussions for the current message."""

    def __init__(self,
                 vector_memory: VectorMemoryService,
                 llm: BedrockLLM,
                 cache: TTLCache,
                 reranker: Optional[BedrockRerank] = None,
                 config: Optional[AppConfig] = None):
        """
        Args:
            vector_memory: Embedding search over stored messages
            llm: Completion client for expansion, relevance and pattern passes
            cache: Shared per-process TTL cache
            reranker: Optional batch relevance scorer run before the per-item pass
            config: Application configuration (global config if None)
        """
        self.vector_memory = vector_memory
        self.llm = llm
        self.cache = cache
        self.reranker = reranker
        self.config = config or default_config
        self.timeout = self.config.timeouts.completion

    async def expand_query(self, query: str, intent: str, hints: Sequence[str]) -> str:
        """Rewrite the query with related terms. Returns the raw query on any failure."""
        if not hints:
            return query

        system_prompt = f"""
You are helping expand a search query with additional context for better semantic search results.

Original query: "{query}"
Search intent: {intent}
Additional context: {', '.join(hints)}

Expand the original query to include relevant context while maintaining the search intent. Add synonyms, related terms
and context that would help find similar management conversations.

Example:
- Original: "team collaboration" + Context: ["remote work", "communication"]
  Expanded: "team collaboration remote work communication coordination teamwork cross-functional cooperation"

Respond with only the expanded query, no explanations."""

        result = await ask_text(self.llm,
                                system_prompt,
                                f'Expand this search query: "{query}" with context: {", ".join(hints)}',
                                timeout=self.timeout,
                                max_tokens=100)
        if isinstance(result, LLMOk):
            logger.debug(f'Expanded query: {result.data[:100]}')
            return result.data
        logger.warning(f'Query expansion failed, using raw query: {result}')
        return query

    async def _rerank_scores(self, query: str, results: List[VectorSearchResult]) -> Dict[int, float]:
        if self.reranker is None or not results:
            return {}
        try:
            return await run_blocking(self.reranker.rerank, query, [r.content for r in results], timeout=self.timeout)
        except Exception as e:
            logger.warning(f'Rerank pass failed, keeping vector similarity: {e!r}')
            return {}

    async def _annotate(self, query: str, intent: str, result: VectorSearchResult, fallback_score: float) -> EnhancedSearchResult:
        system_prompt = f"""
You are analyzing the relevance of a conversation snippet to a search query for a people manager.

Search query: "{query}"
Search intent: {intent}
Conversation snippet: "{result.content}"
Basic similarity score: {result.similarity:.2f}

Consider direct content relevance, contextual or thematic relevance, potential patterns, and actionable information
for a manager.

Return a JSON object with this exact format:
```json
{{
  "relevance_score": 0.0,
  "context_match": "brief description of how this matches the search",
  "relationship_to_query": "specific relationship, e.g. similar challenge, same topic, related pattern",
  "actionable_insights": ["insight1", "insight2"]
}}
```"""

        analysis = await ask_json(self.llm,
                                  system_prompt,
                                  f'Analyze relevance for: "{query}" vs "{result.content[:200]}"',
                                  timeout=self.timeout,
                                  max_tokens=200)
        if not isinstance(analysis, LLMOk):
            logger.debug(f'Relevance pass failed for {result.id}: {analysis}')
            return basic_result(result, fallback_score)

        data = analysis.data
        return EnhancedSearchResult(original_result=result,
                                    relevance_score=get_score(data, 'relevance_score', fallback_score),
                                    context_match=get_str(data, 'context_match') or 'Content similarity',
                                    relationship_to_query=get_str(data, 'relationship_to_query') or BASIC_RELATIONSHIP,
                                    actionable_insights=get_str_list(data, 'actionable_insights', limit=3))

    async def rank_results(self, query: str, intent: str, results: List[VectorSearchResult]) -> List[EnhancedSearchResult]:
        """
        Score hits by relevance to the query.

        A batch rerank pass runs first; the per-item AI pass then annotates the top hits.
        A hit keeps its rerank score, or else its raw similarity, when its AI pass fails.

        Returns:
            Results sorted by relevance descending
        """
        if not results:
            return []

        rerank_scores = await self._rerank_scores(query, results)
        fallback = [rerank_scores.get(i, result.similarity) for i, result in enumerate(results)]

        top_k = self.config.search.annotate_top_k
        annotated = await asyncio.gather(*(self._annotate(query, intent, result, fallback[i])
                                           for i, result in enumerate(results[:top_k])))
        remainder = [basic_result(result, fallback[top_k + i]) for i, result in enumerate(results[top_k:])]

        ranked = list(annotated) + remainder
        ranked.sort(key=lambda item: item.relevance_score, reverse=True)
        return ranked

    async def add_connected_conversations(self, user_id: str, ranked: List[EnhancedSearchResult]) -> None:
        search = self.config.search
        top = ranked[:search.connected_top_k]
        connected = await asyncio.gather(*(self.vector_memory.find_connected(
            user_id, item.original_result, window_days=search.connected_window_days, limit=search.connected_limit)
                                           for item in top))
        for item, conversations in zip(top, connected):
            item.connected_conversations = conversations

    async def basic_search(self, user_id: str, query: str, person_id: Optional[str] = None) -> List[EnhancedSearchResult]:
        """Vector search only, wrapped as ranked results."""
        threshold, limit = self._scope_limits(person_id)
        results = await self.vector_memory.search_similar(user_id, query, person_id=person_id, threshold=threshold, limit=limit)
        return [basic_result(result) for result in results]

    def _scope_limits(self, person_id: Optional[str]):
        search = self.config.search
        if person_id:
            return search.person_threshold, search.person_limit
        return search.team_threshold, search.team_limit

    async def enhanced_search(self,
                              user_id: str,
                              query: str,
                              person_id: Optional[str] = None,
                              intent: str = 'find_similar',
                              hints: Sequence[str] = ()) -> List[EnhancedSearchResult]:
        """
        Expanded, ranked and connected search.

        Falls back to a plain vector search when the enhanced pipeline fails.

        Returns:
            At most `search.max_results` results, most relevant first
        """
        try:
            expanded = await self.expand_query(query, intent, hints)
            threshold, limit = self._scope_limits(person_id)
            results = await self.vector_memory.search_similar(user_id,
                                                              expanded,
                                                              person_id=person_id,
                                                              threshold=threshold,
                                                              limit=limit)
            ranked = await self.rank_results(query, intent, results)
            await self.add_connected_conversations(user_id, ranked)
            logger.debug(f'Enhanced search ({intent}) returned {len(ranked)} results')
            return ranked[:self.config.search.max_results]
        except Exception as e:
            logger.error(f'Enhanced search failed, falling back to basic search: {e!r}')
            return (await self.basic_search(user_id, query, person_id))[:self.config.search.max_results]

    async def detect_patterns(self, query: str, intent: str, ranked: List[EnhancedSearchResult]) -> List[SemanticPattern]:
        """Cross-snippet patterns over the ranked hits. Needs a minimum number of hits."""
        if len(ranked) < self.config.search.min_results_for_patterns:
            return []

        snippets = '\n'.join(
            f'{i + 1}. ({item.original_result.person_id or "general"}, {format_day(item.original_result.created_at)}): '
            f'"{item.original_result.content[:PATTERN_SNIPPET_LENGTH]}"' for i, item in enumerate(ranked[:PATTERN_SNIPPETS]))

        system_prompt = f"""
You are detecting patterns across multiple conversation snippets related to a search query.

Search query: "{query}"
Search intent: {intent}

Conversation snippets:
{snippets}

Identify recurring themes or challenges, escalating issues over time, collaboration opportunities, communication gaps,
and whether situations are improving or worsening. Generate 1-2 high-value patterns only.

Return a JSON object with this exact format:
```json
{{
  "patterns": [
    {{
      "pattern_type": "recurring_theme|escalating_issue|collaboration_opportunity|communication_gap",
      "pattern_description": "clear description of the pattern",
      "confidence": 0.0,
      "people_involved": ["person id"],
      "suggested_actions": ["action1", "action2"],
      "trend_direction": "improving|worsening|stable|emerging"
    }}
  ]
}}
```"""

        result = await ask_json(self.llm,
                                system_prompt,
                                f'Detect patterns in these search results for: "{query}"',
                                timeout=self.timeout,
                                max_tokens=400)
        if not isinstance(result, LLMOk):
            logger.warning(f'Semantic pattern detection failed: {result}')
            return []

        raw_patterns = result.data.get('patterns')
        if not isinstance(raw_patterns, list):
            return []

        supporting = [item.original_result for item in ranked[:5]]
        patterns = []
        for raw in raw_patterns:
            if not isinstance(raw, dict):
                continue
            pattern_type = get_str(raw, 'pattern_type')
            description = get_str(raw, 'pattern_description')
            if pattern_type not in SEMANTIC_PATTERN_TYPES or not description:
                continue
            patterns.append(
                SemanticPattern(pattern_type=pattern_type,
                                pattern_description=description,
                                confidence=get_score(raw, 'confidence', 0.5),
                                supporting_conversations=supporting,
                                people_involved=get_str_list(raw, 'people_involved'),
                                suggested_actions=get_str_list(raw, 'suggested_actions'),
                                trend_direction=get_choice(raw, 'trend_direction', TREND_DIRECTIONS, 'stable')))
        return patterns[:MAX_PATTERNS]

    async def _search_uncached(self, user_id: str, query: str, scope_person_id: Optional[str]) -> SemanticContext:
        similar, cross = await asyncio.gather(
            self.enhanced_search(user_id, query, scope_person_id, 'find_similar', SIMILAR_HINTS),
            self.enhanced_search(user_id, query, None, 'find_related_people', CROSS_PERSON_HINTS))
        patterns = await self.detect_patterns(query, 'find_patterns', similar)

        logger.info(f'Semantic search: {len(similar)} similar, {len(cross)} cross-person, {len(patterns)} patterns')
        return SemanticContext(
            similar_conversations=[replace(item.original_result, similarity=item.relevance_score) for item in similar[:MAX_SIMILAR]],
            cross_person_insights=[item.original_result for item in cross[:MAX_CROSS_PERSON]],
            semantic_patterns=patterns)

    async def search(self, user_id: str, query: Optional[str], scope_person_id: Optional[str] = None) -> Optional[SemanticContext]:
        """
        Semantic context for a user message.

        Args:
            user_id: Owner of the conversations
            query: Current user message
            scope_person_id: Person whose conversation is in focus (None for topic/general)

        Returns:
            SemanticContext, or None when the query is too short to be worth searching
        """
        if not query or len(query.strip()) <= self.config.search.min_query_length:
            logger.debug('Query below minimum length, skipping semantic search')
            return None

        key = cache_key(user_id, 'semantic', scope_person_id or 'all', query[:50])
        try:
            return await self.cache.get_or_compute(key, self.config.cache.semantic_ttl,
                                                   lambda: self._search_uncached(user_id, query, scope_person_id))
        except Exception as e:
            logger.error(f'Semantic search failed, trying vector-only context: {e!r}')

        try:
            similar, cross = await asyncio.gather(self.basic_search(user_id, query, scope_person_id),
                                                  self.basic_search(user_id, query, None))
            return SemanticContext(similar_conversations=[item.original_result for item in similar[:MAX_SIMILAR]],
                                   cross_person_insights=[item.original_result for item in cross[:MAX_CROSS_PERSON]])
        except Exception as e:
            logger.error(f'Vector-only semantic context also failed: {e!r}')
            return None

    async def search_with_intent(self,
                                 user_id: str,
                                 query: str,
                                 intent: str,
                                 person_id: Optional[str] = None) -> List[EnhancedSearchResult]:
        """
        Search for a management intent and keep the hits that serve it.

        Args:
            intent: coaching_moments, performance_patterns, team_dynamics or growth_opportunities

        Raises:
            ValueError: If the intent is unknown
        """
        if intent not in MANAGEMENT_INTENT_HINTS:
            raise ValueError(f'Unknown management intent: {intent}')

        results = await self.enhanced_search(user_id, query, person_id, 'find_patterns', MANAGEMENT_INTENT_HINTS[intent])
        terms = MANAGEMENT_INTENT_MATCH_TERMS[intent]

        def keep(item: EnhancedSearchResult) -> bool:
            matched = any(term in item.context_match.lower() for term in terms)
            if intent in ('coaching_moments', 'growth_opportunities'):
                return matched or bool(item.actionable_insights)
            if intent == 'performance_patterns':
                return matched or item.relevance_score > 0.8
            return matched or bool(item.connected_conversations)

        return [item for item in results if keep(item)]
