"""
Recurring pattern learning: mines finished conversations for challenges,
relationship and communication dynamics, merges them into persisted patterns,
and turns frequent patterns into actionable insights.
"""

import asyncio
import re
from typing import List, Optional, Sequence

from ..models.core import GENERAL_TARGET_ID, PRIORITIES, ChatMessage, ConversationAnalysis, LearningInsight, ManagementContext, \
    RecurringPattern
from ..models.results import LLMOk
from ..utils.async_utils import ask_json, run_blocking
from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import AppConfig, config as default_config
from ..utils.json_utils import get_choice, get_score, get_str, get_str_list
from ..utils.logging_config import get_logger
from ..utils.supabase_client import SupabaseClient
from ..utils.timestamp_utils import utcnow

logger = get_logger(__name__)

STOP_WORDS = frozenset({
    'the', 'and', 'for', 'with', 'about', 'from', 'that', 'this', 'into', 'over', 'their', 'they', 'them', 'have', 'has',
    'was', 'were', 'are', 'not', 'but', 'being', 'been', 'when', 'while', 'more', 'less', 'very', 'some', 'than',
})


def normalize_keywords(*groups: Sequence[str]) -> List[str]:
    """Lowercased, de-duplicated keywords in first-seen order."""
    seen = []
    for group in groups:
        for keyword in group:
            keyword = keyword.strip().lower()
            if keyword and keyword not in seen:
                seen.append(keyword)
    return seen


def description_terms(description: str) -> List[str]:
    return [word for word in re.findall(r"[a-z][a-z'-]+", description.lower()) if len(word) > 3 and word not in STOP_WORDS]


def pattern_similarity(keywords_a: Sequence[str], keywords_b: Sequence[str]) -> float:
    """Keyword overlap |A & B| / max(|A|, |B|); 0.0 when both are empty."""
    set_a = {keyword.lower() for keyword in keywords_a}
    set_b = {keyword.lower() for keyword in keywords_b}
    largest = max(len(set_a), len(set_b))
    if largest == 0:
        return 0.0
    return len(set_a & set_b) / largest


def format_transcript(history: List[ChatMessage]) -> str:
    return '\n'.join(f'{"Manager" if message.is_user else "Coach"}: {message.content}' for message in history)


class LearningService:
    """Learns recurring management patterns for a user."""

    def __init__(self, store: SupabaseClient, llm: BedrockLLM, config: Optional[AppConfig] = None):
        self.store = store
        self.llm = llm
        self.config = config or default_config
        self.settings = self.config.learning

    async def analyze_conversation(self,
                                   history: List[ChatMessage],
                                   scope_person_id: Optional[str],
                                   context: ManagementContext) -> Optional[ConversationAnalysis]:
        """AI analysis of a transcript. Returns None when the analysis fails."""
        target = 'general management topics' if scope_person_id in (None, GENERAL_TARGET_ID) else 'a specific team member'
        system_prompt = f"""
You are analyzing a management conversation to identify learning patterns and recurring challenges.

Context:
- The manager is discussing {target}
- Team context: {len(context.people)} people, {len(context.recent_themes)} recent themes
- Recent themes: {', '.join(context.theme_labels()) or 'None'}
- Team challenges: {', '.join(context.current_challenges) or 'None'}

Conversation history:
{format_transcript(history)}

Identify recurring management challenges, communication patterns, relationship dynamics, and areas where the
manager could benefit from ongoing support.

Return a JSON object with this exact format:
```json
{{
  "themes": ["theme1", "theme2"],
  "challenges": ["challenge1"],
  "relationships": ["relationship pattern"],
  "communication_patterns": ["pattern1"],
  "follow_up_needed": false,
  "learning_opportunities": ["opportunity1"]
}}
```"""

        result = await ask_json(self.llm,
                                system_prompt,
                                'Analyze this conversation for learning patterns and recurring challenges.',
                                timeout=self.config.timeouts.completion,
                                max_tokens=500)
        if not isinstance(result, LLMOk):
            logger.warning(f'Conversation analysis failed: {result}')
            return None

        data = result.data
        analysis = ConversationAnalysis(themes=get_str_list(data, 'themes'),
                                        challenges=get_str_list(data, 'challenges'),
                                        relationships=get_str_list(data, 'relationships'),
                                        communication_patterns=get_str_list(data, 'communication_patterns'),
                                        follow_up_needed=data.get('follow_up_needed') is True,
                                        learning_opportunities=get_str_list(data, 'learning_opportunities'))
        logger.debug(f'Conversation analysis: {len(analysis.themes)} themes, {len(analysis.challenges)} challenges')
        return analysis

    def patterns_from_analysis(self, user_id: str, analysis: ConversationAnalysis,
                               scope_person_id: Optional[str]) -> List[RecurringPattern]:
        """Candidate patterns for every extracted string longer than the minimum description length."""
        people = [] if scope_person_id in (None, GENERAL_TARGET_ID) else [scope_person_id]
        sources = (
            ('challenge', analysis.challenges, 0.7, analysis.themes + analysis.communication_patterns),
            ('relationship', analysis.relationships, 0.6, analysis.themes),
            ('communication', analysis.communication_patterns, 0.5, analysis.themes),
            ('topic', analysis.themes, 0.5, analysis.themes),
        )

        candidates = []
        for pattern_type, descriptions, confidence, context_keywords in sources:
            for description in descriptions:
                if len(description) <= self.settings.min_description_length:
                    continue
                candidates.append(
                    RecurringPattern(id=None,
                                     user_id=user_id,
                                     pattern_type=pattern_type,
                                     pattern_description=description,
                                     frequency=1,
                                     last_occurrence=None,
                                     people_involved=list(people),
                                     context_keywords=normalize_keywords(description_terms(description), context_keywords),
                                     suggested_actions=list(analysis.learning_opportunities),
                                     confidence_score=confidence))
        return candidates

    async def find_similar_pattern(self, pattern: RecurringPattern) -> Optional[RecurringPattern]:
        """First existing pattern of the same kind whose keyword overlap exceeds the merge threshold."""
        existing = await run_blocking(self.store.list_patterns,
                                      pattern.user_id,
                                      pattern_type=pattern.pattern_type,
                                      timeout=self.config.timeouts.data_store)
        for candidate in existing:
            if pattern_similarity(pattern.context_keywords, candidate.context_keywords) > self.settings.merge_threshold:
                return candidate
        return None

    async def store_recurring_pattern(self, pattern: RecurringPattern) -> Optional[str]:
        """
        Merge the pattern into a similar existing one or insert it.

        A merge increments frequency, moves last occurrence to now and raises
        confidence by one step (capped at 1.0); id and description stay unchanged.

        Returns:
            Id of the merged or inserted pattern, None if the data store failed
        """
        timeout = self.config.timeouts.data_store
        now = utcnow()
        try:
            existing = await self.find_similar_pattern(pattern)
            if existing is not None:
                await run_blocking(self.store.update_pattern,
                                   existing.id,
                                   frequency=existing.frequency + 1,
                                   last_occurrence=now,
                                   confidence_score=min(existing.confidence_score + self.settings.confidence_step, 1.0),
                                   timeout=timeout)
                logger.info(f'Updated existing {pattern.pattern_type} pattern {existing.id} (frequency {existing.frequency + 1})')
                return existing.id

            new_pattern = RecurringPattern(id=None,
                                           user_id=pattern.user_id,
                                           pattern_type=pattern.pattern_type,
                                           pattern_description=pattern.pattern_description,
                                           frequency=1,
                                           last_occurrence=now,
                                           people_involved=pattern.people_involved,
                                           context_keywords=pattern.context_keywords,
                                           suggested_actions=pattern.suggested_actions,
                                           confidence_score=pattern.confidence_score)
            pattern_id = await run_blocking(self.store.insert_pattern, new_pattern, timeout=timeout)
            logger.info(f'Created new {pattern.pattern_type} pattern {pattern_id}')
            return pattern_id

        except Exception as e:
            logger.error(f'Failed to store recurring pattern: {e!r}')
            return None

    async def record_from_conversation(self,
                                       user_id: str,
                                       history: List[ChatMessage],
                                       scope_person_id: Optional[str],
                                       context: ManagementContext) -> int:
        """
        Learn patterns from a conversation transcript.

        Returns:
            Number of patterns stored or merged (0 when the conversation is too short)
        """
        if len(history) < self.settings.min_conversation_length:
            logger.debug(f'Conversation too short for learning ({len(history)} messages)')
            return 0

        analysis = await self.analyze_conversation(history, scope_person_id, context)
        if analysis is None:
            return 0

        stored = 0
        # Sequential so that near-duplicates within one conversation merge instead of racing
        for pattern in self.patterns_from_analysis(user_id, analysis, scope_person_id):
            if await self.store_recurring_pattern(pattern):
                stored += 1

        logger.info(f'Learning processed conversation for user {user_id}: {stored} patterns recorded')
        return stored

    async def _insight_for(self, pattern: RecurringPattern, context: ManagementContext) -> Optional[LearningInsight]:
        system_prompt = f"""
You are generating a learning insight from a recurring management pattern.

Pattern:
- Type: {pattern.pattern_type}
- Description: {pattern.pattern_description}
- Frequency: {pattern.frequency} times
- Keywords: {', '.join(pattern.context_keywords)}
- People involved: {', '.join(pattern.people_involved) or 'None'}

Current management context:
- Team size: {len(context.people)}
- Recent themes: {', '.join(context.theme_labels()) or 'None'}
- Active challenges: {', '.join(context.current_challenges) or 'None'}

Generate an insight that helps the manager proactively address this recurring pattern: why it keeps recurring,
actionable steps, and prevention strategies.

Return a JSON object with this exact format:
```json
{{
  "insight": "Clear insight about the pattern",
  "actionable_suggestions": ["suggestion1", "suggestion2", "suggestion3"],
  "priority": "high|medium|low",
  "relevance_score": 0.0
}}
```"""

        result = await ask_json(self.llm,
                                system_prompt,
                                f'Generate a learning insight for this recurring pattern: {pattern.pattern_description}',
                                timeout=self.config.timeouts.completion,
                                max_tokens=300)
        if not isinstance(result, LLMOk):
            logger.warning(f'Insight generation failed for pattern {pattern.id}: {result}')
            return None

        insight = get_str(result.data, 'insight')
        if not insight:
            return None
        return LearningInsight(pattern=pattern,
                               insight=insight,
                               actionable_suggestions=get_str_list(result.data, 'actionable_suggestions', limit=3),
                               priority=get_choice(result.data, 'priority', PRIORITIES, 'medium'),
                               relevance_score=get_score(result.data, 'relevance_score', 0.5))

    async def get_insights(self, user_id: str, context: ManagementContext) -> List[LearningInsight]:
        """
        Insights for the user's most recent frequent patterns.

        Returns:
            Insights sorted by relevance descending; [] if the patterns cannot be read
        """
        try:
            patterns = await run_blocking(self.store.list_patterns,
                                          user_id,
                                          min_frequency=self.settings.min_insight_frequency,
                                          limit=self.settings.max_insight_patterns,
                                          timeout=self.config.timeouts.data_store)
        except Exception as e:
            logger.error(f'Failed to load recurring patterns for user {user_id}: {e!r}')
            return []

        insights = [item for item in await asyncio.gather(*(self._insight_for(p, context) for p in patterns)) if item]
        insights.sort(key=lambda item: item.relevance_score, reverse=True)
        return insights
