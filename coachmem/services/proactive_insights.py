"""
Proactive management suggestions: conversation starters for people the user
has not talked about lately, follow-ups on recent commitments, alerts for
recurring patterns and team-level insights.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, List, Optional

from ..models.core import GENERAL_TARGET_ID, PRIORITIES, ChatMessage, ManagementContext, PersonSummary, ProactiveInsight
from ..models.results import LLMOk
from ..utils.async_utils import ask_json, run_blocking
from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import AppConfig, config as default_config
from ..utils.json_utils import get_choice, get_score, get_str, get_str_list
from ..utils.logging_config import get_logger
from ..utils.supabase_client import SupabaseClient
from ..utils.timestamp_utils import days_ago, format_day, utcnow
from .keywords import FOLLOW_UP_KEYWORDS
from .learning import LearningService

logger = get_logger(__name__)

PRIORITY_WEIGHTS = {'high': 3, 'medium': 2, 'low': 1}


def insight_weight(insight: ProactiveInsight) -> float:
    return PRIORITY_WEIGHTS.get(insight.priority, 1) * insight.relevance_score


def rank_insights(insights: List[ProactiveInsight], limit: int) -> List[ProactiveInsight]:
    """Order by priority weight times relevance, highest first, and keep the top `limit`."""
    return sorted(insights, key=insight_weight, reverse=True)[:limit]


def _stamp(now: datetime) -> int:
    return int(now.timestamp() * 1000)


class ProactiveInsightService:
    """Generates proactive insights for a manager from team state and learned patterns."""

    def __init__(self,
                 store: SupabaseClient,
                 llm: BedrockLLM,
                 learning: LearningService,
                 config: Optional[AppConfig] = None):
        self.store = store
        self.llm = llm
        self.learning = learning
        self.config = config or default_config
        self.settings = self.config.insights

    async def _starter_for(self, person: PersonSummary, context: ManagementContext) -> Optional[ProactiveInsight]:
        system_prompt = f"""
You are suggesting a conversation starter for a manager to reconnect with a team member.

Person: {person.name}
Role: {person.role or 'Unknown'}
Relationship: {person.relationship_type or 'team member'}
Team size: {len(context.people)} people
Recent team themes: {', '.join(context.theme_labels()) or 'None'}
Team challenges: {', '.join(context.current_challenges) or 'None'}

Create a conversation starter that shows genuine interest in the person, relates to the current team context or
their role, and opens up meaningful dialogue without sounding scripted.

Return a JSON object with this exact format:
```json
{{
  "title": "Brief title for the conversation starter",
  "description": "Natural conversation opener",
  "actionable_steps": ["step1", "step2"],
  "context": "Why this conversation matters now",
  "relevance_score": 0.6
}}
```"""

        result = await ask_json(self.llm,
                                system_prompt,
                                f'Generate a conversation starter for reconnecting with {person.name}',
                                timeout=self.config.timeouts.completion,
                                max_tokens=300)
        if not isinstance(result, LLMOk):
            logger.warning(f'Conversation starter failed for {person.name}: {result}')
            return None

        data = result.data
        now = utcnow()
        return ProactiveInsight(id=f'starter_{person.id}_{_stamp(now)}',
                                type='conversation_starter',
                                title=get_str(data, 'title', f'Reconnect with {person.name}'),
                                description=get_str(data, 'description'),
                                priority='medium',
                                actionable_steps=get_str_list(data, 'actionable_steps'),
                                context=get_str(data, 'context', f'Reconnect with {person.name}'),
                                relevance_score=get_score(data, 'relevance_score', 0.6),
                                created_at=now,
                                person_id=person.id,
                                person_name=person.name)

    async def conversation_starters(self, user_id: str, context: ManagementContext) -> List[ProactiveInsight]:
        """Starters for roster members without a user message in the inactivity window."""
        since = days_ago(self.settings.inactivity_days)
        recent = await run_blocking(self.store.list_messages,
                                    user_id,
                                    since=since,
                                    is_user=True,
                                    timeout=self.config.timeouts.data_store)
        contacted = {message.person_id for message in recent if message.person_id}

        inactive = [
            person for person in context.people
            if person.id not in contacted and person.id != GENERAL_TARGET_ID and not person.is_self
        ][:self.settings.max_starters]
        if inactive:
            logger.debug(f'Generating starters for {len(inactive)} inactive people')

        starters = await asyncio.gather(*(self._starter_for(person, context) for person in inactive))
        return [starter for starter in starters if starter]

    async def _follow_up_for(self, message: ChatMessage, context: ManagementContext) -> Optional[ProactiveInsight]:
        person = context.find_person(message.person_id)
        person_name = person.name if person else None
        system_prompt = f"""
You are identifying follow-up opportunities from a recent management conversation.

Person: {person_name or 'Unknown'}
Message: "{message.content}"
Date: {format_day(message.created_at)}

Decide whether this conversation requires follow-up action. Look for commitments made, actions mentioned,
check-ins needed and unresolved issues.

Return a JSON object with this exact format:
```json
{{
  "needs_followup": true,
  "title": "Brief follow-up title",
  "description": "What follow-up is needed",
  "actionable_steps": ["step1", "step2"],
  "context": "Why this follow-up matters",
  "urgency": "high|medium|low",
  "relevance_score": 0.7
}}
```
If no follow-up is needed, return {{"needs_followup": false}}."""

        result = await ask_json(self.llm,
                                system_prompt,
                                f'Analyze this conversation for follow-up needs: "{message.content}"',
                                timeout=self.config.timeouts.completion,
                                max_tokens=250)
        if not isinstance(result, LLMOk):
            logger.warning(f'Follow-up analysis failed for message {message.id}: {result}')
            return None

        data = result.data
        if data.get('needs_followup') is not True:
            return None

        now = utcnow()
        return ProactiveInsight(id=f'followup_{message.person_id or "general"}_{_stamp(now)}',
                                type='follow_up',
                                title=get_str(data, 'title', 'Follow up'),
                                description=get_str(data, 'description'),
                                priority=get_choice(data, 'urgency', PRIORITIES, 'medium'),
                                actionable_steps=get_str_list(data, 'actionable_steps'),
                                context=get_str(data, 'context', 'Follow-up needed from recent conversation'),
                                relevance_score=get_score(data, 'relevance_score', 0.7),
                                created_at=now,
                                person_id=message.person_id,
                                person_name=person_name)

    async def follow_ups(self, user_id: str, context: ManagementContext) -> List[ProactiveInsight]:
        """Follow-ups for recent coach replies that mention commitments or next steps."""
        recent = await run_blocking(self.store.list_messages,
                                    user_id,
                                    since=days_ago(self.settings.follow_up_window_days),
                                    is_user=False,
                                    limit=20,
                                    timeout=self.config.timeouts.data_store)
        with_actions = [
            message for message in recent if any(keyword in message.content.lower() for keyword in FOLLOW_UP_KEYWORDS)
        ][:self.settings.max_follow_ups]

        follow_ups = await asyncio.gather(*(self._follow_up_for(message, context) for message in with_actions))
        return [follow_up for follow_up in follow_ups if follow_up]

    async def pattern_alerts(self, user_id: str, context: ManagementContext) -> List[ProactiveInsight]:
        """Alerts for high-priority, highly relevant learning insights among the top few."""
        alerts = []
        now = utcnow()
        for learning in (await self.learning.get_insights(user_id, context))[:self.settings.max_alerts]:
            if learning.priority != 'high' or learning.relevance_score <= 0.7:
                continue
            alerts.append(
                ProactiveInsight(id=f'pattern_{learning.pattern.id}_{_stamp(now)}',
                                 type='pattern_alert',
                                 title=f'Recurring Pattern Alert: {learning.pattern.pattern_type}',
                                 description=learning.insight,
                                 priority=learning.priority,
                                 actionable_steps=learning.actionable_suggestions,
                                 context=f'Pattern occurred {learning.pattern.frequency} times',
                                 relevance_score=learning.relevance_score,
                                 created_at=now))
        return alerts

    async def team_insights(self, user_id: str, context: ManagementContext) -> List[ProactiveInsight]:
        """One or two team-level insights; none for rosters below the minimum team size."""
        if len(context.people) < self.settings.min_team_size:
            return []

        patterns = context.conversation_patterns
        system_prompt = f"""
You are analyzing team dynamics to provide management insights.

Team context:
- Team size: {len(context.people)} people
- Recent themes: {', '.join(context.theme_labels()) or 'None'}
- Challenges: {', '.join(context.current_challenges) or 'None'}
- Trending topics: {', '.join(patterns.trending_topics) or 'None'}

Identify team-level insights about team dynamics and collaboration, communication effectiveness, growth
opportunities and potential risk areas. Generate 1-2 high-value insights.

Return a JSON object with this exact format:
```json
{{
  "insights": [
    {{
      "title": "Insight title",
      "description": "Detailed insight",
      "actionable_steps": ["step1", "step2"],
      "priority": "high|medium|low",
      "relevance_score": 0.6
    }}
  ]
}}
```"""

        result = await ask_json(self.llm,
                                system_prompt,
                                'Generate team-level management insights based on the current context.',
                                timeout=self.config.timeouts.completion,
                                max_tokens=400)
        if not isinstance(result, LLMOk):
            logger.warning(f'Team insight generation failed for user {user_id}: {result}')
            return []

        items = result.data.get('insights')
        if not isinstance(items, list):
            return []

        now = utcnow()
        insights = []
        for index, item in enumerate(item for item in items[:2] if isinstance(item, dict)):
            insights.append(
                ProactiveInsight(id=f'team_insight_{_stamp(now)}_{index}',
                                 type='preventive_action',
                                 title=get_str(item, 'title', 'Team insight'),
                                 description=get_str(item, 'description'),
                                 priority=get_choice(item, 'priority', PRIORITIES, 'medium'),
                                 actionable_steps=get_str_list(item, 'actionable_steps'),
                                 context='Team-wide insight',
                                 relevance_score=get_score(item, 'relevance_score', 0.6),
                                 created_at=now))
        return insights

    async def _source(self, name: str, pending: Awaitable[List[ProactiveInsight]]) -> List[ProactiveInsight]:
        try:
            return await pending
        except Exception as e:
            logger.error(f'Proactive insight source {name} failed: {e!r}')
            return []

    async def generate(self, user_id: str, context: ManagementContext) -> List[ProactiveInsight]:
        """
        Generate proactive insights from every source.

        Each source fails independently and contributes nothing on failure.

        Returns:
            At most `insights.max_insights` insights, highest priority-weighted relevance first
        """
        logger.info(f'Generating proactive insights for user {user_id}')
        batches = await asyncio.gather(self._source('conversation_starters', self.conversation_starters(user_id, context)),
                                       self._source('follow_ups', self.follow_ups(user_id, context)),
                                       self._source('pattern_alerts', self.pattern_alerts(user_id, context)),
                                       self._source('team_insights', self.team_insights(user_id, context)))
        insights = [insight for batch in batches for insight in batch]
        return rank_insights(insights, self.settings.max_insights)

    async def get_person_insights(self, user_id: str, person_id: str, context: ManagementContext) -> List[ProactiveInsight]:
        """
        Insights about one roster member: a conversation starter plus alerts for
        recurring patterns involving them.

        Returns:
            Insights sorted by relevance descending; [] for unknown people
        """
        person = context.find_person(person_id)
        if person is None:
            return []

        insights = []
        starter = await self._starter_for(person, context)
        if starter:
            insights.append(starter)

        try:
            patterns = await run_blocking(self.store.list_patterns,
                                          user_id,
                                          min_frequency=self.config.learning.min_insight_frequency,
                                          person_id=person_id,
                                          timeout=self.config.timeouts.data_store)
        except Exception as e:
            logger.error(f'Failed to load patterns for person {person_id}: {e!r}')
            patterns = []

        now = utcnow()
        for pattern in patterns:
            insights.append(
                ProactiveInsight(id=f'person_pattern_{pattern.id}',
                                 type='pattern_alert',
                                 title=f'Pattern for {person.name}',
                                 description=pattern.pattern_description,
                                 priority='high' if pattern.frequency > 3 else 'medium',
                                 actionable_steps=list(pattern.suggested_actions),
                                 context=f'Occurred {pattern.frequency} times with {person.name}',
                                 relevance_score=min(pattern.confidence_score + 0.2, 1.0),
                                 created_at=now,
                                 person_id=person_id,
                                 person_name=person.name))

        insights.sort(key=lambda insight: insight.relevance_score, reverse=True)
        return insights
