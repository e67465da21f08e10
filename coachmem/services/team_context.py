"""
Team & theme aggregation: roster overview, recent management themes, current
challenges and discussion patterns, each cached and fetched concurrently.
"""

import asyncio
import re
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..models.core import (RELATIONSHIP_TYPES, ChatMessage, ConversationPatterns, ConversationTheme, CrossPersonMention, ManagementContext,
                           PersonSummary, TeamSize)
from ..utils.async_utils import run_blocking
from ..utils.config import AppConfig, config as default_config
from ..utils.logging_config import get_logger
from ..utils.supabase_client import SupabaseClient
from ..utils.timestamp_utils import days_ago, utcnow
from ..utils.ttl_cache import TTLCache, cache_key
from .keywords import CHALLENGE_KEYWORDS, EXPERTISE_KEYWORDS, RELATIONSHIP_COUNT_FIELDS, THEME_KEYWORDS

logger = get_logger(__name__)

MAX_MOST_DISCUSSED = 5
MAX_CROSS_MENTIONS = 10
SNIPPET_LENGTH = 100


def extract_themes(texts: Iterable[str]) -> List[str]:
    """Theme keywords found in the texts, most frequent first (ties keep table order)."""
    counts: Counter = Counter()
    for text in texts:
        lowered = (text or '').lower()
        for keyword in THEME_KEYWORDS:
            if keyword in lowered:
                counts[keyword] += 1
    return [theme for theme, _ in sorted(counts.items(), key=lambda item: -item[1])]


def analyze_themes(messages: List[ChatMessage], max_themes: int = 5, max_examples: int = 3) -> List[ConversationTheme]:
    """
    Count messages per theme keyword across conversations.

    Args:
        messages: Windowed messages, newest first
        max_themes: Number of themes kept
        max_examples: Example snippets kept per theme

    Returns:
        Themes sorted by frequency descending; equal frequencies keep first-seen order
    """
    themes: Dict[str, Dict[str, Any]] = {}

    for message in messages:
        for theme in extract_themes([message.content]):
            data = themes.setdefault(theme, {'count': 0, 'people': [], 'examples': [], 'last': message.created_at})
            data['count'] += 1
            if message.person_id and message.person_id not in data['people']:
                data['people'].append(message.person_id)
            if len(data['examples']) < max_examples:
                data['examples'].append(message.content[:SNIPPET_LENGTH])
            if message.created_at and (data['last'] is None or message.created_at > data['last']):
                data['last'] = message.created_at

    ranked = sorted(themes.items(), key=lambda item: -item[1]['count'])
    return [
        ConversationTheme(theme=theme,
                          frequency=data['count'],
                          people_mentioned=data['people'],
                          last_mentioned=data['last'],
                          examples=data['examples']) for theme, data in ranked[:max_themes]
    ]


def detect_challenges(messages: List[ChatMessage]) -> List[str]:
    """Challenge labels whose keywords appear anywhere in the corpus, in table order."""
    corpus = ' '.join(message.content.lower() for message in messages)
    return [label for label, keywords in CHALLENGE_KEYWORDS.items() if any(keyword in corpus for keyword in keywords)]


def find_cross_person_mentions(messages: List[ChatMessage], roster: List[Dict[str, Any]]) -> List[CrossPersonMention]:
    """Messages in one person's conversation that name another roster member."""
    name_patterns = []
    for row in roster:
        name = (row.get('name') or '').strip()
        if row.get('id') and name and not row.get('is_self'):
            first_name = name.split()[0]
            name_patterns.append((row['id'], re.compile(rf'\b{re.escape(first_name)}\b')))

    mentions: List[CrossPersonMention] = []
    seen = set()
    for message in messages:
        if not message.person_id:
            continue
        for person_id, pattern in name_patterns:
            pair = (message.person_id, person_id)
            if person_id == message.person_id or pair in seen:
                continue
            if pattern.search(message.content):
                seen.add(pair)
                mentions.append(
                    CrossPersonMention(person_a=message.person_id,
                                       person_b=person_id,
                                       context=message.content[:SNIPPET_LENGTH]))
                if len(mentions) >= MAX_CROSS_MENTIONS:
                    return mentions
    return mentions


def analyze_conversation_patterns(messages: List[ChatMessage], roster: List[Dict[str, Any]]) -> ConversationPatterns:
    person_counts = Counter(message.person_id for message in messages if message.person_id)
    most_discussed = [person_id for person_id, _ in person_counts.most_common(MAX_MOST_DISCUSSED)]
    trending = extract_themes([' '.join(message.content for message in messages)])[:5]
    return ConversationPatterns(most_discussed_people=most_discussed,
                                trending_topics=trending,
                                cross_person_mentions=find_cross_person_mentions(messages, roster))


def normalize_relationship(value: Optional[str]) -> str:
    """Known relationship type, 'peer' for missing or unrecognized values."""
    value = (value or '').strip().lower()
    return value if value in RELATIONSHIP_TYPES else 'peer'


def calculate_team_size(people: List[PersonSummary]) -> TeamSize:
    counts = Counter(person.relationship_type for person in people)
    return TeamSize(**{field: counts.get(kind, 0) for kind, field in RELATIONSHIP_COUNT_FIELDS.items()})


def rank_people_for_topic(people: List[PersonSummary], query: Optional[str], now: Optional[datetime] = None) -> List[PersonSummary]:
    """
    Order the roster by how relevant each role is to a topic query, then by recent contact.

    An expertise area scores 10 when both the query and the role mention it and 3 when
    only one does. Contact in the last 7 days adds 2, in the last 30 days adds 1.
    """
    if not query or not people:
        return people

    now = now or utcnow()
    query_lower = query.lower()

    def score(person: PersonSummary) -> int:
        total = 0
        role_lower = (person.role or '').lower()
        for keywords in EXPERTISE_KEYWORDS.values():
            query_matches = any(keyword in query_lower for keyword in keywords)
            role_matches = bool(role_lower) and any(keyword.split(' ')[0] in role_lower for keyword in keywords)
            if query_matches and role_matches:
                total += 10
            elif query_matches or role_matches:
                total += 3
        if person.last_contact:
            days_since = (now - person.last_contact).days
            if days_since < 7:
                total += 2
            elif days_since < 30:
                total += 1
        return total

    def contact_ts(person: PersonSummary) -> float:
        return person.last_contact.timestamp() if person.last_contact else 0.0

    return sorted(people, key=lambda person: (-score(person), -contact_ts(person)))


class TeamContextService:
    """Builds the team part of a ManagementContext from the data store."""

    def __init__(self, store: SupabaseClient, cache: TTLCache, config: Optional[AppConfig] = None):
        """
        Args:
            store: Team data store client
            cache: Shared per-process TTL cache
            config: Application configuration (global config if None)
        """
        self.store = store
        self.cache = cache
        self.config = config or default_config
        self.timeout = self.config.timeouts.data_store

    async def _call(self, fn, *args, **kwargs):
        return await run_blocking(fn, *args, timeout=self.timeout, **kwargs)

    async def _person_summary(self, user_id: str, row: Dict[str, Any]) -> PersonSummary:
        ctx = self.config.context
        person_id = row['id']
        last_contact, messages = await asyncio.gather(
            self._call(self.store.get_last_contact, user_id, person_id),
            self._call(self.store.list_messages,
                       user_id,
                       since=days_ago(ctx.person_themes_window_days),
                       is_user=True,
                       person_id=person_id,
                       limit=10),
            return_exceptions=True)

        if isinstance(last_contact, BaseException):
            logger.warning(f'Last contact lookup failed for person {person_id}: {last_contact}')
            last_contact = None
        if isinstance(messages, BaseException):
            logger.warning(f'Recent themes lookup failed for person {person_id}: {messages}')
            messages = []

        return PersonSummary(id=person_id,
                             name=row.get('name') or '',
                             role=row.get('role'),
                             relationship_type=normalize_relationship(row.get('relationship_type')),
                             last_contact=last_contact,
                             recent_themes=extract_themes(m.content for m in messages)[:ctx.max_person_themes],
                             is_self=bool(row.get('is_self')))

    async def get_people_overview(self, user_id: str) -> List[PersonSummary]:
        rows = await self._call(self.store.list_people, user_id)
        return list(await asyncio.gather(*(self._person_summary(user_id, row) for row in rows)))

    async def get_recent_themes(self, user_id: str) -> List[ConversationTheme]:
        ctx = self.config.context
        messages = await self._call(self.store.list_messages, user_id, since=days_ago(ctx.themes_window_days), is_user=True)
        return analyze_themes(messages, max_themes=ctx.max_themes, max_examples=ctx.max_examples)

    async def get_current_challenges(self, user_id: str) -> List[str]:
        messages = await self._call(self.store.list_messages,
                                    user_id,
                                    since=days_ago(self.config.context.challenges_window_days),
                                    is_user=True)
        return detect_challenges(messages)

    async def get_conversation_patterns(self, user_id: str) -> ConversationPatterns:
        messages, roster = await asyncio.gather(
            self._call(self.store.list_messages, user_id, since=days_ago(self.config.context.patterns_window_days)),
            self._call(self.store.list_people, user_id))
        return analyze_conversation_patterns(messages, roster)

    async def _cached(self, key: str, ttl: float, compute, empty):
        """Cache-wrapped branch that degrades to `empty` on failure. Failures are not cached."""
        try:
            return await self.cache.get_or_compute(key, ttl, compute)
        except Exception as e:
            logger.warning(f'Context branch {key} failed, using empty value: {e!r}')
            return empty

    async def build_context(self,
                            user_id: str,
                            person_or_topic_id: str,
                            query: Optional[str] = None,
                            is_topic: bool = False) -> ManagementContext:
        """
        Build the team part of the management context.

        Args:
            user_id: Owner of the roster and messages
            person_or_topic_id: Conversation target id
            query: Current user message, used to order people for topic conversations
            is_topic: True when the target is a topic rather than a person

        Returns:
            ManagementContext without semantic context or proactive insights
        """
        ttl = self.config.cache
        people, themes, challenges, patterns = await asyncio.gather(
            self._cached(cache_key(user_id, 'people'), ttl.people_ttl, lambda: self.get_people_overview(user_id), []),
            self._cached(cache_key(user_id, 'themes'), ttl.themes_ttl, lambda: self.get_recent_themes(user_id), []),
            self._cached(cache_key(user_id, 'challenges'), ttl.challenges_ttl, lambda: self.get_current_challenges(user_id), []),
            self._cached(cache_key(user_id, 'patterns'), ttl.patterns_ttl, lambda: self.get_conversation_patterns(user_id),
                         ConversationPatterns()))

        if is_topic and query:
            people = rank_people_for_topic(people, query)

        logger.debug(f'Team context for {person_or_topic_id}: {len(people)} people, {len(themes)} themes, '
                     f'{len(challenges)} challenges')

        return ManagementContext(people=list(people),
                                 team_size=calculate_team_size(people),
                                 recent_themes=list(themes),
                                 current_challenges=list(challenges),
                                 conversation_patterns=patterns)
