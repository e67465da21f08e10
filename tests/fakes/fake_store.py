"""Fake in-memory team data store for service tests."""

import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from coachmem.models.core import ChatMessage, RecurringPattern
from coachmem.utils.supabase_client import SupabaseError
from coachmem.utils.timestamp_utils import utcnow


class FakeStore:
    """In-memory stand-in for SupabaseClient with the same method signatures."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all stores to initial state."""
        self.people: Dict[str, List[Dict[str, Any]]] = {}
        self.messages: List[Dict[str, Any]] = []
        self.patterns: Dict[str, RecurringPattern] = {}
        self.failing: set = set()
        self.slow: Dict[str, float] = {}
        self.calls: List[str] = []
        self._ids = 0

    def _next_id(self, prefix: str) -> str:
        self._ids += 1
        return f'{prefix}-{self._ids}'

    def _enter(self, name: str):
        self.calls.append(name)
        if name in self.slow:
            time.sleep(self.slow[name])
        if name in self.failing:
            raise SupabaseError(f'{name} unavailable')

    # Seeding helpers

    def add_person(self, user_id: str, person_id: str, name: str, role: Optional[str] = None,
                   relationship_type: str = 'direct_report', is_self: bool = False) -> None:
        self.people.setdefault(user_id, []).append({
            'id': person_id,
            'name': name,
            'role': role,
            'relationship_type': relationship_type,
            'is_self': is_self,
        })

    def add_message(self, user_id: str, content: str, is_user: bool = True, person_id: Optional[str] = None,
                    topic_id: Optional[str] = None, age_days: float = 0, embedded: bool = True) -> ChatMessage:
        message = ChatMessage(content=content,
                              is_user=is_user,
                              id=self._next_id('msg'),
                              person_id=person_id,
                              topic_id=topic_id,
                              created_at=utcnow() - timedelta(days=age_days))
        self.messages.append({'user_id': user_id, 'message': message, 'embedded': embedded})
        return message

    def add_pattern(self, pattern: RecurringPattern) -> str:
        pattern_id = pattern.id or self._next_id('pattern')
        self.patterns[pattern_id] = replace(pattern, id=pattern_id)
        return pattern_id

    # People

    def list_people(self, user_id: str) -> List[Dict[str, Any]]:
        self._enter('list_people')
        return [dict(row) for row in self.people.get(user_id, [])]

    def get_last_contact(self, user_id: str, person_id: str) -> Optional[datetime]:
        self._enter('get_last_contact')
        times = [
            row['message'].created_at for row in self.messages
            if row['user_id'] == user_id and row['message'].person_id == person_id
        ]
        return max(times) if times else None

    # Messages

    def list_messages(self, user_id: str, since: Optional[datetime] = None, is_user: Optional[bool] = None,
                      person_id: Optional[str] = None, limit: Optional[int] = None, descending: bool = True) -> List[ChatMessage]:
        self._enter('list_messages')
        found = []
        for row in self.messages:
            message = row['message']
            if row['user_id'] != user_id:
                continue
            if since is not None and message.created_at < since:
                continue
            if is_user is not None and message.is_user != is_user:
                continue
            if person_id is not None and message.person_id != person_id:
                continue
            found.append(message)
        found.sort(key=lambda message: message.created_at, reverse=descending)
        return found[:limit] if limit is not None else found

    def insert_message(self, user_id: str, message: ChatMessage) -> ChatMessage:
        self._enter('insert_message')
        stored = replace(message, id=self._next_id('msg'), created_at=message.created_at or utcnow())
        self.messages.append({'user_id': user_id, 'message': stored, 'embedded': False})
        return stored

    def list_unembedded_messages(self, user_id: str, limit: int) -> List[ChatMessage]:
        self._enter('list_unembedded_messages')
        rows = [row['message'] for row in self.messages if row['user_id'] == user_id and not row['embedded']]
        rows.sort(key=lambda message: message.created_at, reverse=True)
        return rows[:limit]

    def mark_embedded(self, message_ids: List[str]) -> None:
        self._enter('mark_embedded')
        for row in self.messages:
            if row['message'].id in message_ids:
                row['embedded'] = True

    # Recurring patterns

    def list_patterns(self, user_id: str, pattern_type: Optional[str] = None, min_frequency: Optional[int] = None,
                      person_id: Optional[str] = None, limit: Optional[int] = None) -> List[RecurringPattern]:
        self._enter('list_patterns')
        found = [
            pattern for pattern in self.patterns.values()
            if pattern.user_id == user_id and (pattern_type is None or pattern.pattern_type == pattern_type) and
            (min_frequency is None or pattern.frequency >= min_frequency) and
            (person_id is None or person_id in pattern.people_involved)
        ]
        found.sort(key=lambda pattern: pattern.last_occurrence or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return [replace(pattern) for pattern in (found[:limit] if limit is not None else found)]

    def insert_pattern(self, pattern: RecurringPattern) -> str:
        self._enter('insert_pattern')
        pattern_id = self._next_id('pattern')
        self.patterns[pattern_id] = replace(pattern, id=pattern_id)
        return pattern_id

    def update_pattern(self, pattern_id: str, frequency: int, last_occurrence: datetime, confidence_score: float) -> None:
        self._enter('update_pattern')
        self.patterns[pattern_id] = replace(self.patterns[pattern_id],
                                            frequency=frequency,
                                            last_occurrence=last_occurrence,
                                            confidence_score=confidence_score)

    def health_check(self) -> bool:
        return 'health_check' not in self.failing
