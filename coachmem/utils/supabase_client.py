"""
Supabase client wrapper for the team data store (people, messages, recurring patterns).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import Client, create_client

from ..models.core import PATTERN_TYPES, ChatMessage, RecurringPattern
from .config import SupabaseConfig
from .logging_config import get_logger
from .timestamp_utils import parse_timestamp, to_iso

logger = get_logger(__name__)


class SupabaseError(Exception):
    """Custom exception for Supabase data store errors."""
    pass


def row_to_message(row: Dict[str, Any]) -> ChatMessage:
    return ChatMessage(id=row.get('id'),
                       content=row.get('content') or '',
                       is_user=bool(row.get('is_user')),
                       person_id=row.get('person_id'),
                       topic_id=row.get('topic_id'),
                       created_at=parse_timestamp(row.get('created_at')))


def row_to_pattern(row: Dict[str, Any]) -> RecurringPattern:
    return RecurringPattern(id=row.get('id'),
                            user_id=row.get('user_id', ''),
                            pattern_type=row.get('pattern_type', ''),
                            pattern_description=row.get('pattern_description') or '',
                            frequency=int(row.get('frequency') or 1),
                            last_occurrence=parse_timestamp(row.get('last_occurrence')),
                            people_involved=list(row.get('people_involved') or []),
                            context_keywords=list(row.get('context_keywords') or []),
                            suggested_actions=list(row.get('suggested_actions') or []),
                            confidence_score=float(row.get('confidence_score') or 0.0))


class SupabaseClient:
    """Supabase (PostgREST) client with error handling.

    All methods are synchronous; async services call them through a worker thread.
    """

    def __init__(self, config: SupabaseConfig, client: Optional[Client] = None):
        """
        Initialize Supabase client.

        Args:
            config: SupabaseConfig instance with connection parameters
            client: Pre-built supabase Client (mainly for tests)

        Raises:
            SupabaseError: If client initialization fails
        """
        self.config = config
        try:
            self.client = client or create_client(config.url, config.service_role_key)
        except Exception as e:
            raise SupabaseError(f'Failed to initialize Supabase client: {e}') from e

        logger.info(f'Initialized Supabase client for: {config.url}')

    def _execute(self, query, action: str) -> List[Dict[str, Any]]:
        try:
            response = query.execute()
        except APIError as e:
            logger.error(f'Error during {action}: {e}')
            raise SupabaseError(f'{action} failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error during {action}: {e}')
            raise SupabaseError(f'Unexpected error during {action}: {e}')
        return response.data or []

    # People

    def list_people(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Get the roster rows of a user.

        Returns:
            Rows with id, name, role, relationship_type, is_self, created_at
        """
        query = (self.client.table(self.config.people_table)
                 .select('id, name, role, relationship_type, is_self, created_at')
                 .eq('user_id', user_id)
                 .order('created_at', desc=True))
        return self._execute(query, 'list people')

    def get_last_contact(self, user_id: str, person_id: str) -> Optional[datetime]:
        """Timestamp of the latest message in a person's conversation, if any."""
        query = (self.client.table(self.config.messages_table)
                 .select('created_at')
                 .eq('user_id', user_id)
                 .eq('person_id', person_id)
                 .order('created_at', desc=True)
                 .limit(1))
        rows = self._execute(query, 'get last contact')
        return parse_timestamp(rows[0].get('created_at')) if rows else None

    # Messages

    def list_messages(self,
                      user_id: str,
                      since: Optional[datetime] = None,
                      is_user: Optional[bool] = None,
                      person_id: Optional[str] = None,
                      limit: Optional[int] = None,
                      descending: bool = True) -> List[ChatMessage]:
        """
        Get a user's messages, optionally windowed and filtered.

        Args:
            user_id: Owner of the messages
            since: Only messages created at or after this instant
            is_user: True for user messages, False for assistant messages, None for both
            person_id: Restrict to one person's conversation
            limit: Maximum rows
            descending: Newest first when True

        Returns:
            List of ChatMessage
        """
        query = (self.client.table(self.config.messages_table)
                 .select('id, content, is_user, person_id, topic_id, created_at')
                 .eq('user_id', user_id))
        if since is not None:
            query = query.gte('created_at', to_iso(since))
        if is_user is not None:
            query = query.eq('is_user', is_user)
        if person_id is not None:
            query = query.eq('person_id', person_id)
        query = query.order('created_at', desc=descending)
        if limit is not None:
            query = query.limit(limit)

        return [row_to_message(row) for row in self._execute(query, 'list messages')]

    def insert_message(self, user_id: str, message: ChatMessage) -> ChatMessage:
        """
        Persist a chat message.

        Returns:
            The stored message with its id and creation time

        Raises:
            SupabaseError: If the insert fails or returns nothing
        """
        row = {
            'user_id': user_id,
            'content': message.content,
            'is_user': message.is_user,
            'person_id': message.person_id,
            'topic_id': message.topic_id,
            'created_at': to_iso(message.created_at),
        }
        rows = self._execute(self.client.table(self.config.messages_table).insert(row), 'insert message')
        if not rows:
            raise SupabaseError('No data returned from insert message')
        return row_to_message(rows[0])

    def list_unembedded_messages(self, user_id: str, limit: int) -> List[ChatMessage]:
        """Newest messages of a user that have no embedding yet."""
        query = (self.client.table(self.config.messages_table)
                 .select('id, content, is_user, person_id, topic_id, created_at')
                 .eq('user_id', user_id)
                 .is_('embedded_at', 'null')
                 .order('created_at', desc=True)
                 .limit(limit))
        return [row_to_message(row) for row in self._execute(query, 'list unembedded messages')]

    def mark_embedded(self, message_ids: List[str]) -> None:
        if not message_ids:
            return
        query = (self.client.table(self.config.messages_table)
                 .update({'embedded_at': to_iso()})
                 .in_('id', message_ids))
        self._execute(query, 'mark messages embedded')

    # Recurring patterns

    def list_patterns(self,
                      user_id: str,
                      pattern_type: Optional[str] = None,
                      min_frequency: Optional[int] = None,
                      person_id: Optional[str] = None,
                      limit: Optional[int] = None) -> List[RecurringPattern]:
        """
        Get a user's recurring patterns, most recent occurrence first.

        Args:
            user_id: Owner of the patterns
            pattern_type: Restrict to one pattern kind
            min_frequency: Only patterns seen at least this many times
            person_id: Only patterns involving this person
            limit: Maximum rows

        Returns:
            List of RecurringPattern
        """
        query = self.client.table(self.config.patterns_table).select('*').eq('user_id', user_id)
        if pattern_type is not None:
            query = query.eq('pattern_type', pattern_type)
        if min_frequency is not None:
            query = query.gte('frequency', min_frequency)
        if person_id is not None:
            query = query.contains('people_involved', [person_id])
        query = query.order('last_occurrence', desc=True)
        if limit is not None:
            query = query.limit(limit)

        patterns = []
        for row in self._execute(query, 'list patterns'):
            if row.get('pattern_type') not in PATTERN_TYPES:
                logger.warning(f"Skipping pattern {row.get('id')} with unknown type {row.get('pattern_type')!r}")
                continue
            patterns.append(row_to_pattern(row))
        return patterns

    def insert_pattern(self, pattern: RecurringPattern) -> str:
        """
        Insert a new recurring pattern.

        Returns:
            The new pattern id

        Raises:
            SupabaseError: If the insert fails or returns nothing
        """
        row = {
            'user_id': pattern.user_id,
            'pattern_type': pattern.pattern_type,
            'pattern_description': pattern.pattern_description,
            'frequency': pattern.frequency,
            'last_occurrence': to_iso(pattern.last_occurrence),
            'people_involved': pattern.people_involved,
            'context_keywords': pattern.context_keywords,
            'suggested_actions': pattern.suggested_actions,
            'confidence_score': pattern.confidence_score,
        }
        rows = self._execute(self.client.table(self.config.patterns_table).insert(row), 'insert pattern')
        if not rows:
            raise SupabaseError('No data returned from insert pattern')
        return rows[0]['id']

    def update_pattern(self, pattern_id: str, frequency: int, last_occurrence: datetime, confidence_score: float) -> None:
        query = (self.client.table(self.config.patterns_table)
                 .update({
                     'frequency': frequency,
                     'last_occurrence': to_iso(last_occurrence),
                     'confidence_score': confidence_score
                 })
                 .eq('id', pattern_id))
        self._execute(query, 'update pattern')

    def health_check(self) -> bool:
        """
        Perform a health check on the Supabase data store.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            self._execute(self.client.table(self.config.people_table).select('id').limit(1), 'health check')
            return True

        except Exception as e:
            logger.error(f'Supabase health check failed: {e}')
            return False
