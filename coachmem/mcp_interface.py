"""
MCP Interface Layer using fastmcp for chat-turn handlers and agents.
"""
import asyncio
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from coachmem.models.core import ChatMessage, ConversationTarget, ProactiveInsight, UserProfile
from coachmem.services.engine import ContextEngine
from coachmem.utils.config import config
from coachmem.utils.health_check import get_system_info
from coachmem.utils.logging_config import get_logger
from coachmem.utils.timestamp_utils import parse_timestamp, to_iso

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Coaching Memory')
engine = ContextEngine()


def _target(person_id: Optional[str],
            person_name: Optional[str],
            person_role: Optional[str],
            relationship_type: Optional[str],
            is_self: bool,
            topic_id: Optional[str],
            topic_name: Optional[str]) -> ConversationTarget:
    if person_id:
        return ConversationTarget(kind='person',
                                  id=person_id,
                                  name=person_name or 'Team member',
                                  role=person_role,
                                  relationship_type=relationship_type,
                                  is_self=is_self)
    if topic_id:
        return ConversationTarget.general(topic_id, topic_name or 'General')
    return ConversationTarget.general()


def _history(history: Optional[List[Dict[str, Any]]]) -> List[ChatMessage]:
    """Messages as {'content', 'is_user', 'created_at'?} dicts."""
    return [
        ChatMessage(content=str(item.get('content', '')),
                    is_user=bool(item.get('is_user')),
                    created_at=parse_timestamp(item.get('created_at'))) for item in history or []
    ]


def _insight_dict(insight: ProactiveInsight) -> Dict[str, Any]:
    data = asdict(insight)
    data['created_at'] = to_iso(insight.created_at)
    data['expires_at'] = to_iso(insight.expires_at) if insight.expires_at else None
    return data


def _require_user(user_id: str) -> None:
    if not user_id or not user_id.strip():
        raise ValueError('User ID is required')


@mcp.tool()
async def build_chat_prompt(user_id: str,
                            message: str,
                            person_id: Optional[str] = None,
                            person_name: Optional[str] = None,
                            person_role: Optional[str] = None,
                            relationship_type: Optional[str] = None,
                            is_self: bool = False,
                            topic_id: Optional[str] = None,
                            topic_name: Optional[str] = None,
                            history: Optional[List[Dict[str, Any]]] = None,
                            profile: Optional[Dict[str, Any]] = None,
                            include_insights: bool = False) -> str:
    """Build the coaching system prompt for a chat turn.

    Args:
        user_id: Manager ID
        message: Current user message
        person_id: Person the conversation is about (omit for topic/general chats)
        person_name: Display name of the person
        person_role: Role of the person
        relationship_type: direct_report, manager, peer, stakeholder or self
        is_self: True for self-reflection conversations
        topic_id: Topic the conversation is about
        topic_name: Display name of the topic
        history: Previous messages as {'content', 'is_user'} dicts
        profile: Manager profile (call_name, job_role, company, experience_level, tone_preference)
        include_insights: Add proactive insights to the context

    Returns:
        Rendered system prompt
    """
    _require_user(user_id)
    target = _target(person_id, person_name, person_role, relationship_type, is_self, topic_id, topic_name)
    user_profile = UserProfile(**{key: value for key, value in (profile or {}).items() if key in UserProfile.__dataclass_fields__})

    prompt = await engine.prepare_turn(user_id, target, message, _history(history), user_profile, include_insights)
    logger.debug(f'MCP built prompt of {len(prompt)} chars for user {user_id}')
    return prompt


@mcp.tool()
async def record_chat_turn(user_id: str,
                           message: str,
                           reply: str,
                           person_id: Optional[str] = None,
                           person_name: Optional[str] = None,
                           is_self: bool = False,
                           topic_id: Optional[str] = None,
                           topic_name: Optional[str] = None,
                           history: Optional[List[Dict[str, Any]]] = None) -> Dict[str, bool]:
    """Schedule background persistence, person detection and learning for a finished turn.

    Args:
        user_id: Manager ID
        message: User message of the turn
        reply: Assistant reply of the turn
        person_id: Person the conversation is about
        person_name: Display name of the person
        is_self: True for self-reflection conversations
        topic_id: Topic the conversation is about
        topic_name: Display name of the topic
        history: Messages before this turn as {'content', 'is_user'} dicts

    Returns:
        Job name -> whether it was queued
    """
    _require_user(user_id)
    target = _target(person_id, person_name, None, None, is_self, topic_id, topic_name)
    return engine.after_reply(user_id, target, message, reply, _history(history))


@mcp.tool()
async def detect_new_people(user_id: str, message: str, existing_names: Optional[List[str]] = None) -> Dict[str, Any]:
    """Detect people mentioned in a message who are not on the roster yet.

    Args:
        user_id: Manager ID
        message: User message
        existing_names: Roster names (looked up when omitted)

    Returns:
        {'detected_people': [...], 'has_new_people': bool, 'fallback_used': bool}
    """
    _require_user(user_id)
    result = await engine.detect_new_people(user_id, message, existing_names)
    return asdict(result)


@mcp.tool()
async def get_proactive_insights(user_id: str) -> List[Dict[str, Any]]:
    """Generate proactive management insights for a manager.

    Args:
        user_id: Manager ID

    Returns:
        Up to 10 insights, most important first
    """
    _require_user(user_id)
    insights = await engine.get_proactive_insights(user_id)
    logger.debug(f'MCP returned {len(insights)} proactive insights for user {user_id}')
    return [_insight_dict(insight) for insight in insights]


@mcp.tool()
async def get_person_insights(user_id: str, person_id: str) -> List[Dict[str, Any]]:
    """Generate insights about one team member.

    Args:
        user_id: Manager ID
        person_id: Roster member ID

    Returns:
        Insights sorted by relevance
    """
    _require_user(user_id)
    insights = await engine.get_person_insights(user_id, person_id)
    return [_insight_dict(insight) for insight in insights]


@mcp.tool()
async def health_status() -> Dict[str, Any]:
    """Report component health, configuration and background queue statistics."""
    info = await asyncio.to_thread(get_system_info)
    info['background_queue'] = engine.background.stats()
    info['cache'] = engine.cache.stats()
    return info


if __name__ == '__main__':
    transport = config.mcp.transport
    host = config.mcp.host
    port = config.mcp.port
    mcp.run(transport=transport, host=host, port=port)
