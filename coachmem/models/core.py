"""
Core data models for the coaching context and memory engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

RELATIONSHIP_TYPES = ('direct_report', 'manager', 'peer', 'stakeholder', 'self')
PATTERN_TYPES = ('challenge', 'topic', 'relationship', 'communication')
SEMANTIC_PATTERN_TYPES = ('recurring_theme', 'escalating_issue', 'collaboration_opportunity', 'communication_gap')
TREND_DIRECTIONS = ('improving', 'worsening', 'stable', 'emerging')
PRIORITIES = ('high', 'medium', 'low')

GENERAL_TARGET_ID = 'general'


@dataclass
class PersonSummary:
    """A roster member as seen by the engine. Read-only view of the people table."""
    id: str
    name: str
    role: Optional[str]
    relationship_type: str  # direct_report|manager|peer|stakeholder|self
    last_contact: Optional[datetime] = None
    recent_themes: List[str] = field(default_factory=list)  # At most 3
    is_self: bool = False


@dataclass
class TeamSize:
    direct_reports: int = 0
    managers: int = 0
    peers: int = 0
    stakeholders: int = 0


@dataclass
class ConversationTheme:
    """A keyword theme detected over a time-windowed message corpus."""
    theme: str
    frequency: int
    people_mentioned: List[str]
    last_mentioned: Optional[datetime]
    examples: List[str]  # At most 3 snippets


@dataclass
class CrossPersonMention:
    person_a: str  # Conversation owner
    person_b: str  # Roster member named in that conversation
    context: str


@dataclass
class ConversationPatterns:
    most_discussed_people: List[str] = field(default_factory=list)
    trending_topics: List[str] = field(default_factory=list)
    cross_person_mentions: List[CrossPersonMention] = field(default_factory=list)


@dataclass
class VectorSearchResult:
    """A conversation snippet returned by the vector store."""
    id: str
    content: str
    person_id: Optional[str]
    message_type: str  # user|assistant
    created_at: Optional[datetime]
    similarity: float  # 0-1
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EnhancedSearchResult:
    """A vector hit after relevance ranking."""
    original_result: VectorSearchResult
    relevance_score: float
    context_match: str
    relationship_to_query: str
    actionable_insights: List[str] = field(default_factory=list)
    connected_conversations: List[VectorSearchResult] = field(default_factory=list)


@dataclass
class SemanticPattern:
    pattern_type: str  # recurring_theme|escalating_issue|collaboration_opportunity|communication_gap
    pattern_description: str
    confidence: float
    supporting_conversations: List[VectorSearchResult]
    people_involved: List[str]
    suggested_actions: List[str]
    trend_direction: str  # improving|worsening|stable|emerging


@dataclass
class SemanticContext:
    similar_conversations: List[VectorSearchResult] = field(default_factory=list)
    cross_person_insights: List[VectorSearchResult] = field(default_factory=list)
    semantic_patterns: List[SemanticPattern] = field(default_factory=list)


@dataclass
class RecurringPattern:
    """A persisted recurring behaviour or challenge.

    Created on first detection and updated in place (frequency, last occurrence,
    confidence) when a later detection has a similar keyword set.
    """
    id: Optional[str]
    user_id: str
    pattern_type: str  # challenge|topic|relationship|communication
    pattern_description: str
    frequency: int
    last_occurrence: Optional[datetime]
    people_involved: List[str]
    context_keywords: List[str]
    suggested_actions: List[str]
    confidence_score: float  # 0-1


@dataclass
class ConversationAnalysis:
    themes: List[str] = field(default_factory=list)
    challenges: List[str] = field(default_factory=list)
    relationships: List[str] = field(default_factory=list)
    communication_patterns: List[str] = field(default_factory=list)
    follow_up_needed: bool = False
    learning_opportunities: List[str] = field(default_factory=list)


@dataclass
class LearningInsight:
    pattern: RecurringPattern
    insight: str
    actionable_suggestions: List[str]
    priority: str  # high|medium|low
    relevance_score: float


@dataclass
class DetectedPerson:
    """A candidate new person found in a message. Never persisted directly."""
    name: str
    confidence: float
    context: str
    role: Optional[str] = None
    relationship_type: Optional[str] = None
    validation_score: Optional[int] = None  # 1-10 when AI validated


@dataclass
class PersonDetectionResult:
    detected_people: List[DetectedPerson] = field(default_factory=list)
    has_new_people: bool = False
    fallback_used: bool = False


@dataclass
class ProactiveInsight:
    id: str
    type: str  # conversation_starter|follow_up|pattern_alert|preventive_action
    title: str
    description: str
    priority: str  # high|medium|low
    actionable_steps: List[str]
    context: str
    relevance_score: float
    created_at: datetime
    person_id: Optional[str] = None
    person_name: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass
class ManagementContext:
    """Per-turn aggregation used to render a prompt. Never persisted."""
    people: List[PersonSummary] = field(default_factory=list)
    team_size: TeamSize = field(default_factory=TeamSize)
    recent_themes: List[ConversationTheme] = field(default_factory=list)
    current_challenges: List[str] = field(default_factory=list)
    conversation_patterns: ConversationPatterns = field(default_factory=ConversationPatterns)
    semantic_context: Optional[SemanticContext] = None
    proactive_insights: Optional[List[ProactiveInsight]] = None

    @classmethod
    def empty(cls) -> 'ManagementContext':
        return cls()

    def find_person(self, person_id: Optional[str]) -> Optional[PersonSummary]:
        for person in self.people:
            if person.id == person_id:
                return person
        return None

    def theme_labels(self) -> List[str]:
        return [theme.theme for theme in self.recent_themes]


@dataclass
class ChatMessage:
    """A stored conversation message (people/topic chat)."""
    content: str
    is_user: bool
    id: Optional[str] = None
    person_id: Optional[str] = None
    topic_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class UserProfile:
    call_name: Optional[str] = None
    job_role: Optional[str] = None
    company: Optional[str] = None
    experience_level: Optional[str] = None  # new|experienced|veteran
    tone_preference: Optional[str] = None  # direct|warm|conversational|analytical


@dataclass
class ConversationTarget:
    """Who or what a conversation is about."""
    kind: str  # person|topic
    id: str
    name: str
    role: Optional[str] = None
    relationship_type: Optional[str] = None
    is_self: bool = False

    @property
    def is_general(self) -> bool:
        return self.kind != 'person' or self.id == GENERAL_TARGET_ID

    @property
    def scope_person_id(self) -> Optional[str]:
        """Person id used to scope searches, None for topic/general conversations."""
        return None if self.is_general else self.id

    @classmethod
    def general(cls, topic_id: str = GENERAL_TARGET_ID, name: str = 'General') -> 'ConversationTarget':
        return cls(kind='topic', id=topic_id, name=name)
