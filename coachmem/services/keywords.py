"""
Keyword lookup tables used by theme extraction, challenge detection, person
detection and proactive insights.
"""

from typing import Dict, Tuple

# Management themes counted per message
THEME_KEYWORDS: Tuple[str, ...] = (
    'performance', 'feedback', 'goals', 'career', 'development',
    'project', 'deadline', 'communication', 'team', 'workload',
    'process', 'meeting', 'stakeholder', 'priority', 'decision',
    'hiring', 'training', 'conflict', 'motivation', 'strategy',
)

# Challenge label -> trigger phrases; order is the output order
CHALLENGE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    'Team Communication': ('miscommunication', 'unclear', 'confusion', 'alignment'),
    'Workload Management': ('overwhelmed', 'too much', 'burnout', 'capacity'),
    'Performance Issues': ('underperforming', 'concerns', 'improvement', 'not meeting'),
    'Process Problems': ('inefficient', 'broken process', 'bottleneck', 'delays'),
    'Stakeholder Management': ('stakeholder pressure', 'expectations', 'demands'),
}

# Expertise area -> query/role phrases, used to order people for topic conversations
EXPERTISE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    'sales': ('sales', 'revenue', 'customers', 'deals', 'accounts', 'market expansion', 'business development',
              'who else', 'other sales', 'sales team'),
    'marketing': ('marketing', 'brand', 'campaigns', 'content', 'social media', 'advertising', 'market expansion',
                  'marketing team'),
    'technical': ('development', 'engineering', 'technical', 'technology', 'system', 'architecture', 'tech team',
                  'developers'),
    'operations': ('operations', 'process', 'logistics', 'supply chain', 'efficiency', 'ops team'),
    'finance': ('finance', 'budget', 'cost', 'financial', 'accounting', 'investment', 'finance team'),
    'hr': ('hr', 'human resources', 'people', 'hiring', 'talent', 'culture', 'hr team'),
    'leadership': ('leadership', 'management', 'strategy', 'vision', 'direction', 'managers', 'leads', 'head of'),
    'people_search': ('who else', 'other people', 'anyone else', 'team members', 'relates to', 'works with',
                      'similar role'),
}

# Words that look like names after a trigger phrase but are not people
COMMON_WORDS = frozenset({
    # Days and months
    'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday',
    'january', 'february', 'march', 'april', 'may', 'june',
    'july', 'august', 'september', 'october', 'november', 'december',
    # Common nouns
    'project', 'team', 'company', 'meeting', 'email', 'call', 'work', 'task',
    'goal', 'plan', 'issue', 'problem', 'today', 'tomorrow', 'yesterday',
    'week', 'month', 'year', 'time', 'help', 'support', 'update', 'review',
    'system', 'process', 'data', 'report', 'document', 'file', 'folder',
    # Words that are also names
    'will', 'rose', 'grace', 'hope', 'faith', 'joy', 'love', 'peace', 'sage',
    'summer', 'winter', 'autumn',
    # Products and companies
    'google', 'microsoft', 'apple', 'amazon', 'facebook', 'twitter',
    'slack', 'zoom', 'teams', 'office', 'excel', 'word', 'powerpoint',
})

# Function words that can never be a name
NON_NAME_WORDS = frozenset({
    'the', 'and', 'or', 'but', 'if', 'when', 'where', 'what', 'how', 'why',
    'after', 'before', 'during', 'about', 'from', 'him', 'her', 'them', 'everyone',
    'this', 'that', 'these', 'those', 'it', 'there', 'then', 'we', 'they', 'he', 'she',
})

# Presence of any of these in a message raises detection confidence
WORK_CONTEXT_KEYWORDS: Tuple[str, ...] = (
    'work', 'manage', 'report', 'team', 'colleague', 'boss', 'staff',
    'meeting', 'discuss', 'talk', 'call', 'email', 'collaborate',
)

# Commitment phrases in assistant replies that warrant a follow-up
FOLLOW_UP_KEYWORDS: Tuple[str, ...] = (
    'follow up', 'check in', 'next week', 'will do', 'action', 'commit', 'plan to',
)

# Management-intent search: context hints for the query rewrite
MANAGEMENT_INTENT_HINTS: Dict[str, Tuple[str, ...]] = {
    'coaching_moments': ('development', 'learning', 'growth', 'feedback', 'mentoring', 'skills'),
    'performance_patterns': ('performance', 'results', 'goals', 'challenges', 'improvement', 'success'),
    'team_dynamics': ('team', 'collaboration', 'communication', 'relationships', 'coordination'),
    'growth_opportunities': ('opportunity', 'potential', 'advancement', 'promotion', 'development'),
}

# Management-intent search: terms a ranked hit's match explanation must mention
MANAGEMENT_INTENT_MATCH_TERMS: Dict[str, Tuple[str, ...]] = {
    'coaching_moments': ('development', 'growth'),
    'performance_patterns': ('performance', 'challenge'),
    'team_dynamics': ('team', 'collaboration'),
    'growth_opportunities': ('opportunity',),
}

RELATIONSHIP_COUNT_FIELDS: Dict[str, str] = {
    'direct_report': 'direct_reports',
    'manager': 'managers',
    'peer': 'peers',
    'stakeholder': 'stakeholders',
}
