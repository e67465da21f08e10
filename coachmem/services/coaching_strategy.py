"""
Coaching strategy: how the coach adapts guidance, tone, situation handling and
answer length to the manager and the current message. Every rule is a lookup
or a regular expression, so the same inputs always produce the same guidance.
"""

import re
from typing import List, Optional, Sequence

EXPERIENCE_GUIDANCE = {
    'new': '(New manager - provide foundational context, explain management concepts when relevant, be extra supportive)',
    'experienced': '(Experienced manager - assume management fundamentals, focus on nuanced situations and deeper insights)',
    'veteran': '(Veteran manager - skip basics, engage with complex organizational dynamics and strategic thinking)',
}
DEFAULT_EXPERIENCE_GUIDANCE = '(Management experience level unknown - adapt to their questions)'

TONE_GUIDANCE = {
    'direct': '(User prefers DIRECT tone - be concise and straightforward, prioritize actionable advice, minimize pleasantries)',
    'warm': '(User prefers WARM tone - be encouraging and supportive, acknowledge emotions and challenges, celebrate wins)',
    'conversational': '(User prefers CONVERSATIONAL tone - be casual and friendly like a peer advisor, use natural language)',
    'analytical': '(User prefers ANALYTICAL tone - be structured and data-driven, use frameworks and logical reasoning)',
}
DEFAULT_TONE_GUIDANCE = '(Tone preference unknown - use balanced conversational style)'


def _pattern(*terms: str) -> 're.Pattern':
    return re.compile(r'\b(?:' + '|'.join(terms) + r')\b', re.IGNORECASE)


# Checked in order, the first matching situation wins
SITUATIONS = (
    (_pattern('i feel', 'my own', 'myself', 'my leadership', 'my approach', "i'm worried", "i'm concerned", 'should i'),
     'SITUATION TYPE: Self-reflection - Use coaching questions to deepen self-awareness. Help them see patterns in their '
     'behavior. Celebrate growth areas while acknowledging challenges. Guide them to their own insights.'),
    (_pattern('conflict', 'relationship', 'trust', 'communication', 'feedback', 'difficult conversation', 'tension', 'upset',
              'frustrated', 'angry'),
     "SITUATION TYPE: Interpersonal challenge - Explore multiple perspectives. Ask about the other person's motivations and "
     'context. Consider what might be driving their behavior. Guide toward empathetic problem-solving.'),
    (_pattern('performance', 'underperforming', 'pip', 'performance review', 'not meeting expectations', 'struggling'),
     'SITUATION TYPE: Performance management - Balance support and accountability. Help them identify root causes. '
     'Discuss both documentation needs and coaching approaches. Be direct but compassionate.'),
    (_pattern('vision', 'strategy', 'direction', 'roadmap', r'long.?term', 'organization', 'culture', 'transformation', 'goals'),
     'SITUATION TYPE: Strategic thinking - Ask about goals, stakeholders, and tradeoffs. Connect to team context and '
     'organizational impact. Encourage systems thinking and long-term planning.'),
    (_pattern('meeting', 'deadline', 'task', 'project plan', 'schedule', 'agenda', '1:1', r'one.on.one'),
     'SITUATION TYPE: Tactical execution - Provide concrete frameworks and next steps. Focus on action over exploration. '
     'Be practical and specific.'),
)

COMPLEX_QUERY = _pattern('how', 'why', 'explain', 'tell me about', 'help me understand')
QUICK_QUESTION = _pattern('should i', 'can i', 'what about', 'quick question')
SEEKING_ADVICE = _pattern('how do i', 'what should i', 'give me', 'tell me', 'help me', 'recommend', 'suggest')
EXPLORING = _pattern('thinking about', 'wondering', 'not sure', 'considering', 'debating', 'torn between')
URGENT = _pattern('urgent', 'asap', 'today', 'right now', 'immediately', 'emergency')

APPROACH_URGENT = ('COACHING APPROACH: Urgent situation - Provide direct, actionable guidance immediately. You can explore '
                   'nuances after addressing the immediate need.')
APPROACH_SOCRATIC = ('COACHING APPROACH: Use Socratic questioning to help the manager articulate their thinking. Ask 1-2 '
                     'clarifying questions before offering advice. Help them discover insights through reflection. What are '
                     'they already considering? What assumptions might they examine?')
APPROACH_ADVICE = ('COACHING APPROACH: The manager is seeking direct guidance. Provide actionable advice while still '
                   'encouraging their critical thinking with one brief follow-up question.')
APPROACH_EXPLORING = ('COACHING APPROACH: The manager is thinking through a problem. Guide discovery with questions that '
                      "surface assumptions, stakeholder perspectives, and potential approaches. Ask what they've already "
                      'considered.')
APPROACH_BALANCED = ('COACHING APPROACH: Balance inquiry and advice. Use questions to deepen understanding when helpful, then '
                     'provide targeted recommendations.')


def experience_level_guidance(level: Optional[str]) -> str:
    return EXPERIENCE_GUIDANCE.get(level, DEFAULT_EXPERIENCE_GUIDANCE)


def tone_guidance(tone: Optional[str]) -> str:
    return TONE_GUIDANCE.get(tone, DEFAULT_TONE_GUIDANCE)


def detect_situation_type(user_message: str) -> Optional[str]:
    """Guidance for the first situation the message matches, or None."""
    for pattern, guidance in SITUATIONS:
        if pattern.search(user_message):
            return guidance
    return None


def response_length_guidance(user_message: str, experience_level: Optional[str]) -> str:
    """
    How long the reply should be.

    Quick yes/no style questions get a direct answer; complex questions get more
    room, with extra explanation for new managers.
    """
    is_complex = len(user_message) > 200 or bool(COMPLEX_QUERY.search(user_message))
    is_quick = len(user_message) < 50 and bool(QUICK_QUESTION.search(user_message))

    if is_quick:
        return '1-2 sentences, direct answer'
    if is_complex and experience_level == 'new':
        return '3-5 sentences with brief context/explanation to support learning'
    if is_complex:
        return '3-4 sentences with key context'
    return '2-3 sentences, concise and actionable'


def coaching_approach(user_message: str, history: Sequence) -> str:
    """Socratic questioning vs direct advice, based on what the manager is asking for."""
    seeking_advice = bool(SEEKING_ADVICE.search(user_message))
    exploring = bool(EXPLORING.search(user_message))

    if URGENT.search(user_message):
        return APPROACH_URGENT
    if len(history) < 3 and exploring and not seeking_advice:
        return APPROACH_SOCRATIC
    if seeking_advice:
        return APPROACH_ADVICE
    if exploring:
        return APPROACH_EXPLORING
    return APPROACH_BALANCED


def situational_guidance(user_message: str, history: Sequence) -> List[str]:
    """Situation type (when detected) followed by the coaching approach."""
    sections = []
    situation = detect_situation_type(user_message)
    if situation:
        sections.append(situation)
    sections.append(coaching_approach(user_message, history))
    return sections
