"""
Prompt assembly: renders the management context, the manager's profile and the
recent transcript into the system prompt for the completion service.

Rendering is pure. It performs no I/O and reads no clock, so identical inputs
always produce the identical prompt.
"""

import re
from typing import Dict, Optional, Sequence

from ..models.core import GENERAL_TARGET_ID, ChatMessage, ConversationTarget, ManagementContext, UserProfile
from . import coaching_strategy

HISTORY_LIMIT = 10
DEFAULT_LENGTH = '2-4 sentences maximum'
PLACEHOLDER_RE = re.compile(r'\{(user_context|management_context|name|role|relationship_type|conversation_history)\}')

PERSON_TEMPLATE = """You are an intelligent management assistant and helping hand for managers.

{user_context}

IMPORTANT: Keep responses conversational and concise (2-4 sentences max). Be direct, practical, and avoid lengthy explanations.

Your role:
- Give quick, actionable management advice
- Ask focused questions to understand situations
- Suggest specific next steps
- Be supportive but brief

Response Style:
- Conversational and natural (like texting a colleague)
- 2-4 sentences maximum per response
- Lead with the most important insight
- Ask one focused follow-up question
- Use the ✋ emoji occasionally but sparingly

For new people conversations:
- Acknowledge their context quickly
- Give ONE specific insight or action
- Ask what they need help with next

Example: "Got it - sounds like {name} needs clearer expectations. Try setting 30-min weekly check-ins to align on priorities. What's your biggest challenge with them right now?"

Context about the person being discussed:
Name: {name}
Role: {role}
Relationship: {relationship_type}

{management_context}

Previous conversation history:
{conversation_history}

Important: When discussing broader topics that extend beyond this individual:
- If the conversation shifts to team-wide challenges, projects, or initiatives, naturally suggest: "This sounds like it affects more than just {name}. Would you like to create a Topic for [topic name] to explore this more broadly?"
- Examples: team morale issues, cross-functional projects, process improvements, strategic initiatives

Respond in a helpful, professional tone. Focus on actionable advice and insights that will help the manager build better relationships with their team. When relevant team context adds value, reference it naturally in your response."""

SELF_TEMPLATE = """You are an intelligent management coach for self-reflection and personal growth.

{user_context}

IMPORTANT: Keep responses conversational and concise (2-4 sentences max). Be direct, practical, and avoid lengthy explanations.

Your role in self-reflection:
- Help the manager reflect on their leadership style and growth
- Ask thoughtful questions to deepen self-awareness
- Identify patterns in their management approach
- Celebrate wins and acknowledge challenges
- Suggest specific actions for personal development

Response Style:
- Supportive and encouraging
- 2-4 sentences maximum per response
- Focus on self-discovery and insight
- Ask reflective questions when appropriate

Management Context:
{management_context}

Previous conversation history:
{conversation_history}

Help them explore their thoughts, feelings, and leadership journey. This is a safe space for honest self-reflection about their management practice."""

GENERAL_TEMPLATE = """You are an intelligent management assistant for strategic thinking and leadership challenges.

{user_context}

IMPORTANT: Keep responses conversational and concise (2-4 sentences max). Be direct, practical, and avoid lengthy explanations.

Response Style:
- Conversational and natural (like texting a trusted advisor)
- 2-4 sentences maximum per response
- Lead with the most actionable insight
- Ask one focused follow-up question when helpful
- Use the 🤲 emoji occasionally but sparingly

You have full visibility into the user's entire team. When relevant to the discussion:
- Reference specific team members by name and role
- Connect topics to people's strengths or challenges
- Suggest who might be involved or affected
- Use the team context to provide more personalized strategic advice

Help with quick advice on: strategic planning, team leadership, communication, performance management, conflict resolution, career coaching, process improvement, and change management.

Coaching Approach:
- For complex challenges: Ask 1 clarifying question, then give specific advice
- For urgent situations: Jump straight to actionable solutions
- For recurring patterns: Point out the pattern briefly and suggest a framework
- For people-related questions: Reference specific team members from the context

Example: "Sounds like team alignment is the core issue. Try a 90-min strategy session to get everyone on the same page about priorities. What's your biggest concern about facilitating that?"

Management Context: {management_context}

Previous Conversation: {conversation_history}

Be warm but brief. Make every sentence count. Remember: you know all team members and can reference them when it adds value to your advice."""

EMPTY_TEAM_OVERVIEW = ('TEAM OVERVIEW: No team members have been added yet. Consider adding your direct reports, peers, managers, '
                       'and key stakeholders to get more contextual management advice.')
EMPTY_TEAM_GENERAL_NOTE = ('CONVERSATION TYPE: General management discussion - no team members added yet, focus on general '
                           'management advice')
EMPTY_TEAM_PERSON_NOTE = 'CONVERSATION TYPE: Individual discussion - no broader team context available yet'
EMPTY_TEAM_FOOTER = ("When you add team members and have conversations about them, I'll be able to provide insights that connect "
                     'patterns and themes across your entire team.')

CONTEXT_FOOTER = ('When responding, you can reference insights from other team members and conversations when relevant, '
                  'especially the semantic context provided above. You have full visibility into your entire team and should '
                  'answer questions about any team member or role. Use this comprehensive awareness to provide deeply '
                  'contextual and interconnected management advice.')


def _excerpt(text: str, limit: int = 100) -> str:
    return f'{text[:limit]}...' if len(text) > limit else text


def format_empty_team(current_person_id: str) -> str:
    note = EMPTY_TEAM_GENERAL_NOTE if current_person_id == GENERAL_TARGET_ID else EMPTY_TEAM_PERSON_NOTE
    return f'{EMPTY_TEAM_OVERVIEW}\n{note}\n\n{EMPTY_TEAM_FOOTER}'


def format_context_for_prompt(context: ManagementContext,
                              current_person_id: str,
                              query: Optional[str] = None,
                              themes_window_days: int = 30) -> str:
    """
    Render a management context as prompt text.

    Args:
        context: Aggregated management context
        current_person_id: Person the conversation is about, or GENERAL_TARGET_ID
        query: Current user message; semantic excerpts are only rendered with a query
        themes_window_days: Window the recent themes were computed over

    Returns:
        Prompt section text; the dedicated "no team members yet" variant for an empty roster
    """
    people = context.people
    if not people:
        return format_empty_team(current_person_id)

    names = {person.id: person.name for person in people}
    size = context.team_size

    member_lines = []
    for person in people:
        line = f'- {person.name}: {person.role or "No role specified"} ({person.relationship_type})'
        if person.recent_themes:
            line += f' - Recent topics: {", ".join(person.recent_themes)}'
        member_lines.append(line)

    sections = [
        'TEAM OVERVIEW:\n'
        f'You manage {size.direct_reports} direct reports, work with {size.stakeholders} stakeholders, '
        f'and coordinate with {size.peers} peers.\n\n'
        'TEAM MEMBERS:\n' + '\n'.join(member_lines)
    ]

    if context.recent_themes:
        sections.append(f'RECENT MANAGEMENT THEMES (Last {themes_window_days} days):\n' + '\n'.join(
            f'- {theme.theme}: discussed {theme.frequency} times across {len(theme.people_mentioned)} conversations'
            for theme in context.recent_themes))

    if context.current_challenges:
        sections.append('CURRENT CHALLENGES DETECTED:\n' + '\n'.join(f'- {challenge}' for challenge in context.current_challenges))

    semantic = context.semantic_context
    if semantic is not None and query:
        if semantic.similar_conversations:
            lines = []
            for conversation in semantic.similar_conversations[:3]:
                if conversation.person_id in (None, GENERAL_TARGET_ID):
                    source = 'General discussion'
                else:
                    source = names.get(conversation.person_id, 'Unknown')
                lines.append(f'- {source}: "{_excerpt(conversation.content)}" ({round(conversation.similarity * 100)}% relevant)')
            sections.append('RELEVANT PAST DISCUSSIONS:\n' + '\n'.join(lines))

        if semantic.cross_person_insights:
            sections.append('RELATED INSIGHTS FROM OTHER CONVERSATIONS:\n' + '\n'.join(
                f'- {names.get(insight.person_id, "Unknown")}: "{_excerpt(insight.content)}"'
                for insight in semantic.cross_person_insights[:2]))

        if semantic.semantic_patterns:
            sections.append('PATTERNS ACROSS CONVERSATIONS:\n' + '\n'.join(
                f'- {pattern.pattern_type} ({pattern.trend_direction}): {pattern.pattern_description}'
                for pattern in semantic.semantic_patterns))

    if context.proactive_insights:
        sections.append('PROACTIVE INSIGHTS:\n' + '\n'.join(
            f'- [{insight.priority}] {insight.title}: {insight.description}' for insight in context.proactive_insights[:5]))

    if current_person_id == GENERAL_TARGET_ID:
        sections.append('CONVERSATION TYPE: General management discussion - use full team context for strategic advice')
    else:
        sections.append(f'CONVERSATION TYPE: Focused discussion about {names.get(current_person_id, "team member")} - but you '
                        'have full awareness of your entire team context and can reference any team member')

    return '\n\n'.join(sections) + '\n\n' + CONTEXT_FOOTER


def format_history(history: Sequence[ChatMessage], limit: int = HISTORY_LIMIT) -> str:
    """Last `limit` messages as 'Manager:' / 'Coach:' lines."""
    recent = list(history)[-limit:] if limit > 0 else []
    return '\n'.join(f'{"Manager" if message.is_user else "Coach"}: {message.content}' for message in recent)


def format_user_context(user_profile: Optional[UserProfile],
                        history: Sequence[ChatMessage],
                        user_message: Optional[str] = None) -> str:
    """Who the coach is talking to, their coaching preferences and situational guidance."""
    profile = user_profile or UserProfile()
    if profile.call_name:
        text = f'You are speaking with {profile.call_name}'
        if profile.job_role:
            text += f', {profile.job_role}'
        if profile.company:
            text += f' at {profile.company}'
        text += '.'
    else:
        text = 'You are speaking with a manager.'

    if profile.experience_level or profile.tone_preference:
        text += '\n\nCOACHING CONTEXT:'
        if profile.experience_level:
            text += f'\n- Experience Level: {coaching_strategy.experience_level_guidance(profile.experience_level)}'
        if profile.tone_preference:
            text += f'\n- Tone Preference: {coaching_strategy.tone_guidance(profile.tone_preference)}'

    if user_message:
        for section in coaching_strategy.situational_guidance(user_message, history):
            text += f'\n\n{section}'
    return text


def profile_section(name: str, profile_context: str) -> str:
    return (f'\n\nProfile context for {name}:\n{profile_context.strip()}\n\n'
            f'This profile provides background about {name} to help you give more personalized and relevant management '
            "advice. Reference it naturally when appropriate, but don't explicitly mention that you have this profile "
            'information.')


def select_template(target: ConversationTarget) -> str:
    if target.is_general:
        return GENERAL_TEMPLATE
    if target.is_self:
        return SELF_TEMPLATE
    return PERSON_TEMPLATE


def fill(template: str, values: Dict[str, str]) -> str:
    """Substitute placeholders in one pass; substituted text is never re-scanned."""
    return PLACEHOLDER_RE.sub(lambda match: values.get(match.group(1), match.group(0)), template)


def render(target: ConversationTarget,
           context: Optional[ManagementContext],
           history: Sequence[ChatMessage],
           user_profile: Optional[UserProfile],
           user_message: Optional[str] = None,
           profile_context: Optional[str] = None,
           themes_window_days: int = 30) -> str:
    """
    Render the system prompt for one conversation turn.

    Args:
        target: Person or topic the conversation is about
        context: Aggregated management context (None renders an empty team)
        history: Conversation so far; only the last 10 messages are included
        user_profile: The manager's profile and coaching preferences
        user_message: Current message, enables situational and length guidance
        profile_context: Free-text background about the target person
        themes_window_days: Window the recent themes were computed over

    Returns:
        The rendered prompt
    """
    context = context or ManagementContext.empty()
    current_person_id = GENERAL_TARGET_ID if target.is_general else target.id

    management_context = format_context_for_prompt(context, current_person_id, user_message, themes_window_days)
    if profile_context and profile_context.strip() and not target.is_general:
        management_context += profile_section(target.name, profile_context)

    template = select_template(target)
    if user_message:
        experience_level = user_profile.experience_level if user_profile else None
        template = template.replace(DEFAULT_LENGTH, coaching_strategy.response_length_guidance(user_message, experience_level))

    return fill(
        template, {
            'user_context': format_user_context(user_profile, history, user_message),
            'management_context': management_context,
            'name': target.name,
            'role': target.role or 'Team member',
            'relationship_type': target.relationship_type or 'team member',
            'conversation_history': format_history(history),
        })
