"""Tests for system prompt rendering."""

from datetime import datetime, timezone

from coachmem.models.core import (ChatMessage, ConversationTarget, ConversationTheme, ManagementContext, PersonSummary,
                                  ProactiveInsight, SemanticContext, SemanticPattern, TeamSize, UserProfile,
                                  VectorSearchResult)
from coachmem.services import prompt_assembler
from coachmem.services.prompt_assembler import (CONTEXT_FOOTER, DEFAULT_LENGTH, EMPTY_TEAM_GENERAL_NOTE, EMPTY_TEAM_OVERVIEW,
                                                EMPTY_TEAM_PERSON_NOTE, format_context_for_prompt, format_history,
                                                format_user_context, render)

CREATED = datetime(2025, 3, 3, tzinfo=timezone.utc)
SARAH = ConversationTarget(kind='person', id='p1', name='Sarah', role='Engineer', relationship_type='direct_report')


def _context(**overrides):
    values = dict(people=[
        PersonSummary(id='p1', name='Sarah', role='Engineer', relationship_type='direct_report',
                      recent_themes=['performance']),
        PersonSummary(id='p2', name='Tom', role=None, relationship_type='peer'),
    ],
                  team_size=TeamSize(direct_reports=1, peers=1),
                  recent_themes=[ConversationTheme('performance', 4, ['p1'], CREATED, ['Her performance slipped'])],
                  current_challenges=['Workload Management'])
    values.update(overrides)
    return ManagementContext(**values)


def _hit(hit_id, person_id, similarity, content='Talked about the launch'):
    return VectorSearchResult(id=hit_id, content=content, person_id=person_id, message_type='user', created_at=CREATED,
                              similarity=similarity)


def _insight(index, priority='medium'):
    return ProactiveInsight(id=f'i{index}', type='follow_up', title=f'Insight {index}', description='Check in',
                            priority=priority, actionable_steps=[], context='', relevance_score=0.5, created_at=CREATED)


class TestEmptyTeam:

    def test_general_conversation(self):
        text = format_context_for_prompt(ManagementContext(), 'general')
        assert text.startswith(EMPTY_TEAM_OVERVIEW)
        assert EMPTY_TEAM_GENERAL_NOTE in text
        assert 'TEAM MEMBERS' not in text

    def test_person_conversation(self):
        assert EMPTY_TEAM_PERSON_NOTE in format_context_for_prompt(ManagementContext(), 'p1')

    def test_render_without_context(self):
        prompt = render(ConversationTarget.general(), None, [], None)
        assert EMPTY_TEAM_OVERVIEW in prompt


class TestManagementContext:

    def test_team_sections(self):
        text = format_context_for_prompt(_context(), 'p1')

        assert 'You manage 1 direct reports, work with 0 stakeholders, and coordinate with 1 peers.' in text
        assert '- Sarah: Engineer (direct_report) - Recent topics: performance' in text
        assert '- Tom: No role specified (peer)' in text
        assert 'RECENT MANAGEMENT THEMES (Last 30 days):\n- performance: discussed 4 times across 1 conversations' in text
        assert 'CURRENT CHALLENGES DETECTED:\n- Workload Management' in text
        assert 'CONVERSATION TYPE: Focused discussion about Sarah' in text
        assert text.endswith(CONTEXT_FOOTER)

    def test_themes_window_in_header(self):
        assert 'RECENT MANAGEMENT THEMES (Last 14 days)' in format_context_for_prompt(_context(), 'p1', themes_window_days=14)

    def test_general_conversation_type(self):
        text = format_context_for_prompt(_context(), 'general')
        assert 'CONVERSATION TYPE: General management discussion - use full team context' in text

    def test_semantic_sections_need_query(self):
        semantic = SemanticContext(similar_conversations=[_hit('a', 'p1', 0.874)])
        context = _context(semantic_context=semantic)

        assert 'RELEVANT PAST DISCUSSIONS' not in format_context_for_prompt(context, 'p1')
        assert 'RELEVANT PAST DISCUSSIONS' in format_context_for_prompt(context, 'p1', query='launch plans')

    def test_semantic_sections(self):
        semantic = SemanticContext(
            similar_conversations=[_hit('a', 'p1', 0.874), _hit('b', None, 0.8), _hit('c', 'p9', 0.78), _hit('d', 'p1', 0.7)],
            cross_person_insights=[_hit('e', 'p2', 0.9, 'Tom raised the same'), _hit('f', 'p2', 0.8), _hit('g', 'p2', 0.8)],
            semantic_patterns=[
                SemanticPattern('recurring_theme', 'Launch scope keeps growing', 0.8, [], ['p1'], [], 'worsening')
            ])

        text = format_context_for_prompt(_context(semantic_context=semantic), 'p1', query='launch plans')

        assert '- Sarah: "Talked about the launch" (87% relevant)' in text
        assert '- General discussion: "Talked about the launch" (80% relevant)' in text
        assert '- Unknown: "Talked about the launch" (78% relevant)' in text
        assert '(70% relevant)' not in text
        assert '- Tom: "Tom raised the same"' in text
        assert text.count('- Tom: "') == 2
        assert '- recurring_theme (worsening): Launch scope keeps growing' in text

    def test_long_excerpts_are_truncated(self):
        semantic = SemanticContext(similar_conversations=[_hit('a', 'p1', 0.9, 'x' * 150)])
        text = format_context_for_prompt(_context(semantic_context=semantic), 'p1', query='launch plans')
        assert f'"{"x" * 100}..."' in text

    def test_proactive_insights_capped(self):
        context = _context(proactive_insights=[_insight(i) for i in range(7)])
        text = format_context_for_prompt(context, 'p1')
        assert '- [medium] Insight 4: Check in' in text
        assert 'Insight 5' not in text


class TestHistory:

    def test_last_ten_messages(self):
        history = [ChatMessage(content=f'turn-{i:02d}', is_user=i % 2 == 0) for i in range(12)]

        text = format_history(history)

        assert 'turn-00' not in text
        assert 'turn-01' not in text
        assert text.splitlines()[0] == 'Manager: turn-02'
        assert text.splitlines()[-1] == 'Coach: turn-11'

    def test_empty_history(self):
        assert format_history([]) == ''


class TestUserContext:

    def test_full_profile(self):
        profile = UserProfile(call_name='Alex', job_role='Director', company='Acme', experience_level='new',
                              tone_preference='warm')
        text = format_user_context(profile, [])
        assert text.startswith('You are speaking with Alex, Director at Acme.')
        assert '- Experience Level: (New manager' in text
        assert '- Tone Preference: (User prefers WARM tone' in text

    def test_no_profile(self):
        assert format_user_context(None, []) == 'You are speaking with a manager.'

    def test_situational_guidance_with_message(self):
        text = format_user_context(None, [], 'Sam is underperforming')
        assert 'SITUATION TYPE: Performance management' in text
        assert 'COACHING APPROACH' in text


class TestRender:

    def test_person_template(self):
        prompt = render(SARAH, _context(), [], None)
        assert 'Name: Sarah\nRole: Engineer\nRelationship: direct_report' in prompt
        assert 'Focused discussion about Sarah' in prompt

    def test_self_template(self):
        me = ConversationTarget(kind='person', id='me', name='Alex', relationship_type='self', is_self=True)
        assert 'self-reflection and personal growth' in render(me, _context(), [], None)

    def test_topic_template(self):
        topic = ConversationTarget(kind='topic', id='t1', name='Hiring plan')
        prompt = render(topic, _context(), [], None)
        assert 'strategic thinking and leadership challenges' in prompt
        assert 'General management discussion' in prompt

    def test_deterministic(self):
        history = [ChatMessage(content='We talked about goals', is_user=True)]
        first = render(SARAH, _context(), history, UserProfile(call_name='Alex'), 'How do I help her grow?')
        second = render(SARAH, _context(), history, UserProfile(call_name='Alex'), 'How do I help her grow?')
        assert first == second

    def test_inserted_text_is_not_substituted_again(self):
        history = [ChatMessage(content='She literally wrote {name} and {management_context}', is_user=True)]
        prompt = render(SARAH, _context(), history, None)
        assert 'Manager: She literally wrote {name} and {management_context}' in prompt

    def test_length_guidance_follows_message(self):
        prompt = render(SARAH, _context(), [], None, 'Should I cancel it?')
        assert '1-2 sentences, direct answer' in prompt
        assert DEFAULT_LENGTH not in prompt

    def test_default_length_without_message(self):
        assert DEFAULT_LENGTH in render(SARAH, _context(), [], None)

    def test_profile_context_only_for_people(self):
        person_prompt = render(SARAH, _context(), [], None, profile_context='Joined from the data team in May.')
        topic_prompt = render(ConversationTarget.general(), _context(), [], None, profile_context='Ignored text')

        assert 'Profile context for Sarah:\nJoined from the data team in May.' in person_prompt
        assert 'Ignored text' not in topic_prompt

    def test_missing_role_defaults(self):
        target = ConversationTarget(kind='person', id='p2', name='Tom')
        prompt = prompt_assembler.render(target, _context(), [], None)
        assert 'Role: Team member\nRelationship: team member' in prompt
