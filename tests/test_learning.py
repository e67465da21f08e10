"""Tests for recurring pattern learning."""

import pytest

from coachmem.models.core import ChatMessage, ConversationAnalysis, ManagementContext, RecurringPattern
from coachmem.services.learning import LearningService, description_terms, pattern_similarity

ANALYZE = 'Analyze this conversation'
INSIGHT = 'Generate a learning insight'


def _history(count):
    return [ChatMessage(content=f'message {i}', is_user=i % 2 == 0) for i in range(count)]


def _pattern(description, frequency=1, confidence=0.7, keywords=None, person_id=None, pattern_type='challenge'):
    return RecurringPattern(id=None,
                            user_id='u1',
                            pattern_type=pattern_type,
                            pattern_description=description,
                            frequency=frequency,
                            last_occurrence=None,
                            people_involved=[person_id] if person_id else [],
                            context_keywords=keywords or description_terms(description),
                            suggested_actions=[],
                            confidence_score=confidence)


@pytest.fixture
def service(store, llm, app_config):
    return LearningService(store, llm, app_config)


class TestKeywords:

    def test_similarity_is_overlap_over_larger_set(self):
        assert pattern_similarity(['a', 'b', 'c', 'd'], ['a', 'b']) == 0.5

    def test_similarity_ignores_case(self):
        assert pattern_similarity(['Sprint'], ['sprint']) == 1.0

    def test_empty_sets_never_match(self):
        assert pattern_similarity([], []) == 0.0

    def test_description_terms_drop_short_and_stop_words(self):
        assert description_terms('The team is missing their sprint deadlines') == ['team', 'missing', 'sprint', 'deadlines']


class TestPatternCandidates:

    def test_types_and_confidences(self, service):
        analysis = ConversationAnalysis(themes=['delivery'],
                                        challenges=['Sprint deadlines keep slipping'],
                                        relationships=['Tension between design and engineering'],
                                        communication_patterns=['Updates arrive late'],
                                        learning_opportunities=['Run a retro'])

        patterns = service.patterns_from_analysis('u1', analysis, 'p1')

        assert [(p.pattern_type, p.confidence_score) for p in patterns] == [
            ('challenge', 0.7), ('relationship', 0.6), ('communication', 0.5), ('topic', 0.5)]
        assert all(p.people_involved == ['p1'] for p in patterns)
        assert all(p.suggested_actions == ['Run a retro'] for p in patterns)

    def test_short_descriptions_are_dropped(self, service):
        analysis = ConversationAnalysis(challenges=['short', 'Budget approvals are slow'])
        patterns = service.patterns_from_analysis('u1', analysis, None)
        assert [p.pattern_description for p in patterns] == ['Budget approvals are slow']
        assert patterns[0].people_involved == []

    def test_general_conversation_has_no_people(self, service):
        analysis = ConversationAnalysis(themes=['planning'])
        assert service.patterns_from_analysis('u1', analysis, 'general')[0].people_involved == []


class TestStorePattern:

    @pytest.mark.asyncio
    async def test_first_detection_inserts(self, service, store):
        pattern_id = await service.store_recurring_pattern(_pattern('Sprint deadlines keep slipping'))

        stored = store.patterns[pattern_id]
        assert stored.frequency == 1
        assert stored.last_occurrence is not None

    @pytest.mark.asyncio
    async def test_similar_detection_merges(self, service, store):
        first = await service.store_recurring_pattern(_pattern('Sprint deadlines keep slipping'))
        second = await service.store_recurring_pattern(_pattern('Sprint deadlines keep slipping again'))

        assert first == second
        assert len(store.patterns) == 1
        merged = store.patterns[first]
        assert merged.frequency == 2
        assert merged.confidence_score == pytest.approx(0.8)
        assert merged.pattern_description == 'Sprint deadlines keep slipping'

    @pytest.mark.asyncio
    async def test_seventy_percent_overlap_merges(self, service, store):
        shared = ['sprint', 'deadlines', 'scope', 'estimates', 'planning', 'velocity', 'backlog']
        pattern_id = store.add_pattern(_pattern('Sprint deadlines slip', keywords=shared + ['testing', 'qa', 'release']))

        merged_id = await service.store_recurring_pattern(
            _pattern('Sprint deadlines slip again', keywords=shared + ['hiring', 'onboarding', 'budget']))

        assert merged_id == pattern_id
        assert len(store.patterns) == 1
        assert store.patterns[pattern_id].frequency == 2

    @pytest.mark.asyncio
    async def test_overlap_at_threshold_does_not_merge(self, service, store):
        store.add_pattern(_pattern('Sprint deadlines slip', keywords=['a1', 'b1', 'c1', 'd1', 'e1']))
        await service.store_recurring_pattern(_pattern('Other issue', keywords=['a1', 'b1', 'c1', 'x1', 'y1']))
        assert len(store.patterns) == 2

    @pytest.mark.asyncio
    async def test_confidence_capped(self, service, store):
        pattern_id = store.add_pattern(_pattern('Sprint deadlines keep slipping', confidence=0.95))
        await service.store_recurring_pattern(_pattern('Sprint deadlines keep slipping'))
        assert store.patterns[pattern_id].confidence_score == 1.0

    @pytest.mark.asyncio
    async def test_different_type_does_not_merge(self, service, store):
        await service.store_recurring_pattern(_pattern('Sprint deadlines keep slipping'))
        await service.store_recurring_pattern(_pattern('Sprint deadlines keep slipping', pattern_type='topic'))
        assert len(store.patterns) == 2

    @pytest.mark.asyncio
    async def test_store_failure_returns_none(self, service, store):
        store.failing.add('insert_pattern')
        assert await service.store_recurring_pattern(_pattern('Sprint deadlines keep slipping')) is None


class TestRecordFromConversation:

    @pytest.mark.asyncio
    async def test_short_conversation_skipped(self, service, llm):
        assert await service.record_from_conversation('u1', _history(3), 'p1', ManagementContext()) == 0
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_failed_analysis_records_nothing(self, service, store):
        assert await service.record_from_conversation('u1', _history(4), 'p1', ManagementContext()) == 0
        assert store.patterns == {}

    @pytest.mark.asyncio
    async def test_repeated_challenge_merges_across_conversations(self, service, llm, store):
        llm.on(ANALYZE, {'themes': [], 'challenges': ['Team keeps missing sprint deadlines']})

        assert await service.record_from_conversation('u1', _history(4), 'p1', ManagementContext()) == 1
        assert await service.record_from_conversation('u1', _history(6), 'p1', ManagementContext()) == 1

        patterns = list(store.patterns.values())
        assert len(patterns) == 1
        assert patterns[0].frequency == 2
        assert patterns[0].confidence_score == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_distinct_challenges_stay_separate(self, service, llm, store):
        llm.on(ANALYZE, {'themes': ['delivery'],
                         'challenges': ['Sprint deadlines keep slipping', 'Hiring pipeline is stalled']})

        stored = await service.record_from_conversation('u1', _history(4), None, ManagementContext())

        assert stored == 3
        assert sorted(p.pattern_type for p in store.patterns.values()) == ['challenge', 'challenge', 'topic']

    @pytest.mark.asyncio
    async def test_transcript_in_prompt(self, service, llm):
        llm.on(ANALYZE, {'themes': []})
        await service.record_from_conversation('u1', _history(4), 'p1', ManagementContext())
        prompt = llm.calls_matching(ANALYZE)[0]['system']
        assert 'Manager: message 0' in prompt
        assert 'Coach: message 1' in prompt
        assert 'a specific team member' in prompt


class TestInsights:

    @pytest.mark.asyncio
    async def test_frequent_patterns_sorted_by_relevance(self, service, llm, store):
        store.add_pattern(_pattern('Sprint deadlines keep slipping', frequency=3))
        store.add_pattern(_pattern('Budget approvals are slow', frequency=2))
        store.add_pattern(_pattern('One-off office move', frequency=1))

        def insight(system_prompt, user_text):
            relevance = 0.9 if 'Budget' in user_text else 0.4
            return {'insight': 'Something to act on', 'actionable_suggestions': ['a', 'b', 'c', 'd'],
                    'priority': 'urgent', 'relevance_score': relevance}

        llm.on(INSIGHT, insight)

        insights = await service.get_insights('u1', ManagementContext())

        assert [i.pattern.pattern_description for i in insights] == ['Budget approvals are slow',
                                                                     'Sprint deadlines keep slipping']
        assert insights[0].priority == 'medium'
        assert len(insights[0].actionable_suggestions) == 3

    @pytest.mark.asyncio
    async def test_failed_insight_is_skipped(self, service, llm, store):
        store.add_pattern(_pattern('Sprint deadlines keep slipping', frequency=3))
        llm.on(INSIGHT, {'insight': ''})
        assert await service.get_insights('u1', ManagementContext()) == []

    @pytest.mark.asyncio
    async def test_store_failure_gives_no_insights(self, service, store):
        store.failing.add('list_patterns')
        assert await service.get_insights('u1', ManagementContext()) == []
