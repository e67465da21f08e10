"""Tests for the context engine entry points."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from coachmem.models.core import ChatMessage, ConversationTarget, ManagementContext, SemanticContext
from coachmem.services.engine import ContextEngine
from coachmem.utils.supabase_client import SupabaseError
from coachmem.utils.ttl_cache import MISS, cache_key

SARAH = ConversationTarget(kind='person', id='p1', name='Sarah Lee', role='Engineer', relationship_type='direct_report')
NEW_PERSON_MESSAGE = 'I had a great 1:1 with Priya, my direct report, about her promotion goals'


@pytest.fixture
def index():
    index = MagicMock()
    index.index_message.return_value = True
    index.vector_search.return_value = []
    return index


@pytest.fixture
def engine(app_config, store, llm, index):
    embedder = MagicMock()
    embedder.embed_query.return_value = [0.1]
    embedder.embed_document.return_value = [0.2]
    store.add_person('u1', 'p1', 'Sarah Lee', role='Engineer')
    store.add_person('u1', 'p2', 'Tom Park', relationship_type='peer')
    store.add_message('u1', 'Sarah wants feedback on her performance', person_id='p1', age_days=1)
    return ContextEngine(config=app_config, store=store, llm=llm, embedder=embedder, index=index)


class TestBuildContext:

    def test_reranker_disabled_by_config(self, engine):
        assert engine.reranker is None
        assert engine.semantic.reranker is None

    @pytest.mark.asyncio
    async def test_missing_user_id_gives_empty_context(self, engine, store):
        store.calls.clear()

        context = await engine.build_context('  ', SARAH, 'How is Sarah doing lately?')

        assert context == ManagementContext.empty()
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_team_and_semantic_parts(self, engine):
        context = await engine.build_context('u1', SARAH, 'How do I support Sarah on her growth plan?')

        assert [p.name for p in context.people] == ['Sarah Lee', 'Tom Park']
        assert context.theme_labels() == ['performance', 'feedback']
        assert isinstance(context.semantic_context, SemanticContext)
        assert context.proactive_insights is None

    @pytest.mark.asyncio
    async def test_short_query_has_no_semantic_context(self, engine):
        context = await engine.build_context('u1', SARAH, 'hi')
        assert context.semantic_context is None
        assert len(context.people) == 2

    @pytest.mark.asyncio
    async def test_semantic_failure_keeps_team_context(self, engine):
        with patch.object(engine.semantic, 'search', AsyncMock(side_effect=RuntimeError('search down'))):
            context = await engine.build_context('u1', SARAH, 'How do I support Sarah on her growth plan?')

        assert context.semantic_context is None
        assert len(context.people) == 2

    @pytest.mark.asyncio
    async def test_team_failure_keeps_semantic_context(self, engine):
        with patch.object(engine.team, 'build_context', AsyncMock(side_effect=RuntimeError('store down'))):
            context = await engine.build_context('u1', SARAH, 'How do I support Sarah on her growth plan?')

        assert context.people == []
        assert isinstance(context.semantic_context, SemanticContext)

    @pytest.mark.asyncio
    async def test_include_insights(self, engine):
        with patch.object(engine.insights, 'generate', AsyncMock(return_value=[])) as generate:
            context = await engine.build_context('u1', SARAH, include_insights=True)

        generate.assert_awaited_once()
        assert context.proactive_insights == []


class TestPrepareTurn:

    @pytest.mark.asyncio
    async def test_renders_person_prompt(self, engine):
        history = [ChatMessage(content='She seems stuck', is_user=True)]

        prompt = await engine.prepare_turn('u1', SARAH, 'How do I support Sarah on her growth plan?', history)

        assert 'Name: Sarah Lee' in prompt
        assert '- Tom Park: No role specified (peer)' in prompt
        assert 'Manager: She seems stuck' in prompt

    @pytest.mark.asyncio
    async def test_empty_user_renders_empty_team(self, engine):
        prompt = await engine.prepare_turn('', ConversationTarget.general(), 'What should I focus on this week?', [])
        assert 'No team members have been added yet' in prompt


class TestAfterReply:

    @pytest.mark.asyncio
    async def test_returns_before_jobs_run(self, engine, store):
        queued = engine.after_reply('u1', SARAH, 'Sarah missed the sprint review', 'Try a quick 1:1 this week.', [],
                                    context=ManagementContext(), existing_names=['Sarah Lee'])

        assert queued == {'persist': True, 'detect': True, 'learn': True}
        assert 'insert_message' not in store.calls
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_persists_embeds_and_invalidates(self, engine, store, index):
        stale_key = cache_key('u1', 'semantic', 'p1', 'old query')
        engine.cache.set(stale_key, SemanticContext(), ttl=60)

        engine.after_reply('u1', SARAH, 'Sarah missed the sprint review', 'Try a quick 1:1 this week.', [],
                           context=ManagementContext(), existing_names=['Sarah Lee'])
        await engine.shutdown()

        stored = [row['message'] for row in store.messages if row['message'].content in
                  ('Sarah missed the sprint review', 'Try a quick 1:1 this week.')]
        assert [(m.is_user, m.person_id) for m in stored] == [(True, 'p1'), (False, 'p1')]
        assert index.index_message.call_count == 2
        assert engine.cache.get(stale_key) is MISS

    @pytest.mark.asyncio
    async def test_failed_user_insert_still_persists_reply(self, engine, store, index):
        stale_key = cache_key('u1', 'semantic', 'p1', 'old query')
        engine.cache.set(stale_key, SemanticContext(), ttl=60)
        insert_message = store.insert_message

        def insert_replies_only(user_id, message):
            if message.is_user:
                raise SupabaseError('insert message unavailable')
            return insert_message(user_id, message)

        store.insert_message = insert_replies_only
        engine.after_reply('u1', SARAH, 'Sarah missed the sprint review', 'Try a quick 1:1 this week.', [],
                           context=ManagementContext(), existing_names=['Sarah Lee'])
        await engine.shutdown()

        contents = [row['message'].content for row in store.messages]
        assert 'Try a quick 1:1 this week.' in contents
        assert 'Sarah missed the sprint review' not in contents
        assert index.index_message.call_count == 1
        assert engine.cache.get(stale_key) is MISS

    @pytest.mark.asyncio
    async def test_topic_messages_carry_topic_id(self, engine, store):
        topic = ConversationTarget(kind='topic', id='t1', name='Hiring')
        engine.after_reply('u1', topic, 'We need two more engineers', 'Start with the job description.', [],
                           context=ManagementContext(), existing_names=[])
        await engine.shutdown()

        stored = [row['message'] for row in store.messages if row['message'].topic_id == 't1']
        assert len(stored) == 2
        assert all(m.person_id is None for m in stored)

    @pytest.mark.asyncio
    async def test_new_people_reported_through_callback(self, engine):
        on_detected = AsyncMock()

        engine.after_reply('u1', SARAH, NEW_PERSON_MESSAGE, 'Great to hear.', [], context=ManagementContext(),
                           existing_names=['Sarah Lee'], on_detected=on_detected)
        await engine.shutdown()

        on_detected.assert_awaited_once()
        user_id, result = on_detected.await_args.args
        assert user_id == 'u1'
        assert [p.name for p in result.detected_people] == ['Priya']

    @pytest.mark.asyncio
    async def test_no_callback_without_new_people(self, engine):
        on_detected = AsyncMock()
        engine.after_reply('u1', SARAH, 'Sarah missed the sprint review', 'Noted.', [], context=ManagementContext(),
                           existing_names=['Sarah'], on_detected=on_detected)
        await engine.shutdown()
        on_detected.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_learning_runs_on_transcript(self, engine, llm, store):
        llm.on('Analyze this conversation', {'themes': [], 'challenges': ['Sprint reviews keep slipping']})
        history = [ChatMessage(content='Sprint review slipped', is_user=True),
                   ChatMessage(content='What happened?', is_user=False)]

        engine.after_reply('u1', SARAH, 'It slipped again', 'Let us look at scope.', history, context=ManagementContext(),
                           existing_names=['Sarah'])
        await engine.shutdown()

        assert [p.pattern_type for p in store.patterns.values()] == ['challenge']

    def test_missing_user_schedules_nothing(self, engine):
        assert engine.after_reply('', SARAH, 'hello', 'hi', []) == {}
        assert not engine.background.running


class TestDetectionAndInsights:

    @pytest.mark.asyncio
    async def test_roster_names_looked_up(self, engine, store):
        store.add_person('u1', 'p3', 'Priya')
        result = await engine.detect_new_people('u1', NEW_PERSON_MESSAGE)
        assert result.detected_people == []

    @pytest.mark.asyncio
    async def test_roster_failure_assumes_empty_roster(self, engine, store):
        store.failing.add('list_people')
        result = await engine.detect_new_people('u1', NEW_PERSON_MESSAGE)
        assert [p.name for p in result.detected_people] == ['Priya']

    @pytest.mark.asyncio
    async def test_backfill_embeddings(self, engine, store):
        store.add_message('u1', 'Old message without a vector', embedded=False)

        assert engine.backfill_embeddings('u1')
        await engine.shutdown()

        assert store.list_unembedded_messages('u1', 10) == []

    @pytest.mark.asyncio
    async def test_person_insights_for_unknown_person(self, engine):
        assert await engine.get_person_insights('u1', 'ghost') == []

    @pytest.mark.asyncio
    async def test_insight_failure_gives_empty_list(self, engine):
        with patch.object(engine.insights, 'generate', AsyncMock(side_effect=RuntimeError('boom'))):
            assert await engine.get_proactive_insights('u1', ManagementContext()) == []
