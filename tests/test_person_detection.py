"""Tests for new-person detection."""

from unittest.mock import AsyncMock, patch

import pytest

from coachmem.services.person_detection import PersonDetectionService, capitalize_name, finalize, is_valid_name
from coachmem.models.core import DetectedPerson

SARAH_MESSAGE = 'I had a great 1:1 with Sarah, my direct report, about her promotion goals'
VALIDATE = 'Validate these names'


@pytest.fixture
def local_only(cache, app_config):
    return PersonDetectionService(None, cache, app_config)


@pytest.fixture
def with_ai(llm, cache, app_config):
    return PersonDetectionService(llm, cache, app_config)


class TestNameRules:

    @pytest.mark.parametrize('name', ['Sarah', 'Mary-Jane', "O'Brien", 'Zoë'])
    def test_valid_names(self, name):
        assert is_valid_name(name)

    @pytest.mark.parametrize('name', ['S', 'sarah', 'NASA', 'R2d2', 'Monday', 'The', 'Google', 'This', 'It', 'They'])
    def test_invalid_names(self, name):
        assert not is_valid_name(name)

    def test_capitalize_hyphenated(self):
        assert capitalize_name('mary-JANE') == 'Mary-Jane'

    def test_finalize_keeps_highest_confidence_per_name(self):
        people = [
            DetectedPerson(name='Sam', confidence=0.7, context='a', relationship_type='peer'),
            DetectedPerson(name='sam', confidence=0.9, context='b', relationship_type='manager'),
            DetectedPerson(name='Lee', confidence=0.5, context='c'),
        ]
        kept = finalize(people, floor=0.6)
        assert [(p.name, p.relationship_type) for p in kept] == [('sam', 'manager')]

    def test_finalize_clamps_confidence(self):
        kept = finalize([DetectedPerson(name='Ana', confidence=1.3, context='x')], floor=0.6)
        assert kept[0].confidence == 1.0


class TestPatternDetection:

    @pytest.mark.asyncio
    async def test_appositive_direct_report_wins(self, local_only):
        result = await local_only.detect(SARAH_MESSAGE, [])

        assert result.has_new_people
        assert result.fallback_used
        assert len(result.detected_people) == 1
        sarah = result.detected_people[0]
        assert sarah.name == 'Sarah'
        assert sarah.relationship_type == 'direct_report'
        assert sarah.confidence == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_existing_names_are_skipped(self, local_only):
        result = await local_only.detect(SARAH_MESSAGE, ['sarah'])
        assert result.detected_people == []
        assert not result.has_new_people

    @pytest.mark.asyncio
    async def test_common_words_are_not_people(self, local_only):
        result = await local_only.detect('I will be working with Google on Monday and met with Zoom', [])
        assert result.detected_people == []

    @pytest.mark.asyncio
    async def test_role_in_parentheses(self, local_only):
        result = await local_only.detect('Priya (Product Manager) joined yesterday', [])
        priya = result.detected_people[0]
        assert priya.name == 'Priya'
        assert priya.role == 'Product Manager'

    @pytest.mark.asyncio
    async def test_hyphenated_name(self, local_only):
        result = await local_only.detect('Mary-Jane is leading the launch', [])
        assert [p.name for p in result.detected_people] == ['Mary-Jane']

    @pytest.mark.asyncio
    async def test_confidence_floor(self, local_only, app_config):
        result = await local_only.detect('Lately Rita and I went hiking', [])
        assert [p.name for p in result.detected_people] == ['Rita']

        app_config.detection.confidence_floor = 0.65
        result = await local_only.detect('Lately Rita and I went hiking', [])
        assert result.detected_people == []

    @pytest.mark.asyncio
    async def test_possessive_of_existing_name_is_skipped(self, local_only):
        result = await local_only.detect("I had a meeting with Sarah's team about goals", ['Sarah'])
        assert result.detected_people == []

    @pytest.mark.asyncio
    async def test_possessive_is_stripped_from_new_name(self, local_only):
        result = await local_only.detect('I had a meeting with Sarah’s team about goals', [])
        assert [p.name for p in result.detected_people] == ['Sarah']

    @pytest.mark.asyncio
    async def test_sentence_starts_are_not_people(self, local_only):
        result = await local_only.detect('This is a problem for the team. It is a mess. There is a gap.', [])
        assert result.detected_people == []

    @pytest.mark.asyncio
    async def test_empty_message(self, local_only):
        result = await local_only.detect('   ', [])
        assert result.detected_people == []
        assert not result.fallback_used


class TestAIValidation:

    @pytest.mark.asyncio
    async def test_high_score_raises_confidence(self, with_ai, llm):
        llm.on(VALIDATE, {'validations': [{'name': 'Sarah', 'score': 9, 'reasoning': 'person'}]})

        result = await with_ai.detect(SARAH_MESSAGE, [])

        assert not result.fallback_used
        sarah = result.detected_people[0]
        assert sarah.confidence == 1.0
        assert sarah.validation_score == 9
        assert sarah.relationship_type == 'direct_report'

    @pytest.mark.asyncio
    async def test_low_score_rejects(self, with_ai, llm):
        llm.on(VALIDATE, {'validations': [{'name': 'Sarah', 'score': 3}]})

        result = await with_ai.detect(SARAH_MESSAGE, [])

        assert result.detected_people == []
        assert not result.has_new_people
        assert not result.fallback_used

    @pytest.mark.asyncio
    async def test_service_error_keeps_local_candidates(self, with_ai, local_only):
        expected = await local_only.detect(SARAH_MESSAGE, [])

        result = await with_ai.detect(SARAH_MESSAGE, [])

        assert result.fallback_used
        assert result.detected_people == expected.detected_people

    @pytest.mark.asyncio
    async def test_unparseable_reply_keeps_local_candidates(self, with_ai, llm):
        llm.on(VALIDATE, 'not json at all')
        result = await with_ai.detect(SARAH_MESSAGE, [])
        assert result.fallback_used
        assert [p.name for p in result.detected_people] == ['Sarah']

    @pytest.mark.asyncio
    async def test_raising_validator_never_loses_candidates(self, with_ai):
        with patch.object(with_ai, 'validate_with_ai', AsyncMock(side_effect=RuntimeError('boom'))):
            result = await with_ai.detect(SARAH_MESSAGE, [])

        assert result.fallback_used
        assert [p.name for p in result.detected_people] == ['Sarah']

    @pytest.mark.asyncio
    async def test_validation_is_cached(self, with_ai, llm):
        llm.on(VALIDATE, {'validations': [{'name': 'Sarah', 'score': 8}]})

        await with_ai.detect(SARAH_MESSAGE, [])
        await with_ai.detect(SARAH_MESSAGE, [])

        assert len(llm.calls_matching(VALIDATE)) == 1


class TestBasicFallback:

    @pytest.mark.asyncio
    async def test_pattern_failure_uses_basic_scan(self, local_only):
        with patch.object(local_only, 'extract_candidates', side_effect=RuntimeError('regex blew up')):
            result = await local_only.detect('I am working with Priya on the launch', [])

        assert result.fallback_used
        assert [(p.name, p.confidence) for p in result.detected_people] == [('Priya', 0.7)]

    def test_basic_scan_skips_existing(self, local_only):
        result = local_only.basic_detection('I work with Priya', ['Priya'])
        assert result.detected_people == []
        assert result.fallback_used
