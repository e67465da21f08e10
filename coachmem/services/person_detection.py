"""
Detection of newly mentioned people in a user message.

Candidates come from a battery of phrase patterns, are filtered by local name
rules, and are optionally confirmed by an AI plausibility score. When the AI step
is unavailable the locally validated candidates are returned.
"""

import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

from ..models.core import DetectedPerson, PersonDetectionResult
from ..models.results import LLMOk
from ..utils.async_utils import ask_json
from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import AppConfig, config as default_config
from ..utils.logging_config import get_logger
from ..utils.ttl_cache import MISS, TTLCache
from .keywords import COMMON_WORDS, NON_NAME_WORDS, WORK_CONTEXT_KEYWORDS

logger = get_logger(__name__)

# A capitalised given name, optionally hyphenated, with an apostrophe or a possessive
NAME = r"([A-Z\u00C0-\u00DE][a-zA-Z\u00C0-\u017F'\u2019-]{1,20})"
END = r"(?=\s|[,.!?;:]|$)"
VALID_NAME_RE = re.compile(r"^[A-Z\u00C0-\u00DE][a-zA-Z\u00C0-\u017F'-]*$")
POSSESSIVE_RE = re.compile(r"['\u2019]s$")

APPOSITIVE_RELATIONSHIPS = {
    'direct report': 'direct_report',
    'report': 'direct_report',
    'team member': 'direct_report',
    'manager': 'manager',
    'boss': 'manager',
    'supervisor': 'manager',
    'peer': 'peer',
    'colleague': 'peer',
    'coworker': 'peer',
    'co-worker': 'peer',
    'stakeholder': 'stakeholder',
    'client': 'stakeholder',
}


@dataclass(frozen=True)
class MentionPattern:
    regex: 're.Pattern'
    confidence: float
    relationship_type: Optional[str] = None
    has_role: bool = False
    appositive: bool = False


# Trigger phrases are case-insensitive, the captured name must be capitalised
MENTION_PATTERNS = (
    MentionPattern(re.compile(r'(?i:\b(?:work with|working with|collaborate with|collaborated with|partnering with|'
                              r'team up with|paired with))\s+' + NAME + END),
                   confidence=0.7,
                   relationship_type='peer'),
    MentionPattern(re.compile(r'(?i:\b(?:my manager|my boss|our manager|report to|reports to|supervisor|lead by))\s+' + NAME + END),
                   confidence=0.8,
                   relationship_type='manager'),
    MentionPattern(re.compile(r'(?i:\b(?:I manage|manage|managing|my team member|direct report))\s+' + NAME + END),
                   confidence=0.8,
                   relationship_type='direct_report'),
    MentionPattern(re.compile(NAME + r',\s+(?i:(?:my|our)\s+(?:new\s+)?(direct report|report|team member|manager|boss|'
                              r'supervisor|peer|colleague|coworker|co-worker|stakeholder|client))\b'),
                   confidence=0.8,
                   appositive=True),
    MentionPattern(re.compile(NAME + r'\s*(?:\(([^)]+)\)|(?i:\s(?:the|is a|is an|who is|works as))\s+([^,.!?]{1,30}))'),
                   confidence=0.9,
                   has_role=True),
    MentionPattern(re.compile(NAME + r'\s+(?i:and)\s+(?:I|me|myself)' + END), confidence=0.6, relationship_type='peer'),
    MentionPattern(re.compile(r'(?i:\b(?:meeting with|met with|1:1 with|one-on-one with|talked to|talked with|spoke with|'
                              r'discussed with|called))\s+' + NAME + END),
                   confidence=0.7,
                   relationship_type='stakeholder'),
    MentionPattern(re.compile(r'(?i:\bdiscussed\s+(?:the\s+)?[a-z\s]+?\s+with)\s+' + NAME + END),
                   confidence=0.7,
                   relationship_type='stakeholder'),
    MentionPattern(re.compile(r'(?i:\b(?:emailed|email))\s+' + NAME + END), confidence=0.7, relationship_type='stakeholder'),
    MentionPattern(re.compile(r"\b([A-Z\u00C0-\u00DE][a-zA-Z\u00C0-\u017F]*-[A-Z\u00C0-\u00DE][a-zA-Z\u00C0-\u017F]*)\s+"
                              r'(?i:is|was|will|would|can|could|should|might|leads?|works?|manages?)\b'),
                   confidence=0.8),
)

BASIC_PATTERN = re.compile(r'(?i:\b(?:work with|working with))\s+([A-Z][a-zA-Z]+)')


def strip_possessive(name: str) -> str:
    """Drop a trailing possessive, e.g. Sarah's -> Sarah."""
    return POSSESSIVE_RE.sub('', name)


def capitalize_name(name: str) -> str:
    """'mary-jane' -> 'Mary-Jane'."""
    return '-'.join(part[:1].upper() + part[1:].lower() for part in name.split('-'))


def is_common_word(word: str) -> bool:
    return word.lower() in COMMON_WORDS


def is_valid_name(name: str, min_length: int = 2, max_length: int = 30) -> bool:
    """Local name rules: shape, length band, no digits, not all-caps, not a common or function word."""
    if not name or len(name) < min_length or len(name) > max_length:
        return False
    if not VALID_NAME_RE.match(name):
        return False
    if any(ch.isdigit() for ch in name):
        return False
    if name.isupper():
        return False
    lowered = name.lower()
    return lowered not in COMMON_WORDS and lowered not in NON_NAME_WORDS


def has_work_context(message: str) -> bool:
    lowered = message.lower()
    return any(keyword in lowered for keyword in WORK_CONTEXT_KEYWORDS)


def finalize(people: List[DetectedPerson], floor: float) -> List[DetectedPerson]:
    """Clamp, drop below the floor, sort by confidence and keep the first occurrence of each name."""
    kept = [replace(person, confidence=min(person.confidence, 1.0)) for person in people if person.confidence >= floor]
    kept.sort(key=lambda person: person.confidence, reverse=True)

    seen = set()
    unique = []
    for person in kept:
        key = person.name.lower()
        if key not in seen:
            seen.add(key)
            unique.append(person)
    return unique


class PersonDetectionService:
    """Finds mentions of people who are not yet on the user's roster."""

    def __init__(self, llm: Optional[BedrockLLM], cache: TTLCache, config: Optional[AppConfig] = None):
        """
        Args:
            llm: Completion client for name validation; None disables the AI tier
            cache: Shared per-process TTL cache (validation results)
            config: Application configuration (global config if None)
        """
        self.llm = llm
        self.cache = cache
        self.config = config or default_config
        self.settings = self.config.detection

    def extract_candidates(self, message: str, existing_names: Sequence[str]) -> List[DetectedPerson]:
        """Run the phrase patterns and return every plausible new name."""
        existing = {name.strip().lower() for name in existing_names if name}
        candidates = []

        for pattern in MENTION_PATTERNS:
            for match in pattern.regex.finditer(message):
                name = strip_possessive(match.group(1)).strip("'\u2019-")
                if not name or name.lower() in existing or is_common_word(name):
                    continue

                role = None
                relationship_type = pattern.relationship_type
                if pattern.has_role:
                    role = (match.group(2) or match.group(3) or '').strip() or None
                    if role is None:
                        continue
                if pattern.appositive:
                    relationship_type = APPOSITIVE_RELATIONSHIPS.get(match.group(2).lower())

                candidates.append(
                    DetectedPerson(name=capitalize_name(name),
                                   confidence=pattern.confidence,
                                   context=match.group(0),
                                   role=role,
                                   relationship_type=relationship_type))
        return candidates

    def validate_locally(self, message: str, candidates: List[DetectedPerson]) -> List[DetectedPerson]:
        """Drop names failing the local rules and boost candidates in a work context."""
        boost = self.settings.context_boost if has_work_context(message) else 0.0
        validated = []
        for person in candidates:
            if not is_valid_name(person.name, self.settings.min_name_length, self.settings.max_name_length):
                logger.debug(f'Rejected candidate name {person.name}')
                continue
            validated.append(replace(person, confidence=min(person.confidence + boost, 1.0)))
        return [person for person in validated if person.confidence >= self.settings.confidence_floor]

    async def _validation_scores(self, message: str, names: List[str]) -> Optional[Dict[str, int]]:
        """AI plausibility score per lowercase name, or None when the AI tier fails."""
        key = f'person-validation:{message[:100]}:{"|".join(sorted(name.lower() for name in names))}'
        cached = self.cache.get(key)
        if cached is not MISS:
            return cached

        system_prompt = f"""
Analyze the conversation text and decide which of the candidate names actually refer to people (not companies,
projects, places, products or other entities).

Conversation: "{message}"

Candidate names: {', '.join(names)}

Consider context clues, grammar and sentence structure, and whether the name appears where a person would be
mentioned. Score each name from 1 to 10:
- 8-10: definitely a person's name
- 6-7: likely a person's name
- 4-5: uncertain
- 1-3: unlikely to be a person's name

Return a JSON object with this exact format:
```json
{{
  "validations": [
    {{"name": "Name", "score": 8, "reasoning": "short reason"}}
  ]
}}
```"""

        result = await ask_json(self.llm,
                                system_prompt,
                                f'Validate these names: {", ".join(names)}',
                                timeout=self.config.timeouts.completion,
                                max_tokens=300)
        if not isinstance(result, LLMOk):
            logger.warning(f'Name validation unavailable: {result}')
            return None

        validations = result.data.get('validations')
        if not isinstance(validations, list):
            logger.warning('Name validation response has no validations list')
            return None

        scores = {}
        for item in validations:
            if not isinstance(item, dict) or not isinstance(item.get('name'), str):
                continue
            score = item.get('score')
            if isinstance(score, bool) or not isinstance(score, (int, float)):
                continue
            scores[item['name'].strip().lower()] = max(1, min(int(score), 10))

        self.cache.set(key, scores, self.config.cache.validation_ttl)
        return scores

    async def validate_with_ai(self, message: str, candidates: List[DetectedPerson]) -> Optional[List[DetectedPerson]]:
        """Keep candidates the AI scores at or above the threshold; None when the AI tier fails."""
        if not candidates:
            return []

        scores = await self._validation_scores(message, [person.name for person in candidates])
        if scores is None:
            return None

        weight = self.settings.validation_weight
        validated = []
        for person in candidates:
            score = scores.get(person.name.lower())
            if score is None or score < self.settings.min_validation_score:
                continue
            validated.append(
                replace(person, confidence=min(person.confidence + score / 10 * weight, 1.0), validation_score=score))
        return validated

    def basic_detection(self, message: str, existing_names: Sequence[str]) -> PersonDetectionResult:
        """Last-resort scan for 'work(ing) with X'."""
        existing = {name.strip().lower() for name in existing_names if name}
        people = []
        for match in BASIC_PATTERN.finditer(message or ''):
            name = match.group(1)
            if name.lower() not in existing and not is_common_word(name):
                people.append(DetectedPerson(name=capitalize_name(name), confidence=0.7, context=match.group(0)))
        people = finalize(people, self.settings.confidence_floor)
        return PersonDetectionResult(detected_people=people, has_new_people=bool(people), fallback_used=True)

    async def detect(self, message: str, existing_names: Sequence[str]) -> PersonDetectionResult:
        """
        Detect new people mentioned in a message.

        Args:
            message: User message text
            existing_names: Names already on the roster (case-insensitive)

        Returns:
            PersonDetectionResult; never raises
        """
        if not message or not message.strip():
            return PersonDetectionResult()

        try:
            candidates = self.validate_locally(message, self.extract_candidates(message, existing_names))
        except Exception as e:
            logger.error(f'Person detection failed, using basic scan: {e!r}')
            return self.basic_detection(message, existing_names)

        if not candidates:
            return PersonDetectionResult()

        people = None
        if self.llm is not None:
            try:
                people = await self.validate_with_ai(message, candidates)
            except Exception as e:
                logger.warning(f'Name validation failed, keeping pattern matches: {e!r}')
        fallback_used = people is None
        if fallback_used:
            people = candidates

        people = finalize(people, self.settings.confidence_floor)
        if people:
            logger.info(f'Detected {len(people)} new people: {", ".join(p.name for p in people)}')
        return PersonDetectionResult(detected_people=people, has_new_people=bool(people), fallback_used=fallback_used)
