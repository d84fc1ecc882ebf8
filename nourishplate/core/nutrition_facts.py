"""
NourishPlate — Kids' Nutrition Facts Generator.

Asks the LLM for six age-appropriate nutrition facts, validates each record
against an explicit schema, and falls back to a fixed set of facts whenever
generation fails. Callers always get exactly six facts.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from nourishplate.core.llm import GenerationConfig, clean_llm_response, complete

if TYPE_CHECKING:
    from nourishplate.data.cache import ResultCache

logger = logging.getLogger(__name__)

FACTS_PER_BATCH = 6
NUTRITION_FACTS_CACHE_KEY = "nutrition_facts_cache"

Category = Literal["fruits", "vegetables", "proteins", "grains", "dairy", "general"]
AgeGroup = Literal["toddler", "preschool", "school", "all"]

_GENERATION_CONFIG = GenerationConfig(
    temperature=0.8,
    top_p=0.9,
    top_k=40,
    max_output_tokens=2000,
    candidate_count=1,
)


class NutritionFact(BaseModel):
    """A single fact as served to the UI.

    JSON example:
    {
        "id": "fact-1718000000000-0",
        "fact": "Carrots help you see better in the dark because they have vitamin A!",
        "category": "vegetables",
        "ageGroup": "school",
        "emoji": "🥕",
        "timestamp": 1718000000000
    }
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    fact: str
    category: Category
    age_group: AgeGroup = Field(alias="ageGroup")
    emoji: str
    timestamp: int


class _GeneratedFact(BaseModel):
    """What the model is asked to return for each fact."""

    fact: str = Field(min_length=1)
    category: Category = "general"
    emoji: str = "🍎"

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v: str | None) -> str:
        if not v:
            return "general"
        return v.strip().lower() if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

_PROMPT = """\
Generate {count} fun, educational nutrition facts for children aged {age} years old.
Make them engaging, easy to understand, and age-appropriate. Each fact should be:
- Fun and interesting for kids
- Educational about healthy foods
- Easy to understand for a {age_group} age child
- Include a relevant emoji
- Cover different food categories (fruits, vegetables, proteins, grains, dairy)

Return ONLY a valid JSON array with this exact structure:
[
  {{
    "fact": "Fun fact text here",
    "category": "fruits|vegetables|proteins|grains|dairy|general",
    "emoji": "relevant emoji"
  }}
]

Example format:
[
  {{
    "fact": "Carrots help you see better in the dark because they have vitamin A!",
    "category": "vegetables",
    "emoji": "🥕"
  }}
]

Generate exactly {count} different facts covering different food categories. Make them exciting and kid-friendly!
"""


def age_group_for(kid_age: int) -> AgeGroup:
    if kid_age <= 3:
        return "toddler"
    if kid_age <= 5:
        return "preschool"
    return "school"


def build_prompt(kid_age: int) -> str:
    return _PROMPT.format(count=FACTS_PER_BATCH, age=kid_age, age_group=age_group_for(kid_age))


# ---------------------------------------------------------------------------
# Fallback set
# ---------------------------------------------------------------------------

_FALLBACK_FACTS: list[tuple[str, Category, str]] = [
    ("Carrots help you see better in the dark because they have vitamin A!", "vegetables", "🥕"),
    ("Milk helps build strong bones and teeth with calcium!", "dairy", "🥛"),
    ("Blueberries are brain food - they help you think better!", "fruits", "🫐"),
    ("Spinach makes you strong like Popeye because it's full of iron!", "vegetables", "🥬"),
    ("Oranges have vitamin C that helps fight off colds!", "fruits", "🍊"),
    ("Whole grain bread gives you energy to play all day!", "grains", "🍞"),
]


def fallback_nutrition_facts(timestamp: int | None = None) -> list[NutritionFact]:
    """The fixed facts served when generation is unavailable."""
    if timestamp is None:
        timestamp = _now_ms()
    return [
        NutritionFact(
            id=f"fallback-{timestamp}-{n}",
            fact=fact,
            category=category,
            age_group="all",
            emoji=emoji,
            timestamp=timestamp,
        )
        for n, (fact, category, emoji) in enumerate(_FALLBACK_FACTS, start=1)
    ]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _now_ms() -> int:
    return int(time.time() * 1000)


def parse_nutrition_facts(
    raw_text: str, age_group: AgeGroup, timestamp: int,
) -> list[NutritionFact]:
    """Parse the model's reply into facts, dropping records that fail the schema.

    Raises:
        json.JSONDecodeError: the reply is not JSON.
        ValueError: the reply is JSON but not an array.
    """
    data = json.loads(clean_llm_response(raw_text))
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON array, got {type(data).__name__}")

    facts: list[NutritionFact] = []
    for item in data:
        try:
            generated = _GeneratedFact.model_validate(item)
        except PydanticValidationError as exc:
            logger.warning("Dropping invalid nutrition fact %r: %s", item, exc.errors()[0]["msg"])
            continue
        facts.append(
            NutritionFact(
                id=f"fact-{timestamp}-{len(facts)}",
                fact=generated.fact,
                category=generated.category,
                age_group=age_group,
                emoji=generated.emoji or "🍎",
                timestamp=timestamp,
            )
        )
    return facts


def _complete_batch(facts: list[NutritionFact], timestamp: int) -> list[NutritionFact]:
    """Trim to a full batch, topping up from the fallback set when short."""
    if len(facts) >= FACTS_PER_BATCH:
        return facts[:FACTS_PER_BATCH]

    seen = {f.fact for f in facts}
    for extra in fallback_nutrition_facts(timestamp):
        if len(facts) == FACTS_PER_BATCH:
            break
        if extra.fact not in seen:
            facts.append(extra)
    logger.info("Topped up nutrition facts from the fallback set")
    return facts


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def generate_nutrition_facts(kid_age: int) -> list[NutritionFact]:
    """Generate a batch of facts for a child of `kid_age`. Never raises."""
    timestamp = _now_ms()
    age_group = age_group_for(kid_age)

    try:
        raw_text = await complete(build_prompt(kid_age), _GENERATION_CONFIG)
        logger.debug("LLM raw nutrition facts: %s", raw_text)
        facts = parse_nutrition_facts(raw_text, age_group, timestamp)
    except Exception as exc:
        logger.error("Error generating nutrition facts: %s", exc)
        return fallback_nutrition_facts(timestamp)

    if not facts:
        logger.warning("LLM returned no usable nutrition facts, using fallback set")
        return fallback_nutrition_facts(timestamp)

    return _complete_batch(facts, timestamp)


def _cached_facts(cache: ResultCache) -> list[NutritionFact] | None:
    cached = cache.get(NUTRITION_FACTS_CACHE_KEY)
    if cached is None:
        return None
    try:
        return [NutritionFact.model_validate(item) for item in cached]
    except PydanticValidationError as exc:
        logger.warning("Cached nutrition facts failed validation, discarding: %s", exc)
        cache.clear(NUTRITION_FACTS_CACHE_KEY)
        return None


# Lazy singleton, built on the first call that doesn't pass its own cache
_default_cache: ResultCache | None = None


def _get_default_cache() -> ResultCache:
    global _default_cache

    if _default_cache is None:
        from nourishplate.data.cache import ResultCache
        _default_cache = ResultCache()
    return _default_cache


async def get_nutrition_facts(
    kid_age: int,
    force_refresh: bool = False,
    cache: ResultCache | None = None,
) -> list[NutritionFact]:
    """Serve facts from the cache, generating and caching a new batch on a miss.

    Cache read and write errors are logged and treated as a miss.
    """
    if cache is None:
        cache = _get_default_cache()

    if not force_refresh:
        try:
            cached = _cached_facts(cache)
        except sqlite3.Error as exc:
            logger.error("Error reading cached nutrition facts: %s", exc)
            cached = None
        if cached:
            return cached

    facts = await generate_nutrition_facts(kid_age)
    try:
        cache.set(
            NUTRITION_FACTS_CACHE_KEY,
            [f.model_dump(by_alias=True) for f in facts],
        )
    except sqlite3.Error as exc:
        logger.error("Error caching nutrition facts: %s", exc)
    return facts
