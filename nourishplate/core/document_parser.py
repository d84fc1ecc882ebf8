"""
NourishPlate — Diet Plan Document Parser.

Downloads an uploaded diet plan, asks the LLM to extract the meals it
describes, and returns them as calendar events. Text documents are embedded
in the prompt; PDFs and images are attached to the request as inline data.

Unlike the other generators there is no fallback data here: a document that
yields no meals is an error, never a sample plan.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import date

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from nourishplate.core.diet_plan import Macros, MealType
from nourishplate.core.errors import UpstreamError, ValidationError
from nourishplate.core.llm import (
    GenerationConfig,
    InlineDocument,
    clean_llm_response,
    complete,
)

logger = logging.getLogger(__name__)

_EXTRACT_CONFIG = GenerationConfig(temperature=0.3, max_output_tokens=2000)
_RETRY_CONFIG = GenerationConfig(temperature=0.1, max_output_tokens=2000)

_TEXT_TYPES = ("text/", "application/json", "application/xml")
_ATTACHABLE_TYPES = ("application/pdf", "image/")


class PlanEvent(BaseModel):
    """One meal on the calendar, as returned to the client."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    date: str
    meal: str = Field(min_length=1)
    meal_type: MealType = Field(alias="mealType")
    description: str = ""
    calories: float | None = Field(None, ge=0)
    macros: Macros | None = None

    @field_validator("date")
    @classmethod
    def iso_date(cls, v: str) -> str:
        return date.fromisoformat(v).isoformat()

    @field_validator("meal_type", mode="before")
    @classmethod
    def normalize_meal_type(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_EXTRACT_PROMPT = """\
You are a nutrition expert. Analyze the provided diet plan and extract structured meal information.
Return a JSON array of meal objects with the following structure:
{
  "id": "unique_id",
  "date": "YYYY-MM-DD",
  "meal": "meal name",
  "mealType": "breakfast|lunch|dinner|snack",
  "description": "detailed meal description",
  "calories": number,
  "macros": {
    "protein": number,
    "carbs": number,
    "fat": number
  }
}

Extract all meals from the plan and provide accurate nutritional information. If you cannot
determine specific nutritional values, provide reasonable estimates based on typical serving sizes.
"""

_RETRY_PROMPT = """\
Your previous answer could not be parsed. Return ONLY a JSON array of meal objects,
with no prose and no markdown. Each object must have the keys
"date" (YYYY-MM-DD), "meal", "mealType" (breakfast, lunch, dinner or snack),
"description", "calories" and "macros" ({{"protein", "carbs", "fat"}}).
If the plan has no dates, use {today} for the first day.
"""


def _with_content(prompt: str, file_name: str, text: str | None) -> str:
    if text is None:
        return f"{prompt}\nPlease analyze the attached diet plan ({file_name}) and extract the meal information."
    return f"{prompt}\nPlease analyze this diet plan ({file_name}) and extract the meal information:\n\n{text}"


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------


async def fetch_document(file_url: str, max_bytes: int | None = None) -> tuple[str, bytes]:
    """Download the uploaded file and return (content type, body).

    The body is streamed so a file larger than `max_bytes` (default
    DOCUMENT_MAX_BYTES) is rejected without being held in memory.
    """
    from nourishplate.config import settings

    limit = max_bytes if max_bytes is not None else settings.DOCUMENT_MAX_BYTES
    too_large = f"File is too large (limit {limit} bytes)"

    try:
        async with httpx.AsyncClient(
            timeout=settings.DOCUMENT_TIMEOUT_SECONDS, follow_redirects=True,
        ) as client:
            async with client.stream("GET", file_url) as resp:
                if not resp.is_success:
                    raise UpstreamError(
                        f"Failed to download file: {resp.status_code}",
                        upstream_status=resp.status_code,
                    )

                declared = resp.headers.get("content-length", "")
                if declared.isdigit() and int(declared) > limit:
                    raise ValidationError(too_large)

                body = bytearray()
                async for chunk in resp.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > limit:
                        raise ValidationError(too_large)

                content_type = resp.headers.get("content-type", "")
    except httpx.HTTPError as exc:
        raise UpstreamError(f"Failed to download file: {exc}") from exc

    content_type = content_type.split(";")[0].strip().lower()
    return content_type, bytes(body)


def _prepare(content_type: str, body: bytes) -> tuple[str | None, InlineDocument | None]:
    if content_type.startswith(_TEXT_TYPES):
        return body.decode("utf-8", errors="replace"), None
    if content_type.startswith(_ATTACHABLE_TYPES):
        return None, InlineDocument(mime_type=content_type, data=body)
    raise ValidationError(f"Unsupported file type: {content_type or 'unknown'}")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_plan_events(raw_text: str, today: date) -> list[PlanEvent]:
    """Parse the model's reply into events, dropping records that fail the schema.

    Accepts a bare array or an object wrapping it under "events".

    Raises:
        json.JSONDecodeError: the reply is not JSON.
        ValueError: the reply is JSON but holds no event list.
    """
    data = json.loads(clean_llm_response(raw_text))
    if isinstance(data, dict):
        data = data.get("events")
    if not isinstance(data, list):
        raise ValueError("AI response is not an array")

    stamp = int(time.time() * 1000)
    events: list[PlanEvent] = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            continue
        record = {
            **item,
            "id": str(item.get("id") or f"meal_{stamp}_{index}"),
            "date": item.get("date") or today.isoformat(),
        }
        try:
            events.append(PlanEvent.model_validate(record))
        except PydanticValidationError as exc:
            logger.warning("Dropping invalid meal event %d: %s", index, exc.errors()[0]["msg"])
    return events


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def parse_nutrition_plan(
    file_url: str, file_name: str, today: date | None = None,
) -> list[PlanEvent]:
    """Extract meal events from the diet plan document at `file_url`.

    Raises:
        ValidationError: missing input or an unsupported file type.
        UpstreamError: the download or the model failed, or no meals were found.
    """
    if not file_url or not file_name:
        raise ValidationError("Missing required fields: fileUrl and fileName are required")
    today = today or date.today()

    logger.info("Parsing nutrition plan: %s", file_name)
    content_type, body = await fetch_document(file_url)
    text, document = _prepare(content_type, body)
    logger.info("Downloaded %s (%s, %d bytes)", file_name, content_type, len(body))

    attempts = (
        (_with_content(_EXTRACT_PROMPT, file_name, text), _EXTRACT_CONFIG),
        (_with_content(_RETRY_PROMPT.format(today=today.isoformat()), file_name, text), _RETRY_CONFIG),
    )
    for attempt, (prompt, config) in enumerate(attempts, start=1):
        try:
            raw_text = await complete(prompt, config, document)
        except Exception as exc:
            logger.error("LLM call failed while parsing %s: %s", file_name, exc)
            raise UpstreamError(f"AI service error: {exc}") from exc

        try:
            events = parse_plan_events(raw_text, today)
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError
            logger.warning("Unparseable reply for %s (attempt %d): %s", file_name, attempt, exc)
            continue

        if events:
            logger.info("Parsed %d meal events from %s", len(events), file_name)
            return events
        logger.warning("No valid meals in reply for %s (attempt %d)", file_name, attempt)

    raise UpstreamError(f"No meals could be extracted from {file_name}")
