"""Recipe extraction from pasted text or photos.

The model is asked for strict JSON; the reply is validated against the
``Recipe`` model.  A reply missing a title, ingredients or instructions is
a failure with a readable reason, never a partial recipe.
"""

from __future__ import annotations

from loguru import logger
from pydantic import ValidationError

from mealprep_assistant.domain.models import ExtractionResult, Recipe
from mealprep_assistant.domain.prompts import RECIPE_EXTRACTION_PROMPT, extraction_user_prompt
from mealprep_assistant.domain.protocols import IChatCompletionClient

REQUIRED_FIELDS = ("title", "ingredients", "instructions")

SUCCESS_REPLY = "I've extracted the recipe! Here's what I found:"

_MISSING_ERROR_TYPES = {"missing", "too_short", "string_too_short"}


def describe_validation_error(exc: ValidationError) -> str:
    """Summarise a Recipe validation failure in one sentence."""
    missing: list[str] = []
    other: list[str] = []
    for err in exc.errors():
        loc = [str(part) for part in err["loc"]]
        field = loc[0] if loc else ""
        is_blank = err["type"] in _MISSING_ERROR_TYPES or err.get("input") is None
        if field in REQUIRED_FIELDS and len(loc) == 1 and is_blank:
            if field not in missing:
                missing.append(field)
        else:
            other.append(f"{'.'.join(loc)}: {err['msg']}")
    if missing:
        return f"Invalid recipe structure: missing required fields: {', '.join(missing)}"
    return f"Invalid recipe structure: {'; '.join(other)}"


def parse_recipe_payload(payload: object) -> ExtractionResult:
    """Validate a ``{recipe: {...}}`` or bare recipe object."""
    if isinstance(payload, dict) and isinstance(payload.get("recipe"), dict):
        payload = payload["recipe"]
    if not isinstance(payload, dict):
        return ExtractionResult(error="Invalid recipe structure: expected a JSON object")
    try:
        return ExtractionResult(recipe=Recipe.model_validate(payload))
    except ValidationError as exc:
        return ExtractionResult(error=describe_validation_error(exc))


def reply_text(result: ExtractionResult) -> str:
    """The assistant message shown for an extraction attempt."""
    if result.ok:
        return SUCCESS_REPLY
    return f"I had trouble extracting the recipe: {result.error}"


class RecipeExtractor:
    """Turns unstructured recipe text or images into a validated ``Recipe``.

    Uses the vision model when images are attached and the text model
    otherwise.  Extraction has no side effects; saving the recipe is left
    to the client.
    """

    def __init__(self, client: IChatCompletionClient, text_model: str, vision_model: str) -> None:
        self.client = client
        self.text_model = text_model
        self.vision_model = vision_model

    async def extract(self, message: str, images: list[str] | None = None) -> ExtractionResult:
        images = images or []
        model = self.vision_model if images else self.text_model
        try:
            payload = await self.client.complete_json(
                RECIPE_EXTRACTION_PROMPT,
                extraction_user_prompt(message, len(images)),
                model=model,
                images=images,
                temperature=0.1,
                max_tokens=2000,
            )
        except ValueError as exc:
            logger.warning("Recipe extraction reply was not JSON | {}", exc)
            return ExtractionResult(error="Recipe extraction failed: the reply was not valid JSON")
        except Exception as exc:
            logger.warning("Recipe extraction call failed | model={} error={}", model, exc)
            return ExtractionResult(error=f"Recipe extraction failed: {str(exc) or type(exc).__name__}")

        result = parse_recipe_payload(payload)
        if result.ok:
            assert result.recipe
            logger.info(
                "Recipe extracted | title={} ingredients={} steps={}",
                result.recipe.title,
                len(result.recipe.ingredients),
                len(result.recipe.instructions),
            )
        else:
            logger.info("Recipe extraction rejected | {}", result.error)
        return result
