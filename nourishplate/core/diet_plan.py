"""
NourishPlate — 30-Day Diet Plan Generator.

Turns a free-text user profile into a 30-day, four-meals-a-day plan using the
configured LLM. The reply is validated meal by meal; anything unusable falls
back to a deterministic plan built from rotating meal templates.
"""

from __future__ import annotations

import json
import logging
from datetime import date, timedelta
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from nourishplate.core.llm import GenerationConfig, clean_llm_response, complete

logger = logging.getLogger(__name__)

PLAN_DAYS = 30
MEAL_TYPES: tuple[str, ...] = ("breakfast", "lunch", "dinner", "snack")

MealType = Literal["breakfast", "lunch", "dinner", "snack"]

_GENERATION_CONFIG = GenerationConfig(temperature=0.7, max_output_tokens=32000)

_DEFAULT_TITLE = "AI-Generated Personalized Plan"
_DEFAULT_DESCRIPTION = (
    "A personalized nutrition plan designed for your specific goals and preferences."
)
_DEFAULT_CALORIES = "1800-2000"


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class Macros(BaseModel):
    protein: float = Field(0, ge=0)
    carbs: float = Field(0, ge=0)
    fat: float = Field(0, ge=0)


class PlannedMeal(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    meal_type: MealType = Field(alias="mealType")
    name: str = Field(min_length=1)
    description: str = ""
    calories: int | None = Field(None, ge=0)
    macros: Macros | None = None
    ingredients: list[str] = []
    instructions: str = ""

    @field_validator("meal_type", mode="before")
    @classmethod
    def normalize_meal_type(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v


class PlanDay(BaseModel):
    day: int = Field(ge=1)
    date: str
    meals: list[PlannedMeal]


class DietPlan(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: str
    duration: str = f"{PLAN_DAYS} days"
    calories: str
    daily_meals: list[PlanDay] = Field(alias="dailyMeals")
    source: Literal["ai", "fallback"] = "ai"


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

_PROMPT = """\
You are a certified nutritionist. Create a personalized diet plan based on the user's profile and goals.
Consider their age, weight, height, activity level, health goals, and dietary restrictions.

Generate a COMPLETE {days}-DAY MEAL PLAN with 4 meals per day (breakfast, lunch, dinner, snack).
Return ONLY a clean JSON object. Do not include markdown formatting, code blocks, or any other text.

Every meal must have a realistic, specific name, a detailed description, specific ingredients,
step-by-step instructions, and realistic calories and macros.

Return the response as a JSON object with this structure:
{{
  "title": "Plan title (e.g., '30-Day Vegetarian Weight Loss Plan')",
  "description": "A clear, concise description of the plan",
  "duration": "{days} days",
  "calories": "target-calories-per-day",
  "dailyMeals": [
    {{
      "day": 1,
      "date": "YYYY-MM-DD",
      "meals": [
        {{
          "mealType": "breakfast|lunch|dinner|snack",
          "name": "Specific meal name",
          "description": "Detailed meal description",
          "calories": number,
          "macros": {{"protein": number, "carbs": number, "fat": number}},
          "ingredients": ["specific ingredient 1", "specific ingredient 2"],
          "instructions": "Step-by-step preparation instructions"
        }}
      ]
    }}
  ]
}}

Day 1 is {start}. Respect dietary restrictions, ensure variety, and do not use placeholder
content such as "Healthy breakfast option".

Create a personalized diet plan for this user: {user_context}
"""


def build_prompt(user_context: str, start: date) -> str:
    return _PROMPT.format(days=PLAN_DAYS, start=start.isoformat(), user_context=user_context)


# ---------------------------------------------------------------------------
# Fallback plan
# ---------------------------------------------------------------------------

_FALLBACK_TEMPLATES: dict[str, list[dict]] = {
    "breakfast": [
        {
            "name": "Greek Yogurt Parfait with Berries",
            "description": "Creamy Greek yogurt layered with fresh strawberries, blueberries and honey, topped with granola and almonds.",
            "calories": 320,
            "macros": {"protein": 18, "carbs": 35, "fat": 12},
            "ingredients": ["Greek yogurt (1 cup)", "strawberries (1/2 cup)", "blueberries (1/4 cup)", "honey (1 tbsp)", "granola (1/4 cup)", "almonds (2 tbsp)"],
            "instructions": "Layer yogurt, berries, honey, and granola in a glass. Top with almonds and serve immediately.",
        },
        {
            "name": "Oatmeal with Banana and Cinnamon",
            "description": "Steel-cut oats cooked with almond milk, topped with sliced banana, cinnamon and a drizzle of maple syrup.",
            "calories": 280,
            "macros": {"protein": 12, "carbs": 45, "fat": 8},
            "ingredients": ["steel-cut oats (1/2 cup)", "almond milk (1 cup)", "banana (1 medium)", "cinnamon (1 tsp)", "maple syrup (1 tbsp)", "walnuts (2 tbsp)"],
            "instructions": "Cook oats with almond milk until creamy. Top with banana, cinnamon, maple syrup, and walnuts.",
        },
        {
            "name": "Avocado Toast with Poached Egg",
            "description": "Whole grain toast topped with mashed avocado, a poached egg and a sprinkle of red pepper flakes.",
            "calories": 350,
            "macros": {"protein": 16, "carbs": 25, "fat": 22},
            "ingredients": ["whole grain bread (2 slices)", "avocado (1/2 medium)", "egg (1 large)", "red pepper flakes (1/4 tsp)"],
            "instructions": "Toast bread and spread with mashed avocado. Poach the egg, place on top and season.",
        },
    ],
    "lunch": [
        {
            "name": "Mediterranean Quinoa Bowl",
            "description": "Quinoa with cherry tomatoes, cucumber, olives and feta, dressed with olive oil and lemon juice.",
            "calories": 420,
            "macros": {"protein": 14, "carbs": 38, "fat": 24},
            "ingredients": ["quinoa (1/2 cup cooked)", "cherry tomatoes (1/2 cup)", "cucumber (1/2 cup)", "kalamata olives (1/4 cup)", "feta cheese (2 tbsp)", "olive oil (1 tbsp)", "lemon juice (1 tbsp)"],
            "instructions": "Cook quinoa and let cool. Mix with chopped vegetables, olives, and feta. Dress with olive oil and lemon juice.",
        },
        {
            "name": "Grilled Chicken Salad",
            "description": "Mixed greens topped with grilled chicken breast, sliced almonds, dried cranberries and balsamic vinaigrette.",
            "calories": 380,
            "macros": {"protein": 28, "carbs": 18, "fat": 20},
            "ingredients": ["mixed greens (2 cups)", "chicken breast (4 oz)", "almonds (2 tbsp)", "dried cranberries (2 tbsp)", "balsamic vinaigrette (2 tbsp)"],
            "instructions": "Grill chicken until cooked through. Toss greens with almonds, cranberries, and vinaigrette. Top with sliced chicken.",
        },
        {
            "name": "Vegetarian Wrap with Hummus",
            "description": "Whole wheat tortilla filled with hummus, cucumber, bell peppers and sprouts.",
            "calories": 320,
            "macros": {"protein": 12, "carbs": 42, "fat": 14},
            "ingredients": ["whole wheat tortilla (1 large)", "hummus (3 tbsp)", "cucumber (1/2 cup sliced)", "bell pepper (1/2 cup sliced)", "sprouts (1/4 cup)"],
            "instructions": "Spread hummus on tortilla. Layer vegetables and sprouts. Roll tightly and cut diagonally.",
        },
    ],
    "dinner": [
        {
            "name": "Baked Salmon with Roasted Vegetables",
            "description": "Salmon fillet baked with herbs and lemon, served with roasted broccoli, carrots and sweet potatoes.",
            "calories": 480,
            "macros": {"protein": 34, "carbs": 32, "fat": 22},
            "ingredients": ["salmon fillet (5 oz)", "broccoli (1 cup)", "carrots (1/2 cup)", "sweet potato (1 small)", "olive oil (1 tbsp)", "lemon (1/2)"],
            "instructions": "Roast vegetables at 200°C for 25 minutes. Add seasoned salmon for the last 12-15 minutes.",
        },
        {
            "name": "Turkey and Vegetable Stir-Fry",
            "description": "Lean ground turkey stir-fried with bell peppers, snap peas and ginger, served over brown rice.",
            "calories": 450,
            "macros": {"protein": 30, "carbs": 44, "fat": 14},
            "ingredients": ["ground turkey (4 oz)", "bell pepper (1 cup)", "snap peas (1 cup)", "ginger (1 tsp)", "soy sauce (1 tbsp)", "brown rice (1/2 cup cooked)"],
            "instructions": "Brown the turkey, add vegetables and ginger, stir-fry 5 minutes, season with soy sauce and serve over rice.",
        },
        {
            "name": "Lentil and Spinach Curry",
            "description": "Red lentils simmered with tomatoes, spinach and warming spices, served with basmati rice.",
            "calories": 430,
            "macros": {"protein": 20, "carbs": 62, "fat": 10},
            "ingredients": ["red lentils (1/2 cup)", "canned tomatoes (1 cup)", "spinach (2 cups)", "curry powder (1 tbsp)", "onion (1/2)", "basmati rice (1/2 cup cooked)"],
            "instructions": "Sauté onion with curry powder, add lentils, tomatoes and water, simmer 20 minutes, stir in spinach and serve.",
        },
    ],
    "snack": [
        {
            "name": "Apple Slices with Almond Butter",
            "description": "Crisp apple slices served with creamy almond butter for a sweet, satisfying snack.",
            "calories": 200,
            "macros": {"protein": 5, "carbs": 25, "fat": 10},
            "ingredients": ["apple (1 medium)", "almond butter (1 tbsp)"],
            "instructions": "Slice the apple and serve with almond butter for dipping.",
        },
        {
            "name": "Hummus with Carrot and Cucumber Sticks",
            "description": "Fresh vegetable sticks with a portion of hummus.",
            "calories": 150,
            "macros": {"protein": 5, "carbs": 18, "fat": 7},
            "ingredients": ["hummus (3 tbsp)", "carrot (1 medium)", "cucumber (1/2)"],
            "instructions": "Cut vegetables into sticks and serve with hummus.",
        },
        {
            "name": "Cottage Cheese with Pineapple",
            "description": "Protein-rich cottage cheese topped with fresh pineapple chunks.",
            "calories": 180,
            "macros": {"protein": 14, "carbs": 20, "fat": 4},
            "ingredients": ["cottage cheese (1/2 cup)", "pineapple chunks (1/2 cup)"],
            "instructions": "Spoon cottage cheese into a bowl and top with pineapple.",
        },
    ],
}


def fallback_daily_meals(start: date) -> list[PlanDay]:
    """A full 30-day plan rotating through the meal templates."""
    days: list[PlanDay] = []
    for offset in range(PLAN_DAYS):
        meals = [
            PlannedMeal(meal_type=meal_type, **templates[offset % len(templates)])
            for meal_type, templates in _FALLBACK_TEMPLATES.items()
        ]
        days.append(
            PlanDay(
                day=offset + 1,
                date=(start + timedelta(days=offset)).isoformat(),
                meals=meals,
            )
        )
    return days


def fallback_diet_plan(
    start: date, title: str | None = None, calories: str | None = None,
) -> DietPlan:
    return DietPlan(
        title=title or _DEFAULT_TITLE,
        description=_DEFAULT_DESCRIPTION,
        calories=calories or _DEFAULT_CALORIES,
        daily_meals=fallback_daily_meals(start),
        source="fallback",
    )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _looks_like_placeholder(meal: PlannedMeal) -> bool:
    return "Day" in meal.name or "option" in meal.description.lower()


def _clean_description(description: str | None, title: str) -> str:
    description = (description or "").strip()
    if "{" in description:
        description = description[: description.index("{")].strip()
    if len(description) < 10:
        return f"Personalized {title or 'nutrition'} plan designed for your specific goals and preferences."
    return description


def _parse_day(raw_day: object, index: int, start: date) -> PlanDay | None:
    if not isinstance(raw_day, dict):
        return None

    meals: list[PlannedMeal] = []
    for raw_meal in raw_day.get("meals") or []:
        try:
            meals.append(PlannedMeal.model_validate(raw_meal))
        except PydanticValidationError as exc:
            logger.warning("Dropping invalid meal on day %d: %s", index + 1, exc.errors()[0]["msg"])
    if not meals:
        return None

    day_number = raw_day.get("day") if isinstance(raw_day.get("day"), int) else index + 1
    day_date = raw_day.get("date") or (start + timedelta(days=day_number - 1)).isoformat()
    try:
        return PlanDay(day=day_number, date=str(day_date), meals=meals)
    except PydanticValidationError as exc:
        logger.warning("Dropping invalid plan day %d: %s", index + 1, exc.errors()[0]["msg"])
        return None


def parse_diet_plan(raw_text: str, start: date) -> DietPlan:
    """Parse and validate a plan reply.

    Raises:
        json.JSONDecodeError: the reply is not JSON.
        ValueError: the reply holds no usable days.
    """
    data = json.loads(clean_llm_response(raw_text))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

    raw_days = data.get("dailyMeals")
    if not raw_days and data.get("meals"):
        # Older single-list shape: everything belongs to day 1
        raw_days = [{"day": 1, "date": start.isoformat(), "meals": data["meals"]}]
    if not isinstance(raw_days, list):
        raise ValueError("Plan has no dailyMeals list")

    days = [d for i, raw in enumerate(raw_days) if (d := _parse_day(raw, i, start)) is not None]
    if not days:
        raise ValueError("Plan contains no valid meals")

    title = str(data.get("title") or _DEFAULT_TITLE)
    return DietPlan(
        title=title,
        description=_clean_description(data.get("description"), title),
        duration=str(data.get("duration") or f"{PLAN_DAYS} days"),
        calories=str(data.get("calories") or _DEFAULT_CALORIES),
        daily_meals=days,
        source="ai",
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def generate_diet_plan(user_context: str, start: date | None = None) -> DietPlan:
    """Generate a 30-day plan for the described user. Never raises."""
    start = start or date.today()

    try:
        raw_text = await complete(build_prompt(user_context, start), _GENERATION_CONFIG)
        logger.info("Diet plan response received (%d chars)", len(raw_text))
        plan = parse_diet_plan(raw_text, start)
    except Exception as exc:
        logger.error("Diet plan generation failed, using fallback plan: %s", exc)
        return fallback_diet_plan(start)

    if _looks_like_placeholder(plan.daily_meals[0].meals[0]):
        logger.warning("Detected placeholder content in AI plan, using fallback meals")
        return fallback_diet_plan(start, title=plan.title, calories=plan.calories)

    return plan
