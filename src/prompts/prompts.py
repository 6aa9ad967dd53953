"""System policy, task instructions and output contract for recipe generation.

Provides factory functions that build the GenerationRequest for one pipeline run:
- build_system_policy(): fixed cuisine allow-list/deny-list policy with few-shot
  examples, a response-language instruction and a JSON-only instruction
- build_task_instruction(): per-mode task text ("analyze image" or "from ingredients")
- compose_generation_request(): assembles policy, ordered parts and the output contract

The output contract is the same in both calling modes: with structured output
enabled, RECIPE_SCHEMA is attached to the call; without it, a JSON skeleton built
from the same field table is embedded in the task text.
"""

import json
from typing import Optional

from src.models.models import (
    GenerationMode,
    GenerationRequest,
    ImageReferencePart,
    InlineImagePart,
    NormalizedImage,
    ParsedForm,
    TextPart,
)

# Allowed cuisine families
MIDDLE_EASTERN_CUISINES = (
    "Syrian",
    "Lebanese",
    "Iraqi",
    "Palestinian",
    "Egyptian",
    "Jordanian",
    "Saudi",
    "Yemeni",
    "Gulf",
)
WESTERN_FAST_FOOD = ("Burgers", "Pizza", "Crispy Chicken", "Pasta", "Sandwiches")
FORBIDDEN_CUISINES = ("Korean", "Japanese", "Chinese", "Thai", "Vietnamese", "Turkish")

# (dish, regions, one-line description) used as in-context guidance
FEW_SHOT_EXAMPLES = (
    ("Maqluba", "Palestine/Syria/Lebanon", "Rice with chicken/meat, eggplant, cauliflower."),
    ("Kibbeh", "Syria/Lebanon/Iraq", "Bulgur balls stuffed with meat and pine nuts."),
    ("Freekeh", "Syria/Palestine/Jordan", "Green wheat with meat/chicken."),
    ("Mandi", "Yemen/Saudi", "Rice with smoked meat/chicken."),
    ("Kabsa", "Saudi/Gulf", "Long rice with meat/chicken and spices."),
)

LANGUAGE_NAMES = {"ar": "Arabic", "en": "English"}

# (field, type, description, required)
RECIPE_FIELDS = (
    ("recipeName", "string", "Name of the recipe", True),
    ("origin", "string", "Country or region of origin", True),
    ("cuisineType", "string", "Middle Eastern or Western Fast Food", True),
    ("prepTime", "string", "Preparation time", True),
    ("cookTime", "string", "Cooking time", True),
    ("difficulty", "string", "Easy, Medium, or Hard", True),
    ("ingredients", "array", "List of ingredients with quantities", True),
    ("instructions", "array", "Step-by-step preparation steps", True),
    ("chefTips", "string", "Optional tips from the chef", False),
    (
        "detectedIngredients",
        "array",
        "Only for image analysis: list of ingredients detected in the image",
        False,
    ),
)


def _build_recipe_schema() -> dict:
    """Gemini response_schema descriptor (OpenAPI subset) for a Recipe."""
    properties = {}
    for name, field_type, description, _ in RECIPE_FIELDS:
        if field_type == "array":
            properties[name] = {"type": "ARRAY", "items": {"type": "STRING"}, "description": description}
        else:
            properties[name] = {"type": "STRING", "description": description}
    return {
        "type": "OBJECT",
        "properties": properties,
        "required": [name for name, _, _, required in RECIPE_FIELDS if required],
    }


RECIPE_SCHEMA = _build_recipe_schema()


def language_name(language: str) -> str:
    """Arabic for "ar", English for anything else."""
    return LANGUAGE_NAMES.get(language, "English")


def build_system_policy(language: str) -> str:
    """Generate the fixed domain policy for one request.

    Args:
        language: Request language code ("ar" or "en").

    Returns:
        str: Policy text with allow-list, deny-list, examples, language and JSON rules.
    """
    examples = "\n".join(
        f"   - {dish} ({regions}): {description}" for dish, regions, description in FEW_SHOT_EXAMPLES
    )
    return f"""
You are a professional chef specializing ONLY in Middle Eastern and Western Fast Food.
STRICT RULES:
1. ONLY provide recipes from these cuisines:
   - Middle Eastern: {", ".join(MIDDLE_EASTERN_CUISINES)}.
   - Western Fast Food: {", ".join(WESTERN_FAST_FOOD)}.
2. ABSOLUTELY FORBIDDEN: Any Asian cuisines ({", ".join(c for c in FORBIDDEN_CUISINES if c != "Turkish")}, etc.), Turkish cuisine, or any other cuisine not mentioned above.
3. If the user asks for a forbidden cuisine, politely refuse and explain that you only specialize in Middle Eastern and Western Fast Food.
4. Use these few-shot examples for quality:
{examples}
5. Always respond in {language_name(language)}.
6. Output MUST be valid JSON and nothing else: no markdown, no code fences, no commentary.
""".strip()


def build_json_skeleton(mode: GenerationMode) -> str:
    """Literal JSON skeleton of the output contract for free-text generation.

    detectedIngredients is only part of the skeleton in image mode.
    """
    skeleton = {}
    for name, field_type, description, _ in RECIPE_FIELDS:
        if name == "detectedIngredients" and mode != GenerationMode.ANALYZE_IMAGE:
            continue
        skeleton[name] = [description] if field_type == "array" else description
    return json.dumps(skeleton, indent=2, ensure_ascii=False)


def build_task_instruction(form: ParsedForm, mode: GenerationMode, structured_output: bool) -> str:
    """Per-request task text; the first part of every generation request."""
    language = language_name(form.language)

    if mode == GenerationMode.ANALYZE_IMAGE:
        task = (
            f"Analyze this image to detect the food ingredients that are visible in it. "
            f"Then, generate a {form.cuisine_type} recipe using these detected ingredients. "
            f"The response must be in {language}. "
            f"Include the detected ingredients in the 'detectedIngredients' field."
        )
    else:
        task = (
            f"Generate a {form.cuisine_type} recipe using these ingredients: "
            f"{', '.join(form.ingredients)}. "
            f"The response must be in {language}."
        )

    if structured_output:
        return task

    return (
        f"{task}\n\n"
        f"Return a valid JSON object with this exact structure "
        f"(required fields: {', '.join(RECIPE_SCHEMA['required'])}):\n"
        f"{build_json_skeleton(mode)}"
    )


def compose_generation_request(
    form: ParsedForm,
    structured_output: bool = True,
    image: Optional[NormalizedImage] = None,
    image_url: Optional[str] = None,
) -> GenerationRequest:
    """Build the GenerationRequest for one pipeline run.

    Args:
        form: Parsed request fields (language, cuisine, ingredients).
        structured_output: Attach RECIPE_SCHEMA (True) or embed a JSON skeleton (False).
        image: Normalized image to send inline (image mode, inline transport).
        image_url: Public image URL to send by reference (image mode, reference transport).

    Returns:
        GenerationRequest with the task text as first part and the image (if any) second.

    Raises:
        ValueError: If image mode is requested without an image, or both transports are given.
    """
    mode = form.mode
    if image is not None and image_url:
        raise ValueError("Pass either an inline image or an image URL, not both")
    if mode == GenerationMode.ANALYZE_IMAGE and image is None and not image_url:
        raise ValueError("Image mode requires an inline image or an image URL")

    parts = [TextPart(text=build_task_instruction(form, mode, structured_output))]
    if mode == GenerationMode.ANALYZE_IMAGE:
        if image is not None:
            parts.append(InlineImagePart(data=image.data, mime_type=image.mime_type))
        else:
            parts.append(ImageReferencePart(url=image_url))

    return GenerationRequest(
        system_policy=build_system_policy(form.language),
        response_schema=RECIPE_SCHEMA if structured_output else None,
        parts=parts,
    )
