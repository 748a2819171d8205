"""
Persona catalog and context resolution.

A persona (e.g. "diabetic") plus one of its sub-options (e.g. "type2")
becomes an instruction fragment appended to the analysis prompt. Anything
unset or unknown resolves to no fragment — plain, unconditioned analysis.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from config import CONTEXT_DELIMITER
from models import NO_CONTEXT, PersonaContext


@dataclass(frozen=True)
class SubOption:
    label: str
    instruction: str


@dataclass(frozen=True)
class Persona:
    label: str
    base_instruction: str
    sub_options: Mapping[str, SubOption] = field(default_factory=dict)


PERSONAS: dict[str, Persona] = {
    "diabetic": Persona(
        label="🍬 Diabetic",
        base_instruction="User is Diabetic. Scrutinize Sugar, High Fructose Corn Syrup, and Glycemic Index.",
        sub_options={
            "type1": SubOption("Type 1 (Insulin Dependent)", "Strictly identify exact carb counts and fast-acting sugars."),
            "type2": SubOption("Type 2 (Insulin Resistant)", "Focus on insulin spikes, weight management, and hidden sugars."),
            "prediabetic": SubOption("Pre-diabetic", "Focus on prevention, low sugar, and whole grains."),
            "gestational": SubOption("Gestational", "Strict safety for pregnancy and blood sugar control."),
        },
    ),
    "allergies": Persona(
        label="🥜 Allergies",
        base_instruction="User has severe food allergies. FLAG WARNINGS AGGRESSIVELY.",
        sub_options={
            "gluten": SubOption("Gluten / Celiac", "Flag Wheat, Barley, Rye, Malt, and potential cross-contamination."),
            "dairy": SubOption("Dairy / Lactose", "Flag Milk, Whey, Casein, Cheese, and Butter."),
            "nuts": SubOption("Peanuts / Tree Nuts", "Flag Peanuts, Almonds, Walnuts, Cashews, and processing facilities."),
            "shellfish": SubOption("Shellfish", 'Flag Shrimp, Crab, Lobster, and vague "fish" ingredients.'),
            "soy": SubOption("Soy", "Flag Soy lecithin, Tofu, Edamame, and TVP."),
        },
    ),
    "muscle": Persona(
        label="💪 Muscle Gain",
        base_instruction="User is focused on fitness and bodybuilding.",
        sub_options={
            "bulking": SubOption("Bulking (Surplus)", "Focus on high calories, high protein, and carb quality for energy."),
            "cutting": SubOption("Cutting (Lean)", "Focus on high protein, low calorie, low fat, and satiety."),
            "maintenance": SubOption("Maintenance", "Focus on balanced macros and clean ingredients."),
        },
    ),
    "kids": Persona(
        label="👶 For Kids",
        base_instruction="User is a parent buying for a child. Strict on safety and chemicals.",
        sub_options={
            "toddler": SubOption("Toddler (1-3 yrs)", "Check for choking hazards, strict salt limits, and zero added sugar."),
            "school": SubOption("School Age (4-12 yrs)", "Check for hyperactivity triggers (Red 40, Yellow 5) and high sugar."),
            "teen": SubOption("Teen (13+)", "Focus on energy, acne triggers (dairy/grease), and growth nutrients."),
        },
    ),
}


def resolve_instruction(
    persona_id: str | None,
    sub_option_id: str | None,
    catalog: Mapping[str, Persona] = PERSONAS,
) -> str | None:
    """Return "<base> SPECIFIC CONTEXT: <sub-option>", or None if either id is unset/unknown."""
    if not persona_id or not sub_option_id:
        return None
    persona = catalog.get(persona_id)
    if persona is None:
        return None
    sub = persona.sub_options.get(sub_option_id)
    if sub is None:
        return None
    return f"{persona.base_instruction}{CONTEXT_DELIMITER}{sub.instruction}"


def build_context(
    persona_id: str | None,
    sub_option_id: str | None,
    catalog: Mapping[str, Persona] = PERSONAS,
) -> PersonaContext:
    instruction = resolve_instruction(persona_id, sub_option_id, catalog)
    if instruction is None:
        return NO_CONTEXT
    return PersonaContext(persona_id=persona_id, sub_option_id=sub_option_id, instruction=instruction)


def describe_catalog(catalog: Mapping[str, Persona] = PERSONAS) -> list[dict]:
    """Flat listing for CLI / MCP output."""
    return [
        {
            "persona_id": pid,
            "label": p.label,
            "sub_options": [{"id": sid, "label": s.label} for sid, s in p.sub_options.items()],
        }
        for pid, p in catalog.items()
    ]
