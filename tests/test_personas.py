from models import NO_CONTEXT
from personas import PERSONAS, Persona, SubOption, build_context, describe_catalog, resolve_instruction


def test_resolves_base_and_sub_option_with_delimiter():
    assert resolve_instruction("diabetic", "type2") == (
        "User is Diabetic. Scrutinize Sugar, High Fructose Corn Syrup, and Glycemic Index."
        " SPECIFIC CONTEXT: Focus on insulin spikes, weight management, and hidden sugars."
    )


def test_unset_or_unknown_ids_mean_no_context():
    assert resolve_instruction(None, "type2") is None
    assert resolve_instruction("diabetic", None) is None
    assert resolve_instruction("diabetic", "") is None
    assert resolve_instruction("astronaut", "type2") is None
    assert resolve_instruction("diabetic", "nuts") is None


def test_custom_catalog():
    catalog = {"vegan": Persona("Vegan", "No animal products.", {"strict": SubOption("Strict", "No honey.")})}

    assert resolve_instruction("vegan", "strict", catalog) == "No animal products. SPECIFIC CONTEXT: No honey."
    assert resolve_instruction("diabetic", "type2", catalog) is None


def test_build_context_is_a_value():
    a = build_context("kids", "toddler")
    b = build_context("kids", "toddler")

    assert a == b
    assert a.persona_id == "kids" and a.sub_option_id == "toddler"
    assert build_context("kids", "nope") == NO_CONTEXT
    assert build_context(None, None) == NO_CONTEXT


def test_catalog_listing_covers_every_sub_option():
    listing = describe_catalog()

    assert [p["persona_id"] for p in listing] == list(PERSONAS)
    allergies = next(p for p in listing if p["persona_id"] == "allergies")
    assert [s["id"] for s in allergies["sub_options"]] == ["gluten", "dairy", "nuts", "shellfish", "soy"]
