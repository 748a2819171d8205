"""
Analyzer — one structured verdict per call.

Sends a single captured unit (label photo or ingredient text) to Claude and
returns an AnalysisResult. Exactly one request per call, no retries here:
the scan loop decides when to try again. Every failure leaves this module
as one of the AnalysisError subclasses in errors.py.
"""

import base64
import json
import logging
import re

import anthropic

from config import ANALYSIS_MODEL, MAX_OUTPUT_TOKENS, RADAR_DIMENSIONS
from errors import (
    AnalysisError,
    MissingCredential,
    NetworkFailure,
    ParseFailure,
    PermissionDenied,
    QuotaExceeded,
)
from models import AnalysisResult, ImageUnit, TextUnit

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = f"""
You are a consumer health co-pilot for packaged food.
Your goal is NOT to list ingredients but to INTERPRET them for the user's
PERSONA (if one is given) or for general health standards otherwise.

Given a photo of a food label or a text description:
1. Identify the product and its ingredients.
2. Classify it as veg, non-veg, vegan or unknown (gelatin, eggs, meat extract...).
3. Look for hidden sugars or sodium, ultra-processed additives (emulsifiers,
   preservatives), marketing claims the ingredients contradict, and genuine
   nutritional density.
4. Persona rules, applied strictly when a persona is given:
   - Diabetic: sugars, syrups, high-GI carbs are 'critical' and named in the summary.
   - Allergies: common allergens (nuts, soy, dairy, gluten) are 'critical'.
   - Muscle gain: quality protein is 'positive', added sugar is 'warning'.
   - Kids: artificial colors (Red 40 etc.) and preservatives are 'critical'.
5. Uncertainty: vague terms ("Spices", "Natural Flavors", "Edible Vegetable Oil",
   "Permitted Colors", "Seasoning") or a cut-off / blurry label set
   uncertainty.detected = true, with the reason and the worst case you assumed.
6. Villains: every problem ingredient you name in the summary or the
   trade-offs goes in 'villains' with the exact text you used as 'name' and a
   plain-language 'explanation'.
7. audioScript: a spoken verdict of at most 15 words, "[Verdict]. [Reason]."
8. shareContent: one short social post:
   "[Emoji] [Headline]! I just scanned [Product]. [One-sentence truth]. (Score: [healthScore]/100)"

Respond with ONLY a JSON object, no prose, with these fields:
  productName (string, optional), summary (string, max 2 sentences),
  audioScript (string), shareContent (string), healthScore (number 0-100),
  intentInference (string, optional), dietaryClassification ("veg" | "non-veg" | "vegan" | "unknown"),
  uncertainty {{detected: boolean, reason: string}},
  villains [{{name: string, explanation: string}}],
  tradeoffs {{pros: [string], cons: [string]}},
  insights [{{title, description, type: "positive" | "warning" | "critical" | "neutral", confidence: number 0-1}}] (3-5 items),
  radarData [{{subject, A: number 0-100, fullMark: 100}}] with exactly these 5 subjects in order: {", ".join(RADAR_DIMENSIONS)},
  reasoningTrace [string] (max 5 short steps).
"""


def encode_image(data: bytes) -> str:
    return base64.standard_b64encode(data).decode("utf-8")


def _persona_line(instruction: str | None) -> str:
    if not instruction:
        return ""
    return f"\n\nUSER PERSONA: {instruction} Adjust summary and insights specifically for this user profile."


def build_content(unit: ImageUnit | TextUnit, instruction: str | None) -> list[dict]:
    """Message content blocks for one unit, persona instruction appended if present."""
    if isinstance(unit, ImageUnit):
        return [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": unit.mime_type,
                    "data": encode_image(unit.data),
                },
            },
            {
                "type": "text",
                "text": (
                    "Analyze this food product label or image. Tell me what I'm eating."
                    f"{_persona_line(instruction)}\nRespond with the JSON object only."
                ),
            },
        ]
    if isinstance(unit, TextUnit):
        return [{
            "type": "text",
            "text": (
                f'Analyze this food product/ingredient list: "{unit.content}".'
                f"{_persona_line(instruction)}\nRespond with the JSON object only."
            ),
        }]
    raise TypeError(f"Unsupported unit: {type(unit).__name__}")


def _parse_json_response(text: str) -> dict:
    """Extract the JSON object from Claude's reply, tolerating markdown fences."""
    cleaned = re.sub(r"```(?:json)?\s*", "", text).strip()

    match = re.search(r"\{.*\}", cleaned, re.DOTALL)
    if not match:
        raise ParseFailure(f"No JSON object found in response: {text[:200]}")

    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ParseFailure(f"Response is not valid JSON: {e}") from e


def classify_error(e: anthropic.APIError) -> AnalysisError:
    """Map an SDK exception onto the error taxonomy. Order matters: subclasses first."""
    if isinstance(e, anthropic.RateLimitError):
        return QuotaExceeded(f"Rate limited or out of quota: {e}")
    if isinstance(e, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return PermissionDenied(f"API key rejected: {e}")
    if isinstance(e, anthropic.APIStatusError) and e.status_code == 429:
        return QuotaExceeded(f"Rate limited or out of quota: {e}")
    return NetworkFailure(f"{type(e).__name__}: {e}")


def response_text(response) -> str:
    """Concatenate the text blocks of a Messages API response."""
    return "".join(
        block.text for block in response.content
        if getattr(block, "type", None) == "text"
    )


async def analyze(
    unit: ImageUnit | TextUnit,
    instruction: str | None,
    credential: str | None,
    model: str = ANALYSIS_MODEL,
    client_factory=anthropic.AsyncAnthropic,
) -> AnalysisResult:
    """
    Run one analysis round trip.

    Raises MissingCredential before touching the network if `credential` is
    blank. `client_factory(api_key=...)` must return an object with an async
    `messages.create`; tests pass a fake here.
    """
    api_key = (credential or "").strip()
    if not api_key:
        raise MissingCredential()

    client = client_factory(api_key=api_key)
    kind = "image" if isinstance(unit, ImageUnit) else "text"
    logger.info("Analyzing %s unit with %s (persona: %s)", kind, model, "yes" if instruction else "none")

    try:
        response = await client.messages.create(
            model=model,
            max_tokens=MAX_OUTPUT_TOKENS,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": build_content(unit, instruction)}],
        )
    except anthropic.APIError as e:
        error = classify_error(e)
        logger.error("Analysis failed (%s): %s", error.kind.value, e)
        raise error from e

    if getattr(response, "stop_reason", None) == "max_tokens":
        raise ParseFailure("Response was cut off at the token limit")

    text = response_text(response)
    if not text.strip():
        raise ParseFailure("No response text from Claude")

    return AnalysisResult.from_dict(_parse_json_response(text))
