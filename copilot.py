"""
Co-pilot — answer follow-up questions about the current verdict.

The caller provides:
  - history: earlier turns, [{"role": "user" | "assistant", "text": str}, ...]
  - message: the new question
  - result: the AnalysisResult on screen, if any (injected as context)
  - credential: API key

Answers are short and conversational. Errors go through the same
classification as analysis calls.
"""

import json
import logging

import anthropic

from analyzer import classify_error, response_text
from config import COPILOT_MODEL
from errors import MissingCredential
from models import AnalysisResult

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = "I'm having trouble understanding that right now."


def build_system_prompt(result: AnalysisResult | None) -> str:
    sections = [
        "You are a helpful, empathetic food scientist co-pilot. "
        "Keep answers short, conversational, and direct."
    ]

    if result is not None:
        uncertainty = result.uncertainty.reason if result.uncertainty.detected else "None"
        sections.append(
            f"Context: User is looking at a product named {result.product_name or 'unknown'}.\n"
            f"Summary: {result.summary}\n"
            f"Dietary Type: {result.dietary_classification.value}\n"
            f"Uncertainty Detected: {uncertainty}\n"
            f"Villains/Bad Ingredients: {json.dumps([{'name': v.name, 'explanation': v.explanation} for v in result.villains])}\n"
            f"Trade-offs: Pros - {', '.join(result.tradeoffs.pros)}, Cons - {', '.join(result.tradeoffs.cons)}\n"
            f"Insights: {json.dumps([{'title': i.title, 'type': i.kind.value} for i in result.insights])}"
        )

    return "\n\n".join(sections)


def build_messages(history: list[dict], message: str) -> list[dict]:
    messages = [
        {"role": "assistant" if turn["role"] in ("assistant", "model") else "user", "content": turn["text"]}
        for turn in history
    ]
    messages.append({"role": "user", "content": message})
    return messages


def ask(
    history: list[dict],
    message: str,
    result: AnalysisResult | None,
    credential: str | None,
    model: str = COPILOT_MODEL,
    client_factory=anthropic.Anthropic,
) -> str:
    """Send the conversation to Claude and return the reply text."""
    api_key = (credential or "").strip()
    if not api_key:
        raise MissingCredential()

    client = client_factory(api_key=api_key)

    try:
        response = client.messages.create(
            model=model,
            max_tokens=1024,
            system=build_system_prompt(result),
            messages=build_messages(history, message),
        )
    except anthropic.APIError as e:
        error = classify_error(e)
        logger.error("Co-pilot call failed (%s): %s", error.kind.value, e)
        raise error from e

    return response_text(response).strip() or FALLBACK_ANSWER
