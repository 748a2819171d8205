"""
label-scanner MCP server.

Exposes tools to any MCP client (Claude Desktop, IDE agents, etc.):
  analyze_image(path, persona_id, sub_option_id)  — verdict for one label photo
  analyze_text(text, persona_id, sub_option_id)   — verdict for an ingredient list
  highlight(text, villains)                       — villain spans for any text
  ask_copilot(question, result)                   — follow-up about a verdict
  list_personas()                                 — personas and sub-options

Client config:
    {
      "mcpServers": {
        "label-scanner": {
          "command": "python",
          "args": ["/path/to/label-scanner/server.py"],
          "env": { "ANTHROPIC_API_KEY": "sk-ant-..." }
        }
      }
    }

stdout is the MCP transport, so this module only logs (to stderr).
"""

import json
import logging
import os
import sys
from pathlib import Path

# Add project dir to path so imports work when run directly
_HERE = Path(__file__).parent
sys.path.insert(0, str(_HERE))

from dotenv import load_dotenv
load_dotenv(_HERE / ".env")

from mcp.server.fastmcp import FastMCP
from PIL import Image, UnidentifiedImageError

from analyzer import analyze
from capture import prepare_frame
from copilot import ask
from errors import AnalysisError
from highlighter import Match, match_terms
from models import AnalysisResult, ImageUnit, TextUnit, Villain
from personas import describe_catalog, resolve_instruction

logger = logging.getLogger("label-scanner.server")

mcp = FastMCP("label-scanner")


def _credential() -> str:
    return os.environ.get("ANTHROPIC_API_KEY", "")


def _error_payload(e: AnalysisError) -> str:
    return json.dumps({
        "status": "error",
        "kind": e.kind.value,
        "message": str(e),
        "needs_credentials": e.needs_credentials,
    })


def _success_payload(result: AnalysisResult, instruction: str | None) -> str:
    return json.dumps({
        "status": "success",
        "persona_applied": instruction is not None,
        "result": result.to_dict(),
    })


@mcp.tool()
async def analyze_image(path: str, persona_id: str = "", sub_option_id: str = "") -> str:
    """
    Analyze a photo of a food label and return a structured health verdict:
    summary, spoken script, share text, 0-100 score, dietary class,
    uncertainty, pros/cons, insights, 5-axis radar and flagged "villain"
    ingredients.

    persona_id / sub_option_id (see list_personas) tailor the verdict,
    e.g. "diabetic" / "type2". Leave empty for a general verdict.
    """
    try:
        with Image.open(Path(path).expanduser()) as img:
            img.load()
            unit = ImageUnit(prepare_frame(img), "image/jpeg")
    except (FileNotFoundError, UnidentifiedImageError) as e:
        logger.warning("Cannot read image %s: %s", path, e)
        return json.dumps({"status": "error", "kind": "bad_input", "message": str(e)})

    instruction = resolve_instruction(persona_id or None, sub_option_id or None)
    try:
        result = await analyze(unit, instruction, _credential())
    except AnalysisError as e:
        return _error_payload(e)
    return _success_payload(result, instruction)


@mcp.tool()
async def analyze_text(text: str, persona_id: str = "", sub_option_id: str = "") -> str:
    """
    Analyze a product name or pasted ingredient list. Same output as
    analyze_image.
    """
    if not text.strip():
        return json.dumps({"status": "error", "kind": "bad_input", "message": "Empty text"})

    instruction = resolve_instruction(persona_id or None, sub_option_id or None)
    try:
        result = await analyze(TextUnit(text.strip()), instruction, _credential())
    except AnalysisError as e:
        return _error_payload(e)
    return _success_payload(result, instruction)


@mcp.tool()
def highlight(text: str, villains: list[dict]) -> str:
    """
    Split `text` into plain and highlighted spans for the given villains
    ([{"name": ..., "explanation": ...}]). Case-insensitive, longest name wins.

    Returns: [{"text": str, "villain": {"name", "explanation"} | null}, ...]
    """
    terms = [Villain(str(v.get("name", "")), str(v.get("explanation", ""))) for v in villains]
    spans = match_terms(text, terms)
    return json.dumps([
        {
            "text": span.text,
            "villain": (
                {"name": span.villain.name, "explanation": span.villain.explanation}
                if isinstance(span, Match) else None
            ),
        }
        for span in spans
    ])


@mcp.tool()
def ask_copilot(question: str, result: dict | None = None) -> str:
    """
    Ask a short follow-up question ("can my toddler eat this?") about a
    verdict previously returned by analyze_image / analyze_text (pass its
    "result" object).
    """
    try:
        parsed = AnalysisResult.from_dict(result) if result else None
        answer = ask([], question, parsed, _credential())
    except AnalysisError as e:
        return _error_payload(e)
    return json.dumps({"status": "success", "answer": answer})


@mcp.tool()
def list_personas() -> str:
    """List personas and sub-options usable with analyze_image / analyze_text."""
    return json.dumps(describe_catalog(), indent=2)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    mcp.run()
