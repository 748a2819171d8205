"""
Data types passed between the scan loop, the API client and the renderers.

AnalysisResult mirrors the JSON contract the model is asked to produce
(camelCase on the wire, snake_case here). `AnalysisResult.from_dict` is the
only way a payload becomes a result: anything missing or mistyped raises
ParseFailure instead of yielding a partial object.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from config import RADAR_DIMENSIONS
from errors import ParseFailure

REQUIRED_FIELDS = (
    "summary",
    "audioScript",
    "shareContent",
    "healthScore",
    "insights",
    "radarData",
    "dietaryClassification",
    "tradeoffs",
    "uncertainty",
    "villains",
)


class DietaryClass(str, Enum):
    VEG = "veg"
    NON_VEG = "non-veg"
    VEGAN = "vegan"
    UNKNOWN = "unknown"


class InsightKind(str, Enum):
    POSITIVE = "positive"
    WARNING = "warning"
    CRITICAL = "critical"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class Villain:
    name: str
    explanation: str = ""


@dataclass(frozen=True)
class Insight:
    title: str
    description: str
    kind: InsightKind
    confidence: float = 0.0


@dataclass(frozen=True)
class RadarPoint:
    subject: str
    score: float
    full_mark: float = 100.0


@dataclass(frozen=True)
class Tradeoffs:
    pros: tuple[str, ...] = ()
    cons: tuple[str, ...] = ()


@dataclass(frozen=True)
class Uncertainty:
    detected: bool = False
    reason: str = ""


@dataclass(frozen=True)
class AnalysisResult:
    summary: str
    audio_script: str
    share_content: str
    health_score: float
    dietary_classification: DietaryClass
    uncertainty: Uncertainty
    tradeoffs: Tradeoffs
    insights: tuple[Insight, ...]
    radar: tuple[RadarPoint, ...]
    villains: tuple[Villain, ...]
    reasoning_trace: tuple[str, ...] = ()
    product_name: str | None = None
    intent_inference: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> AnalysisResult:
        if not isinstance(data, dict):
            raise ParseFailure(f"Expected a JSON object, got {type(data).__name__}")

        missing = [key for key in REQUIRED_FIELDS if key not in data]
        if missing:
            raise ParseFailure(f"Response is missing required fields: {', '.join(missing)}")

        score = _number(data["healthScore"], "healthScore")
        if not 0 <= score <= 100:
            raise ParseFailure(f"healthScore out of range 0-100: {score}")

        try:
            dietary = DietaryClass(data["dietaryClassification"])
        except ValueError:
            raise ParseFailure(f"Unknown dietaryClassification: {data['dietaryClassification']!r}")

        radar = tuple(_radar_point(item) for item in _list(data["radarData"], "radarData"))
        if len(radar) != len(RADAR_DIMENSIONS):
            raise ParseFailure(f"radarData must have exactly {len(RADAR_DIMENSIONS)} entries, got {len(radar)}")

        uncertainty = _object(data["uncertainty"], "uncertainty")
        tradeoffs = _object(data["tradeoffs"], "tradeoffs")

        return cls(
            summary=_string(data["summary"], "summary"),
            audio_script=_string(data["audioScript"], "audioScript"),
            share_content=_string(data["shareContent"], "shareContent"),
            health_score=score,
            dietary_classification=dietary,
            uncertainty=Uncertainty(
                detected=_boolean(uncertainty.get("detected"), "uncertainty.detected"),
                reason=_string(uncertainty.get("reason", ""), "uncertainty.reason"),
            ),
            tradeoffs=Tradeoffs(
                pros=_strings(tradeoffs.get("pros"), "tradeoffs.pros"),
                cons=_strings(tradeoffs.get("cons"), "tradeoffs.cons"),
            ),
            insights=tuple(_insight(item) for item in _list(data["insights"], "insights")),
            radar=radar,
            villains=tuple(_villain(item) for item in _list(data["villains"], "villains")),
            reasoning_trace=_strings(data.get("reasoningTrace", []), "reasoningTrace"),
            product_name=data.get("productName") or None,
            intent_inference=data.get("intentInference") or None,
        )

    def to_dict(self) -> dict:
        """Wire-format (camelCase) dict, the inverse of from_dict."""
        data = {
            "summary": self.summary,
            "audioScript": self.audio_script,
            "shareContent": self.share_content,
            "healthScore": self.health_score,
            "dietaryClassification": self.dietary_classification.value,
            "uncertainty": {"detected": self.uncertainty.detected, "reason": self.uncertainty.reason},
            "tradeoffs": {"pros": list(self.tradeoffs.pros), "cons": list(self.tradeoffs.cons)},
            "insights": [
                {"title": i.title, "description": i.description, "type": i.kind.value, "confidence": i.confidence}
                for i in self.insights
            ],
            "radarData": [{"subject": p.subject, "A": p.score, "fullMark": p.full_mark} for p in self.radar],
            "villains": [{"name": v.name, "explanation": v.explanation} for v in self.villains],
            "reasoningTrace": list(self.reasoning_trace),
        }
        if self.product_name:
            data["productName"] = self.product_name
        if self.intent_inference:
            data["intentInference"] = self.intent_inference
        return data


# ── Input units ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ImageUnit:
    data: bytes
    mime_type: str = "image/jpeg"


@dataclass(frozen=True)
class TextUnit:
    content: str


Unit = ImageUnit | TextUnit


@dataclass(frozen=True)
class PersonaContext:
    """The lens an analysis was requested under. Compared by value."""

    persona_id: str | None = None
    sub_option_id: str | None = None
    instruction: str | None = None


NO_CONTEXT = PersonaContext()


# ── Field validation ─────────────────────────────────────────────────────────

def _string(value, name: str) -> str:
    if not isinstance(value, str):
        raise ParseFailure(f"{name} must be a string")
    return value


def _number(value, name: str) -> float:
    # bool is an int subclass; a JSON true is not a score
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ParseFailure(f"{name} must be a number")
    return float(value)


def _boolean(value, name: str) -> bool:
    if not isinstance(value, bool):
        raise ParseFailure(f"{name} must be a boolean")
    return value


def _list(value, name: str) -> list:
    if not isinstance(value, list):
        raise ParseFailure(f"{name} must be an array")
    return value


def _object(value, name: str) -> dict:
    if not isinstance(value, dict):
        raise ParseFailure(f"{name} must be an object")
    return value


def _strings(value, name: str) -> tuple[str, ...]:
    return tuple(_string(item, f"{name}[]") for item in _list(value, name))


def _villain(item) -> Villain:
    item = _object(item, "villains[]")
    return Villain(
        name=_string(item.get("name"), "villains[].name"),
        explanation=_string(item.get("explanation", ""), "villains[].explanation"),
    )


def _insight(item) -> Insight:
    item = _object(item, "insights[]")
    try:
        kind = InsightKind(item.get("type"))
    except ValueError:
        raise ParseFailure(f"Unknown insight type: {item.get('type')!r}")
    confidence = item.get("confidence", 0.0)
    return Insight(
        title=_string(item.get("title"), "insights[].title"),
        description=_string(item.get("description"), "insights[].description"),
        kind=kind,
        confidence=_number(confidence, "insights[].confidence"),
    )


def _radar_point(item) -> RadarPoint:
    item = _object(item, "radarData[]")
    return RadarPoint(
        subject=_string(item.get("subject"), "radarData[].subject"),
        score=_number(item.get("A"), "radarData[].A"),
        full_mark=_number(item.get("fullMark", 100), "radarData[].fullMark"),
    )
