"""Health guidance for free-text symptom notes.

Emergency phrasing short-circuits to a fixed "seek care now" response before
any model is called. Otherwise the local LLM is asked for a JSON
summary/action/severity triple; anything it gets wrong falls back to canned
guidance chosen from the symptom severity and the current AQI.
"""

from __future__ import annotations

import json
import re
from typing import Optional

from atmowise.domain import GuidanceSeverity, HealthGuidance, PollutantReading, SensitivityProfile
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="guidance")

EMERGENCY_PATTERN = re.compile(
    r"(can't breathe|can’t breathe|cannot breathe|chest pain|chest tight|faint|fainting|passing out|pass out"
    r"|severe shortness|call 911|call emergency|difficulty breathing|choking)",
    re.IGNORECASE,
)

EMERGENCY_SUMMARY = "This may be an emergency situation."
EMERGENCY_ACTION = "Seek immediate medical attention or call emergency services (911)."

FALLBACK_RESPONSES = {
    GuidanceSeverity.LOW: (
        "Mild symptoms noted. It's good that you're tracking how you feel.",
        "Continue monitoring. Stay hydrated and rest as needed.",
    ),
    GuidanceSeverity.MODERATE: (
        "You're experiencing some discomfort that may be related to air quality.",
        "Consider limiting outdoor activities and using air purification if available.",
    ),
    GuidanceSeverity.HIGH: (
        "Your symptoms sound concerning and may need immediate attention.",
        "Seek immediate medical attention or call emergency services.",
    ),
}

DEFAULT_SYMPTOM_SEVERITY = 2

SYSTEM_PROMPT = """You are a concise, empathetic, safety-first health assistant. NEVER give medical diagnoses.
If the note indicates an emergency (e.g. "can't breathe", "chest pain"), respond with severity "high" and an
instruction to seek immediate medical attention.
Return only valid JSON with keys: summary, action, severity. severity is one of "low", "moderate", "high".
Keep responses brief (max 2 sentences each)."""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def is_emergency(note: str | None) -> bool:
    """True when the note contains emergency phrasing."""
    return bool(note) and EMERGENCY_PATTERN.search(note) is not None


def emergency_guidance() -> HealthGuidance:
    return HealthGuidance(
        summary=EMERGENCY_SUMMARY,
        action=EMERGENCY_ACTION,
        severity=GuidanceSeverity.HIGH,
        emergency=True,
        source="emergency",
    )


def fallback_guidance(
    note: str | None,
    *,
    symptom_severity: int = DEFAULT_SYMPTOM_SEVERITY,
    aqi: Optional[int] = None,
) -> HealthGuidance:
    """Deterministic guidance from symptom severity (1-5) and AQI."""
    if is_emergency(note):
        return emergency_guidance()
    aqi_value = aqi or 0
    if symptom_severity >= 4 or aqi_value > 200:
        level = GuidanceSeverity.HIGH
    elif symptom_severity >= 2 or aqi_value > 100:
        level = GuidanceSeverity.MODERATE
    else:
        level = GuidanceSeverity.LOW
    summary, action = FALLBACK_RESPONSES[level]
    return HealthGuidance(summary=summary, action=action, severity=level, source="fallback")


def _format_value(value) -> str:
    return "unknown" if value is None else str(value)


def build_guidance_messages(
    note: str,
    *,
    reading: Optional[PollutantReading] = None,
    profile: Optional[SensitivityProfile] = None,
) -> list[dict]:
    """Prepare system+user messages for the guidance prompt."""
    sensitivity = profile.model_dump(mode="json") if profile else {}
    user_msg = "\n".join([
        f"note={json.dumps(note)}",
        f"pm25={_format_value(reading.pm25 if reading else None)}",
        f"aqi={_format_value(reading.aqi if reading else None)}",
        f"sensitivity={json.dumps(sensitivity, sort_keys=True)}",
    ])
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_msg},
    ]


def parse_guidance_output(raw_text: str | None) -> Optional[dict]:
    """
    Extract {summary, action, severity} from model output.

    Accepts bare JSON or JSON embedded in surrounding prose/code fences.
    Returns None when the object is missing, malformed or incomplete.
    """
    if not raw_text:
        return None
    text = raw_text.strip()
    try:
        data = json.loads(text)
    except ValueError:
        match = _JSON_OBJECT.search(text)
        if not match:
            return None
        try:
            data = json.loads(match.group(0))
        except ValueError:
            return None
    if not isinstance(data, dict):
        return None

    summary = data.get("summary")
    action = data.get("action")
    severity = str(data.get("severity") or "").strip().lower()
    if not (isinstance(summary, str) and summary.strip() and isinstance(action, str) and action.strip()):
        return None
    if severity not in {s.value for s in GuidanceSeverity}:
        return None
    return {"summary": summary.strip(), "action": action.strip(), "severity": severity}


def build_guidance(
    note: str,
    *,
    reading: Optional[PollutantReading] = None,
    profile: Optional[SensitivityProfile] = None,
    symptom_severity: int = DEFAULT_SYMPTOM_SEVERITY,
    client=None,
    max_note_chars: int = 2000,
) -> HealthGuidance:
    """Return guidance for a note; never raises."""
    note = (note or "")[:max_note_chars]
    aqi = reading.aqi if reading else None

    if is_emergency(note):
        logger.info("Emergency phrasing detected; skipping model call")
        return emergency_guidance()

    if client is None:
        return fallback_guidance(note, symptom_severity=symptom_severity, aqi=aqi)

    try:
        raw = client.chat(build_guidance_messages(note, reading=reading, profile=profile))
    except Exception as exc:
        logger.warning("Guidance model call failed; using fallback: %s", exc)
        return fallback_guidance(note, symptom_severity=symptom_severity, aqi=aqi)

    parsed = parse_guidance_output(raw)
    if parsed is None:
        logger.warning("Guidance model returned unusable output; using fallback")
        return fallback_guidance(note, symptom_severity=symptom_severity, aqi=aqi)

    return HealthGuidance(
        summary=parsed["summary"],
        action=parsed["action"],
        severity=GuidanceSeverity(parsed["severity"]),
        source="llm",
    )
