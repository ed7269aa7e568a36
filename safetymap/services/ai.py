"""Unified AI layer: routes to GROQ or Gemini, with benign fallbacks."""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Sequence

from safetymap.models.report import Report
from safetymap.services import gemini, groq

logger = logging.getLogger(__name__)

DESCRIPTION_PREVIEW_CHARS = 150
COORD_DECIMALS = 3

ANALYSIS_UNAVAILABLE = "System Alert: AI Analysis currently unavailable due to network or API restrictions."


class ScanError(Exception):
    """The threat scan could not reach any AI provider."""


def _parse_json(text: str | None) -> Any:
    """Extract JSON from response, handling markdown code blocks. None if unparseable."""
    text = (text or "").strip()
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _date(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def project_for_review(reports: Sequence[Report]) -> list[dict[str, Any]]:
    """Bounded view of each report sent to the duplicate reviewer; never the full payload."""
    return [
        {
            "id": r.id,
            "title": r.title,
            "desc": r.description[:DESCRIPTION_PREVIEW_CHARS],
            "loc": [round(r.position.lat, COORD_DECIMALS), round(r.position.lng, COORD_DECIMALS)],
            "date": _date(r.timestamp),
            "source": r.source_url or "",
        }
        for r in reports
    ]


async def _complete(prompt: str, temperature: float, max_tokens: int = 2000) -> str | None:
    """GROQ first, then Gemini. None when neither answered."""
    if groq.is_available():
        try:
            logger.info("Routing completion to GROQ")
            return await groq.complete(prompt, temperature=temperature, max_tokens=max_tokens)
        except Exception as e:
            logger.warning(f"GROQ failed, falling back to Gemini: {e}")

    if gemini.is_available():
        try:
            return await gemini.generate(prompt, temperature=temperature, max_output_tokens=max_tokens)
        except Exception as e:
            logger.warning("Gemini completion failed: %s", e)
    return None


async def identify_duplicate_ids(reports: Sequence[Report]) -> list[str]:
    """
    Ids the reviewer judges to be duplicates of another report in `reports`.
    Malformed output, unknown ids or provider failure yield [] / are dropped.
    """
    if len(reports) < 2:
        return []
    payload = json.dumps(project_for_review(reports))
    text = await _complete(f"{gemini.DUPLICATE_REVIEW_PROMPT}\n\nReports:\n{payload}", temperature=0.1)
    parsed = _parse_json(text)
    if not isinstance(parsed, list):
        if text is not None:
            logger.warning("Duplicate review returned non-list output, ignoring")
        return []
    known = {r.id for r in reports}
    ids = []
    for item in parsed:
        if isinstance(item, str) and item in known and item not in ids:
            ids.append(item)
    return ids


async def scan_for_threats() -> list[dict[str, Any]]:
    """
    Recent incidents as loose candidate dicts (see THREAT_SCAN_PROMPT).
    Gemini with Google Search grounding only; GROQ is never used for scans.
    Unparseable output returns []; no Gemini or a failed call raises ScanError.
    """
    if not gemini.is_available():
        raise ScanError("Threat scan needs Gemini (GEMINI_API_KEY) for search grounding")
    try:
        text = await gemini.generate(gemini.THREAT_SCAN_PROMPT, temperature=0.1, grounded=True)
    except Exception as e:
        logger.error("Threat scan failed: %s", e)
        raise ScanError(str(e)) from e

    parsed = _parse_json((text or "").replace("```json", "```"))
    if not isinstance(parsed, list):
        logger.error("Failed to parse threat scan output: %.200s", text)
        return []
    return [item for item in parsed if isinstance(item, dict)]


async def analyze_situation(reports: Sequence[Report], user_query: str) -> str:
    """Tactical answer to a user question, grounded in the current reports."""
    context = [
        {
            "type": r.type.value,
            "title": r.title,
            "severity": r.severity.value,
            "abducted": r.abducted_count or 0,
            "location": f"{r.position.lat:.4f}, {r.position.lng:.4f}",
            "desc": r.description,
        }
        for r in reports
    ]
    prompt = (
        f"{gemini.SITUATION_ANALYST_PROMPT}\n\n"
        f"Current situational report data (JSON):\n{json.dumps(context)}\n\n"
        f'User Query: "{user_query}"'
    )
    text = await _complete(prompt, temperature=0.4, max_tokens=500)
    return text.strip() if text else ANALYSIS_UNAVAILABLE
