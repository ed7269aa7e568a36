"""Gemini API: threat scan, duplicate review, situational analysis prompts."""
import asyncio
import logging
from typing import Any

from safetymap.config import settings

logger = logging.getLogger(__name__)

_client = None


def _get_client():
    global _client
    if _client is None and settings.gemini_api_key:
        try:
            import google.generativeai as genai

            genai.configure(api_key=settings.gemini_api_key)
            _client = genai.GenerativeModel(settings.gemini_model)
        except Exception as e:
            logger.warning("Gemini client init failed: %s", e)
    return _client


def is_available() -> bool:
    return _get_client() is not None


def _search_tools() -> list[Any]:
    """Google Search grounding tool for the threat scan."""
    import google.generativeai as genai

    return [genai.protos.Tool(google_search=genai.protos.Tool.GoogleSearch())]


THREAT_SCAN_PROMPT = """Act as an automated intelligence gathering agent for Nigeria.
Search for the latest security incidents (last 14 days) in Nigeria, specifically:
- Kidnappings / Abductions
- Bandit attacks
- Boko Haram / ISWAP activity
- Communal clashes

Use sources like Pulse Nigeria, Vanguard, Premium Times, Daily Post, and verified Twitter reports.

Return a STRICT JSON array of objects. Do not use markdown.
Each object must have:
{
  "title": "Short headline (e.g. 'Abduction in Kajuru')",
  "description": "2-sentence summary.",
  "type": "SUSPECTED_KIDNAPPING" or "BOKO_HARAM_ACTIVITY" or "EVENT_GATHERING" or "MILITARY_CHECKPOINT",
  "lat": number (approximate latitude of the town/LGA),
  "lng": number (approximate longitude of the town/LGA),
  "abductedCount": number (estimate, use 0 if not applicable),
  "confidence": "High" or "Medium" or "Low",
  "radius": number (impact radius in meters),
  "severity": "high" or "critical",
  "date": "YYYY-MM-DD" (date of the incident),
  "sourceUrl": "URL string to the news source"
}"""

DUPLICATE_REVIEW_PROMPT = """You are the data-quality reviewer for SafetyMap Africa.
Below is a JSON list of incident reports. Identify reports that describe the SAME real-world incident as another report in the list
(same event, place and date, even if worded differently). For each group of duplicates keep the most detailed report and list the ids of the others.
Respond ONLY with a JSON array of id strings to delete, e.g. ["id1", "id2"]. Respond [] if there are no duplicates. No preamble."""

SITUATION_ANALYST_PROMPT = """You are a tactical security analyst for SafetyMap Africa.
Based on the report data provided and your general knowledge of the region (Nigeria/Africa), provide a concise, tactical response.
If the user asks about safety, reference specific nearby markers if relevant.
Keep the tone professional, alert, and objective."""


async def generate(
    prompt: str,
    temperature: float = 0.4,
    max_output_tokens: int | None = None,
    grounded: bool = False,
) -> str | None:
    """
    Run one generation, with Google Search grounding if `grounded`.
    Raises RuntimeError when Gemini is not configured.
    """
    model = _get_client()
    if not model:
        raise RuntimeError("Gemini not configured")

    config: dict[str, Any] = {"temperature": temperature}
    if max_output_tokens:
        config["max_output_tokens"] = max_output_tokens

    kwargs: dict[str, Any] = {"generation_config": config}
    if grounded:
        kwargs["tools"] = _search_tools()

    def _sync_gen() -> str | None:
        resp = model.generate_content(prompt, **kwargs)
        if resp and resp.text:
            return resp.text
        return None

    # SDK is sync
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _sync_gen)
