"""GROQ API integration - fast LLM inference for duplicate review and analysis."""
import logging

from safetymap.config import settings

logger = logging.getLogger(__name__)

_client = None


def _get_client():
    """Initialize GROQ client (lazy singleton)."""
    global _client
    if _client is None and settings.groq_api_key:
        try:
            from groq import Groq
            _client = Groq(api_key=settings.groq_api_key)
            logger.info("GROQ client initialized successfully")
        except Exception as e:
            logger.warning(f"GROQ client initialization failed: {e}")
    return _client


def is_available() -> bool:
    """Check if GROQ client is available."""
    return _get_client() is not None


async def complete(
    prompt: str,
    system: str = "You are a security intelligence analyst for West Africa.",
    temperature: float = 0.2,
    max_tokens: int = 2000,
) -> str:
    """Single chat completion. Raises on any client or API failure."""
    client = _get_client()
    if not client:
        raise RuntimeError("GROQ not configured")

    response = client.chat.completions.create(
        model=settings.groq_model,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
        temperature=temperature,
        max_tokens=max_tokens,
    )
    content = response.choices[0].message.content or ""
    logger.info(f"GROQ completion succeeded: {len(content)} chars")
    return content
