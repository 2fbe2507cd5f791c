"""Gemini LLM client shared by the LLM-backed classifier and responder."""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from ... import config

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


def llm_available() -> bool:
    return bool(config.GEMINI_API_KEY)


async def call_gemini_api(
    prompt: str,
    system_instruction: str = "",
    response_schema: Optional[Dict[str, Any]] = None,
    temperature: float = 0.7,
    timeout: float = 30.0,
) -> Optional[str]:
    """Call Gemini API for LLM tasks.

    Args:
        prompt: The prompt to send to the model
        system_instruction: Optional system instruction for the model
        response_schema: Optional JSON schema to enforce structured output
        temperature: Model temperature (0 = deterministic, 1 = creative)
        timeout: Request timeout in seconds

    Returns:
        Response text, or None if the key is missing or the call failed
    """
    if not config.GEMINI_API_KEY:
        logger.warning("[LLM] GEMINI_API_KEY not found in environment")
        return None

    generation_config: Dict[str, Any] = {
        "temperature": temperature,
        "maxOutputTokens": 2048,
    }

    # Enable JSON mode if schema is provided
    if response_schema:
        generation_config["responseMimeType"] = "application/json"
        generation_config["responseSchema"] = response_schema

    payload: Dict[str, Any] = {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": generation_config,
    }
    if system_instruction:
        payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

    url = GEMINI_URL.format(model=config.GEMINI_MODEL)

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, params={"key": config.GEMINI_API_KEY}, json=payload)
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as e:
        try:
            error_detail = e.response.json().get("error", {}).get("message", "")
        except Exception:
            error_detail = e.response.text[:200] if e.response.text else ""
        logger.error(f"[LLM] HTTP error: {e.response.status_code} - {error_detail}")
        return None
    except httpx.HTTPError as e:
        logger.error(f"[LLM] Request failed: {type(e).__name__}: {e}")
        return None
    except Exception as e:
        logger.exception(f"[LLM] Exception during API call: {e}")
        return None

    return _first_candidate_text(data)


def _first_candidate_text(data: Any) -> Optional[str]:
    """Text of the first candidate's first part, or None if the payload has another shape."""
    if not isinstance(data, dict):
        logger.warning("[LLM] Unexpected response payload")
        return None

    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return None

    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None

    text = parts[0].get("text")
    return text if isinstance(text, str) else None


def parse_json_response(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse a JSON-mode response, tolerating ```json fences."""
    if not text:
        return None

    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning(f"[LLM] Could not parse JSON response: {text[:100]}")
        return None

    return parsed if isinstance(parsed, dict) else None
