"""Response generators: turn the analysis and gathered data into reply text."""

import json
import logging
from typing import Any, Dict, List, Optional

from ...schemas.conversation import IntentType, QueryAnalysis
from .base import field_argument, field_domain
from .llm import call_gemini_api

logger = logging.getLogger(__name__)

INTENT_REPLIES: Dict[str, str] = {
    IntentType.REGULATORY.value: (
        "Crypto regulation differs a lot between jurisdictions and changes often. "
        "Check the latest guidance from your local regulator before acting."
    ),
    IntentType.SECURITY.value: (
        "Keep keys offline where you can, verify contract addresses, and be wary of "
        "links or airdrops you did not ask for."
    ),
    IntentType.DEFI.value: (
        "DeFi yields come with smart contract, liquidity and impermanent-loss risks. "
        "Look at a protocol's audits and TVL history before depositing."
    ),
    IntentType.NEWS_EVENTS.value: "I don't have a live news feed, but I can look up current market data for any token.",
    IntentType.TECHNICAL.value: "Ask me about a specific protocol or token and I'll pull what I can.",
    IntentType.NEEDS_CONTEXT.value: "Which token do you mean? Try naming it, e.g. \"What's the price of ETH?\"",
}

DEFAULT_REPLY = "I can help with token prices, market caps, trading volume and trending coins. What would you like to know?"


def _format_number(value: Any) -> str:
    if not isinstance(value, (int, float)):
        return str(value)
    if abs(value) >= 1_000_000_000:
        return f"${value / 1_000_000_000:,.2f}B"
    if abs(value) >= 1_000_000:
        return f"${value / 1_000_000:,.2f}M"
    if abs(value) >= 1:
        return f"${value:,.2f}"
    return f"${value:.6f}"


def _describe_field(field: str, value: Any) -> str:
    domain = field_domain(field)
    token = (field_argument(field) or "").replace("-", " ").title()

    if domain == "price":
        return f"{token} is trading at {_format_number(value)}."
    if domain == "market_cap":
        return f"{token} market cap: {_format_number(value)}."
    if domain == "volume_24h":
        return f"{token} 24h volume: {_format_number(value)}."
    if domain == "change_24h" and isinstance(value, (int, float)):
        direction = "up" if value >= 0 else "down"
        return f"{token} is {direction} {abs(value):.2f}% over 24h."
    return f"{field}: {value}"


def _describe_trending(coins: List[Dict[str, Any]]) -> str:
    names = [
        f"{c.get('name')} ({str(c.get('symbol') or '').upper()})"
        for c in coins if c.get("name")
    ]
    return "Trending now: " + ", ".join(names) + "."


class TemplateResponseGenerator:
    """Builds replies from fixed templates; no network access."""

    async def generate(self, query: str, analysis: QueryAnalysis, data: Dict[str, Any]) -> str:
        return self.render(analysis, data)

    def render(self, analysis: QueryAnalysis, data: Dict[str, Any]) -> str:
        lines: List[str] = []

        if isinstance(data.get("trending"), list) and data["trending"]:
            lines.append(_describe_trending(data["trending"]))

        for field in sorted(k for k in data if k != "trending"):
            lines.append(_describe_field(field, data[field]))

        missing = sorted(analysis.required_fields - data.keys()) if analysis.needs_api_call else []
        if missing:
            lines.append("Some data is unavailable right now: " + ", ".join(missing) + ".")

        if not lines:
            return INTENT_REPLIES.get(analysis.primary_intent, DEFAULT_REPLY)
        return " ".join(lines)


SYSTEM_PROMPT = """You are a concise cryptocurrency market assistant.
Answer the user's question using ONLY the market data provided. If data is
missing, say so plainly. Never invent prices. Do not give financial advice."""


class GeminiResponseGenerator:
    """LLM-written replies, falling back to templates when the LLM is unavailable."""

    def __init__(self, fallback: Optional[TemplateResponseGenerator] = None):
        self.fallback = fallback or TemplateResponseGenerator()

    async def generate(self, query: str, analysis: QueryAnalysis, data: Dict[str, Any]) -> str:
        prompt = (
            f"Question: {query}\n"
            f"Intent: {analysis.primary_intent}\n"
            f"Market data (JSON): {json.dumps(data, default=str)[:4000]}"
        )
        text = await call_gemini_api(prompt, system_instruction=SYSTEM_PROMPT, temperature=0.4)
        if text and text.strip():
            return text.strip()

        logger.info("[Responder] LLM reply unavailable, using template")
        return self.fallback.render(analysis, data)
