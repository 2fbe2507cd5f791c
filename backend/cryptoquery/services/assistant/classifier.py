"""Intent classifiers.

KeywordIntentClassifier works offline from simple keyword rules.
GeminiIntentClassifier asks the LLM for a structured analysis and falls back
to the keyword rules when the LLM is unavailable or returns junk.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Set

from ...schemas.conversation import ConversationContext, IntentType, QueryAnalysis, RiskTolerance
from .llm import call_gemini_api, parse_json_response

logger = logging.getLogger(__name__)

MAX_TOKENS_PER_QUERY = 5

# Symbol or name -> CoinGecko id
TOKEN_ALIASES: Dict[str, str] = {
    "btc": "bitcoin", "bitcoin": "bitcoin",
    "eth": "ethereum", "ethereum": "ethereum", "ether": "ethereum",
    "sol": "solana", "solana": "solana",
    "doge": "dogecoin", "dogecoin": "dogecoin",
    "ada": "cardano", "cardano": "cardano",
    "bnb": "binancecoin",
    "xrp": "ripple", "ripple": "ripple",
    "dot": "polkadot", "polkadot": "polkadot",
    "matic": "matic-network", "polygon": "matic-network",
    "avax": "avalanche-2", "avalanche": "avalanche-2",
    "link": "chainlink", "chainlink": "chainlink",
    "uni": "uniswap", "uniswap": "uniswap",
    "atom": "cosmos", "cosmos": "cosmos",
    "ltc": "litecoin", "litecoin": "litecoin",
    "luna": "terra-luna-2", "lunc": "terra-luna",
}

# Symbols that are also ordinary English words only count when written in caps
CASE_SENSITIVE_SYMBOLS = {"sol", "dot", "link", "uni", "atom"}

METRIC_KEYWORDS: Dict[str, List[str]] = {
    "price": ["price", "worth", "cost", "value", "trading at", "how much"],
    "market_cap": ["market cap", "marketcap", "mcap", "capitalization"],
    "volume_24h": ["volume", "traded"],
    "change_24h": ["change", "performance", "performed", "up or down", "24h", "today", "gain", "loss"],
}

INTENT_KEYWORDS: Dict[IntentType, List[str]] = {
    IntentType.TRENDING: ["trending", "hot coins", "top gainers", "what's hot", "popular"],
    IntentType.COMPARISON: ["compare", " vs ", "versus", "better than", "difference between"],
    IntentType.REGULATORY: ["regulat", "legal", " sec ", "compliance", " law", " ban ", "banned", " tax"],
    IntentType.SECURITY: ["hack", "exploit", "scam", "audit", "secure", "security", "phishing"],
    IntentType.DEFI: ["defi", "yield", "liquidity", "tvl", "staking", "lending", "farm"],
    IntentType.NEWS_EVENTS: ["news", "latest", "announcement", "update on", "happened"],
    IntentType.TECHNICAL: ["smart contract", "consensus", "erc20", "erc-20", "protocol", "layer 2", "rollup"],
}

RISK_KEYWORDS: Dict[RiskTolerance, List[str]] = {
    RiskTolerance.HIGH: ["high risk", "risky", "aggressive", "moonshot", "degen"],
    RiskTolerance.LOW: ["low risk", "safe", "stable", "conservative"],
    RiskTolerance.MEDIUM: ["moderate", "balanced", "medium risk"],
}

GOAL_KEYWORDS: Dict[str, List[str]] = {
    "long_term": ["long term", "long-term", "hodl", "retirement"],
    "short_term": ["short term", "short-term", "quick profit"],
    "growth": ["growth", "grow my"],
    "income": ["passive income", "income", "dividend"],
    "trading": ["day trade", "trading", "swing"],
}

FOLLOW_UP_WORDS = re.compile(r"\b(it|its|that|them|those|this one)\b", re.IGNORECASE)
WORD_RE = re.compile(r"[A-Za-z][A-Za-z0-9-]*")


def detect_tokens(query: str) -> List[str]:
    """CoinGecko ids mentioned in the query, in order of first mention."""
    found: List[str] = []
    for word in WORD_RE.findall(query):
        lowered = word.lower()
        coin_id = TOKEN_ALIASES.get(lowered)
        if coin_id is None:
            continue
        if lowered in CASE_SENSITIVE_SYMBOLS and word != word.upper():
            continue
        if coin_id not in found:
            found.append(coin_id)
        if len(found) >= MAX_TOKENS_PER_QUERY:
            break
    return found


def _matches(text: str, keywords: Iterable[str]) -> bool:
    return any(k in text for k in keywords)


def detect_metrics(query: str) -> List[str]:
    text = f" {query.lower()} "
    return [metric for metric, words in METRIC_KEYWORDS.items() if _matches(text, words)]


def build_required_fields(intent: str, tokens: List[str], metrics: List[str]) -> Set[str]:
    """Field keys a query needs, given its intent, tokens and metrics."""
    if intent == IntentType.TRENDING.value:
        return {"trending"}

    if intent == IntentType.COMPARISON.value and tokens:
        metrics = metrics or ["price", "market_cap", "change_24h"]
    elif intent == IntentType.MARKET_DATA.value and tokens:
        metrics = metrics or ["price"]
    else:
        return set()

    return {f"{metric}:{token}" for metric in metrics for token in tokens}


def _tokens_from_context(context: Optional[ConversationContext]) -> List[str]:
    """Tokens of the topic currently being discussed, for follow-up queries."""
    if context is None or not context.current_topic:
        return []
    for topic in context.memory.topics:
        if topic.name == context.current_topic:
            return sorted(topic.related_tokens)[:MAX_TOKENS_PER_QUERY]
    return []


def _string_list(value: Any) -> List[str]:
    """Non-empty strings from an LLM list field; anything else yields nothing."""
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


class KeywordIntentClassifier:
    """Rule-based classifier; no network access."""

    async def classify(self, query: str, context: ConversationContext) -> QueryAnalysis:
        return self.analyze(query, context)

    def analyze(self, query: str, context: Optional[ConversationContext] = None) -> QueryAnalysis:
        text = f" {query.lower()} "
        tokens = detect_tokens(query)
        metrics = detect_metrics(query)

        if not tokens and FOLLOW_UP_WORDS.search(query):
            tokens = _tokens_from_context(context)

        intent, confidence = self._pick_intent(text, tokens, metrics)
        required_fields = build_required_fields(intent.value, tokens, metrics)

        risk = next((level for level, words in RISK_KEYWORDS.items() if _matches(text, words)), None)
        goals = [goal for goal, words in GOAL_KEYWORDS.items() if _matches(text, words)]

        return QueryAnalysis(
            query=query,
            primary_intent=intent.value,
            confidence=confidence,
            needs_api_call=bool(required_fields),
            required_fields=required_fields,
            detected_tokens=tokens,
            risk_tolerance=risk,
            investment_goals=goals,
        )

    def _pick_intent(self, text: str, tokens: List[str], metrics: List[str]):
        if _matches(text, INTENT_KEYWORDS[IntentType.TRENDING]):
            return IntentType.TRENDING, 0.9
        if len(tokens) >= 2 and _matches(text, INTENT_KEYWORDS[IntentType.COMPARISON]):
            return IntentType.COMPARISON, 0.9
        if tokens and metrics:
            return IntentType.MARKET_DATA, 0.9

        for intent in (
            IntentType.REGULATORY,
            IntentType.SECURITY,
            IntentType.DEFI,
            IntentType.NEWS_EVENTS,
            IntentType.TECHNICAL,
        ):
            if _matches(text, INTENT_KEYWORDS[intent]):
                return intent, 0.7

        if tokens:
            return IntentType.MARKET_DATA, 0.6
        if metrics:
            return IntentType.NEEDS_CONTEXT, 0.4
        return IntentType.CONCEPTUAL, 0.5


ANALYSIS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "primary_intent": {"type": "string", "enum": [i.value for i in IntentType]},
        "confidence": {"type": "number"},
        "tokens": {"type": "array", "items": {"type": "string"}},
        "metrics": {
            "type": "array",
            "items": {"type": "string", "enum": list(METRIC_KEYWORDS.keys())},
        },
        "risk_tolerance": {"type": "string", "enum": [r.value for r in RiskTolerance], "nullable": True},
        "investment_goals": {"type": "array", "items": {"type": "string", "enum": list(GOAL_KEYWORDS.keys())}},
    },
    "required": ["primary_intent", "confidence", "tokens", "metrics"],
}

SYSTEM_PROMPT = """You classify cryptocurrency questions.
Return the primary intent, your confidence (0-1), the CoinGecko ids of any
tokens mentioned (at most 5, e.g. "bitcoin", "ethereum"), which market
metrics are asked for, and any risk tolerance or investment goals the user
reveals. Use TRENDING for trending-coin questions and COMPARISON when two
or more tokens are compared."""


class GeminiIntentClassifier:
    """LLM-backed classifier with keyword fallback."""

    def __init__(self, fallback: Optional[KeywordIntentClassifier] = None):
        self.fallback = fallback or KeywordIntentClassifier()

    async def classify(self, query: str, context: ConversationContext) -> QueryAnalysis:
        history = "\n".join(
            f"User: {m.query[:200]}\nAssistant: {m.response[:200]}"
            for m in context.recent_messages
        ) or "No previous conversation."

        prompt = f"Conversation so far:\n{history}\n\nNew question: {query}"
        raw = await call_gemini_api(
            prompt,
            system_instruction=SYSTEM_PROMPT,
            response_schema=ANALYSIS_SCHEMA,
            temperature=0.0,
        )
        parsed = parse_json_response(raw)
        if parsed is None:
            logger.info("[Classifier] LLM analysis unavailable, using keyword rules")
            return self.fallback.analyze(query, context)

        return self._to_analysis(query, parsed, context)

    def _to_analysis(self, query: str, parsed: Dict[str, Any], context: ConversationContext) -> QueryAnalysis:
        intent = parsed.get("primary_intent")
        if not isinstance(intent, str) or intent not in {i.value for i in IntentType}:
            intent = IntentType.CONCEPTUAL.value

        tokens: List[str] = []
        for name in _string_list(parsed.get("tokens")):
            coin_id = TOKEN_ALIASES.get(name.lower(), name.lower())
            if coin_id not in tokens:
                tokens.append(coin_id)
        tokens = tokens[:MAX_TOKENS_PER_QUERY]
        if not tokens and FOLLOW_UP_WORDS.search(query):
            tokens = _tokens_from_context(context)

        metrics = [m for m in _string_list(parsed.get("metrics")) if m in METRIC_KEYWORDS]
        required_fields = build_required_fields(intent, tokens, metrics)

        risk = parsed.get("risk_tolerance")
        if not isinstance(risk, str):
            risk = None
        goals = [g for g in _string_list(parsed.get("investment_goals")) if g in GOAL_KEYWORDS]

        try:
            confidence = min(max(float(parsed.get("confidence", 0.5)), 0.0), 1.0)
        except (TypeError, ValueError):
            confidence = 0.5

        return QueryAnalysis(
            query=query,
            primary_intent=intent,
            confidence=confidence,
            needs_api_call=bool(required_fields),
            required_fields=required_fields,
            detected_tokens=tokens,
            risk_tolerance=risk if risk in {r.value for r in RiskTolerance} else None,
            investment_goals=goals,
        )
