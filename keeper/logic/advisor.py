"""
============================================================================
Accrual Keeper v1.0.0
Advisory Adapter - Untrusted Distribution Recommendations
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Ledger snapshot for the current tick
Side Effects: One outbound HTTP request per tick (when configured)

PURPOSE
-------
Asks an external language-model advisor how much to distribute this period.
The advisor has no credentials, no authority and no access to keys. Its
output is only ever a *proposal*: it is validated here and clamped by the
guardrail before anything is signed.

FAIL-SAFE BEHAVIOR
------------------
The advisory path never raises to the keeper loop. Every fault maps to the
deterministic fallback policy:
    - no API key configured         -> fallback (unconfigured)
    - network error                 -> fallback (transport)
    - hard timeout expired          -> fallback (timeout)
    - non-200 response              -> fallback (http_status)
    - body/text is not JSON         -> fallback (unparseable)
    - JSON does not match schema    -> fallback (schema)

FALLBACK POLICY (ordered, most severe first)
--------------------------------------------
    1. vault_balance < 2 * D                    -> HOLD (runway)
    2. window_distributed + D > max_per_window  -> HOLD (window cap)
    3. otherwise                                -> DISTRIBUTE min(D, max_per_period)

============================================================================
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from keeper.observability.metrics import record_advisory_fallback
from keeper.schemas.ledger_state import GlobalAccrualState
from keeper.schemas.recommendation import Recommendation, RecommendationAction

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_ADVISOR_URL = "https://api.x.ai/v1"
DEFAULT_ADVISOR_MODEL = "grok-2-latest"
DEFAULT_ADVISOR_TIMEOUT_SECONDS = 10.0

FALLBACK_UNCONFIGURED = "unconfigured"
FALLBACK_TRANSPORT = "transport"
FALLBACK_TIMEOUT = "timeout"
FALLBACK_HTTP_STATUS = "http_status"
FALLBACK_UNPARSEABLE = "unparseable"
FALLBACK_SCHEMA = "schema"

RUNWAY_MULTIPLIER = 2
FALLBACK_HOLD_CONFIDENCE = 1.0
FALLBACK_DISTRIBUTE_CONFIDENCE = 0.9


# =============================================================================
# PROMPT TEMPLATES
# =============================================================================

SYSTEM_PROMPT = """You are the treasury advisor for an on-ledger reward index. Your sole job is to recommend
how much to distribute to token holders this period from the reward vault.
Respond ONLY with a valid JSON object matching this exact schema (no markdown, no extra text):
{
  "action": "DISTRIBUTE" | "HOLD" | "PAUSE",
  "amount": <integer in minor units, 0 if HOLD/PAUSE>,
  "confidence": <number 0.0-1.0>,
  "reason": "<single sentence>"
}
Safety: never recommend above max_per_period. If vault_balance is low, recommend HOLD."""

USER_PROMPT_TEMPLATE = """Current state (all amounts in minor units):
- current_index: {current_index}
- vault_balance: {vault_balance}
- distributed_this_window: {distributed_this_window}
- max_per_period: {max_per_period}
- max_per_window: {max_per_window}
- last_update_ts: {last_update_ts}
Provide your distribution recommendation."""


# =============================================================================
# ADVISORY CONTEXT
# =============================================================================

@dataclass(frozen=True)
class AdvisoryContext:
    """
    Snapshot handed to the advisor and to the fallback policy.

    Reliability Level: SOVEREIGN TIER
    Side Effects: None (pure data container)
    """
    current_index: int
    vault_balance: int
    distributed_this_window: int
    max_per_period: int
    max_per_window: int
    last_update_ts: int

    @classmethod
    def from_state(cls, state: GlobalAccrualState, vault_balance: int) -> "AdvisoryContext":
        return cls(
            current_index=state.global_index,
            vault_balance=vault_balance,
            distributed_this_window=state.distributed_this_window,
            max_per_period=state.max_per_period,
            max_per_window=state.max_per_window,
            last_update_ts=state.last_update_ts,
        )

    def to_prompt(self) -> str:
        return USER_PROMPT_TEMPLATE.format(
            current_index=self.current_index,
            vault_balance=self.vault_balance,
            distributed_this_window=self.distributed_this_window,
            max_per_period=self.max_per_period,
            max_per_window=self.max_per_window,
            last_update_ts=self.last_update_ts,
        )


# =============================================================================
# FALLBACK POLICY
# =============================================================================

def build_fallback_recommendation(context: AdvisoryContext, default_amount: int) -> Recommendation:
    """
    Deterministic recommendation used whenever the advisor cannot be trusted.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: default_amount > 0
    Side Effects: None (pure; identical inputs give identical output)

    Args:
        context: Snapshot of ledger caps and vault balance
        default_amount: Configured default distribution D

    Returns:
        HOLD when runway or window budget is short, else DISTRIBUTE
    """
    # Hold if the vault cannot cover two more periods.
    if context.vault_balance < default_amount * RUNWAY_MULTIPLIER:
        return Recommendation(
            action=RecommendationAction.HOLD,
            amount=0,
            confidence=FALLBACK_HOLD_CONFIDENCE,
            reason="Vault balance is too low for safe distribution",
        )

    if context.distributed_this_window + default_amount > context.max_per_window:
        return Recommendation(
            action=RecommendationAction.HOLD,
            amount=0,
            confidence=FALLBACK_HOLD_CONFIDENCE,
            reason="Window distribution cap reached",
        )

    return Recommendation(
        action=RecommendationAction.DISTRIBUTE,
        amount=min(default_amount, context.max_per_period),
        confidence=FALLBACK_DISTRIBUTE_CONFIDENCE,
        reason="Default deterministic distribution strategy",
    )


# =============================================================================
# RECOMMENDATION VALIDATOR
# =============================================================================

class RecommendationValidator:
    """
    Strict boundary between the advisory payload and the keeper.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Anything (None, str, bytes, decoded JSON)
    Side Effects: Logs and counts every fallback

    validate() never raises. It returns either the parsed Recommendation,
    unchanged, or the fallback policy's output.
    """

    def __init__(self, default_amount: int) -> None:
        if default_amount <= 0:
            raise ValueError(f"default_amount must be positive, got: {default_amount}")
        self.default_amount = default_amount

    def fallback(self, context: AdvisoryContext, reason: str) -> Recommendation:
        record_advisory_fallback(reason)
        recommendation = build_fallback_recommendation(context, self.default_amount)
        logger.info(
            f"[ADVISOR] Using fallback recommendation | cause={reason} | "
            f"{recommendation.to_log()}"
        )
        return recommendation

    def validate(
        self,
        raw: Any,
        context: AdvisoryContext,
        failure_reason: str = FALLBACK_TRANSPORT,
    ) -> Recommendation:
        """
        Validate an advisory payload.

        Args:
            raw: None for a transport failure, str/bytes for response text,
                 or an already-decoded JSON value
            context: Snapshot for the fallback policy
            failure_reason: Fallback label used when raw is None

        Returns:
            Recommendation (parsed or fallback)
        """
        if raw is None:
            return self.fallback(context, failure_reason)

        payload = raw
        if isinstance(raw, (bytes, bytearray)):
            try:
                payload = raw.decode("utf-8")
            except UnicodeDecodeError:
                logger.warning("[ADVISOR] Advisory payload is not UTF-8")
                return self.fallback(context, FALLBACK_UNPARSEABLE)

        if isinstance(payload, str):
            try:
                payload = json.loads(payload.strip())
            except (ValueError, RecursionError):
                logger.warning(f"[ADVISOR] Advisory returned non-JSON: {payload[:200]!r}")
                return self.fallback(context, FALLBACK_UNPARSEABLE)

        if not isinstance(payload, dict):
            logger.warning(
                f"[ADVISOR] Advisory payload is not an object | type={type(payload).__name__}"
            )
            return self.fallback(context, FALLBACK_SCHEMA)

        try:
            recommendation = Recommendation.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                f"[ADVISOR] Advisory payload failed schema validation | "
                f"errors={e.error_count()}"
            )
            return self.fallback(context, FALLBACK_SCHEMA)

        logger.info(f"[ADVISOR] Recommendation accepted | {recommendation.to_log()}")
        return recommendation


# =============================================================================
# ADVISORY CLIENT
# =============================================================================

def extract_response_text(data: Any) -> Any:
    """
    Pull the model's text out of a chat-completion style response.

    Supports the messages shape (content[0].text) and the completions shape
    (choices[0].message.content). Any other body is handed to the validator
    as-is.
    """
    if not isinstance(data, dict):
        return data

    content = data.get("content")
    if isinstance(content, list) and content:
        first = content[0]
        if isinstance(first, dict) and isinstance(first.get("text"), str):
            return first["text"]

    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, dict):
            message = first.get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                return message["content"]

    return data


class AdvisoryClient:
    """
    HTTP client for the advisory model.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: api_key optional; absence forces fallback-only mode
    Side Effects: External HTTP request, bounded by a hard timeout

    The client never sees ledger credentials.
    """

    def __init__(
        self,
        validator: RecommendationValidator,
        api_key: Optional[str] = None,
        api_url: str = DEFAULT_ADVISOR_URL,
        model: str = DEFAULT_ADVISOR_MODEL,
        timeout_seconds: float = DEFAULT_ADVISOR_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.validator = validator
        self.api_key = api_key or None
        self.api_url = api_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._transport = transport

        logger.info(
            "AdvisoryClient initialized | model=%s | api_configured=%s | timeout=%ss",
            self.model,
            bool(self.api_key),
            self.timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return self.api_key is not None

    def _build_request(self, context: AdvisoryContext) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = [{"role": "user", "content": context.to_prompt()}]
        return {
            "model": self.model,
            "max_tokens": 256,
            "system": SYSTEM_PROMPT,
            "messages": messages,
        }

    async def _post(self, context: AdvisoryContext) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key or "",
        }
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds,
            transport=self._transport,
        ) as client:
            return await client.post(
                f"{self.api_url}/messages",
                headers=headers,
                json=self._build_request(context),
            )

    async def recommend(self, context: AdvisoryContext, correlation_id: Optional[str] = None) -> Recommendation:
        """
        Get this tick's recommendation. Never raises.

        Args:
            context: Ledger snapshot for the prompt and the fallback
            correlation_id: Audit trail identifier

        Returns:
            Validated advisory recommendation, or the fallback
        """
        if not self.is_configured:
            logger.info(
                f"[ADVISOR] ADVISOR_API_KEY not set - using default distribution strategy | "
                f"correlation_id={correlation_id}"
            )
            return self.validator.validate(None, context, failure_reason=FALLBACK_UNCONFIGURED)

        try:
            # httpx timeouts are per phase; wait_for bounds the whole call.
            response = await asyncio.wait_for(self._post(context), timeout=self.timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.error(
                f"[ADVISOR] Advisory request timed out after {self.timeout_seconds}s - "
                f"falling back | correlation_id={correlation_id}"
            )
            return self.validator.validate(None, context, failure_reason=FALLBACK_TIMEOUT)
        except httpx.HTTPError as e:
            logger.error(
                f"[ADVISOR] Advisory request failed: {str(e)[:200]} - falling back | "
                f"correlation_id={correlation_id}"
            )
            return self.validator.validate(None, context, failure_reason=FALLBACK_TRANSPORT)

        if response.status_code != 200:
            logger.error(
                f"[ADVISOR] Advisory returned {response.status_code}: {response.text[:200]} | "
                f"correlation_id={correlation_id}"
            )
            return self.validator.validate(None, context, failure_reason=FALLBACK_HTTP_STATUS)

        try:
            data = response.json()
        except ValueError:
            logger.warning(
                f"[ADVISOR] Advisory response body is not JSON | correlation_id={correlation_id}"
            )
            return self.validator.validate(None, context, failure_reason=FALLBACK_UNPARSEABLE)

        return self.validator.validate(extract_response_text(data), context)


__all__ = [
    "AdvisoryContext",
    "AdvisoryClient",
    "RecommendationValidator",
    "build_fallback_recommendation",
    "extract_response_text",
    "SYSTEM_PROMPT",
    "DEFAULT_ADVISOR_URL",
    "DEFAULT_ADVISOR_MODEL",
    "DEFAULT_ADVISOR_TIMEOUT_SECONDS",
    "FALLBACK_UNCONFIGURED",
    "FALLBACK_TRANSPORT",
    "FALLBACK_TIMEOUT",
    "FALLBACK_HTTP_STATUS",
    "FALLBACK_UNPARSEABLE",
    "FALLBACK_SCHEMA",
]
