"""Narrative/transaction generator and the schema for its responses.

The generator is an LLM asked to play the simulation engine: given the
current state and the player's action it returns a story, a lesson, the
journal entries for what happened and the next options. Its output is
untrusted. This module only checks the *shape* of the response; account
names and amounts are checked by the ledger validator before anything is
posted.
"""

import json
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from business_spark.clients import ClaudeClient, GeminiClient, OllamaClient
from business_spark.config import get_settings
from business_spark.errors import GeneratorError, TurnSchemaError
from business_spark.ledger.accounts import Account
from business_spark.ledger.entries import JournalEntry
from business_spark.state import BusinessState, NextOption, OpsUpdates, OptionType, TurnOutcome
from business_spark.statements import format_currency

logger = structlog.get_logger(__name__)

START_ACTION = "Open for Business ($1000 Capital)"

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# =============================================================================
# RESPONSE SCHEMA
# =============================================================================


class JournalEntryPayload(BaseModel):
    """One proposed posting, as sent by the generator."""

    model_config = ConfigDict(extra="ignore")

    debit_account: str
    credit_account: str
    amount: Decimal
    description: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def _reject_booleans(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("amount must be a number")
        return value


class OpsUpdatesPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    new_week_number: int | None = None
    inventory_mass_change_kg: float = 0.0
    machine_health_change: float = 0.0
    new_machines: list[str] = Field(default_factory=list)
    first_run_customers_change: int = 0
    repeat_customers_change: int = 0
    has_shopify: bool | None = None
    monthly_costs: Decimal | None = None


class NextOptionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    label: str
    type: OptionType = OptionType.OPERATIONAL
    estimated_cost_preview: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("type", mode="before")
    @classmethod
    def _default_unknown_type(cls, value: Any) -> Any:
        valid = {option.value for option in OptionType}
        if isinstance(value, str) and value.lower() in valid:
            return value.lower()
        return OptionType.OPERATIONAL


class TurnProposalPayload(BaseModel):
    """Top-level generator response."""

    model_config = ConfigDict(extra="ignore")

    narrative_outcome: str
    mentor_feedback: str = ""
    journal_entries: list[JournalEntryPayload]
    ops_updates: OpsUpdatesPayload = Field(default_factory=OpsUpdatesPayload)
    next_options: list[NextOptionPayload] = Field(default_factory=list)

    @field_validator("ops_updates", mode="before")
    @classmethod
    def _null_ops_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


def parse_turn_proposal(payload: Any, action: str = "") -> TurnOutcome:
    """Check a raw generator response and convert it into a TurnOutcome.

    Args:
        payload: Decoded JSON from the generator.
        action: The player action that produced it.

    Returns:
        TurnOutcome with unvalidated journal entries.

    Raises:
        TurnSchemaError: If the response is not an object, lacks a
            journal_entries array, or has wrongly typed fields.
    """
    if not isinstance(payload, Mapping):
        raise TurnSchemaError("Invalid response: expected a JSON object")
    if not isinstance(payload.get("journal_entries"), list):
        raise TurnSchemaError("Invalid response: Missing journal_entries")

    try:
        proposal = TurnProposalPayload.model_validate(dict(payload))
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise TurnSchemaError(f"Invalid response: {problems}", details=e.errors()) from e

    try:
        entries = tuple(
            JournalEntry(
                debit_account=entry.debit_account,
                credit_account=entry.credit_account,
                amount=entry.amount,
                description=entry.description,
            )
            for entry in proposal.journal_entries
        )
    except ValueError as e:
        raise TurnSchemaError(f"Invalid response: {e}") from e

    ops = proposal.ops_updates
    return TurnOutcome(
        narrative_outcome=proposal.narrative_outcome,
        mentor_feedback=proposal.mentor_feedback,
        journal_entries=entries,
        ops_updates=OpsUpdates(
            new_week_number=ops.new_week_number,
            inventory_mass_change_kg=ops.inventory_mass_change_kg,
            machine_health_change=ops.machine_health_change,
            new_machines=tuple(ops.new_machines),
            first_run_customers_change=ops.first_run_customers_change,
            repeat_customers_change=ops.repeat_customers_change,
            has_shopify=ops.has_shopify,
            monthly_costs=ops.monthly_costs,
        ),
        next_options=tuple(
            NextOption(
                id=option.id,
                label=option.label,
                type=option.type,
                estimated_cost_preview=option.estimated_cost_preview,
            )
            for option in proposal.next_options
        ),
        action=action,
    )


def extract_json(text: str) -> Any:
    """Decode a JSON response, tolerating markdown code fences.

    Raises:
        GeneratorError: If the text is not valid JSON.
    """
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise GeneratorError("Failed to parse (JSON)", details={"preview": cleaned[:200]}) from e


# =============================================================================
# PROMPTS
# =============================================================================


SYSTEM_PROMPT = f"""You are the Business Spark Engine, an expert forensic accountant and \
business simulation master.

GOAL: Teach the player accounting intuition (cash flow vs profit, balance sheets) through \
a simulation of a small 3D printing business.

RULES:
1. Time: each turn is one week.
2. Logic: events must be realistic. Machines break, clients pay late.
3. Accounting: return ONLY valid double-entry bookkeeping moves. Every entry debits one \
account and credits one account for the same positive amount.
4. Output: STRICT JSON. No markdown.

ACCOUNTS ALLOWED (use these exact names, nothing else):
{", ".join(account.value for account in Account)}

INSTRUCTIONS:
1. Analyze the player's action and the current state.
2. Decide how the week plays out.
3. "narrative_outcome": what happened (the story).
4. "journal_entries": the math.
   - Buying assets: Dr asset, Cr Cash (or Accounts Payable).
   - Selling: Dr Cash/Accounts Receivable, Cr Sales Revenue AND Dr COGS, Cr Inventory.
   - The first turn funds the business: Dr Cash, Cr Owner's Equity for the starting capital.
5. "mentor_feedback": the lesson. Explain clearly why cash and profit changed.
6. "ops_updates": non-monetary changes (inventory kg, machine health, customers).
7. "next_options": exactly 3 choices (one strategic, one operational, one crisis or admin).

REQUIRED JSON STRUCTURE (example):
{{
  "narrative_outcome": "You bought a high-speed nozzle...",
  "mentor_feedback": "Assets increased, cash decreased. No P&L impact yet.",
  "journal_entries": [
    {{"debit_account": "Equipment", "credit_account": "Cash", "amount": 500,
      "description": "Purchase of high-speed nozzle"}}
  ],
  "ops_updates": {{
    "new_week_number": 2,
    "inventory_mass_change_kg": 0,
    "machine_health_change": 10,
    "new_machines": [],
    "first_run_customers_change": 0,
    "repeat_customers_change": 0,
    "has_shopify": null,
    "monthly_costs": null
  }},
  "next_options": [
    {{"id": "opt_1", "label": "Buy filament", "type": "operational",
      "estimated_cost_preview": "$200"}}
  ]
}}"""


def build_turn_prompt(state: BusinessState, action: str) -> str:
    """Describe the current state and the player's action."""
    last = state.last_outcome
    machines = ", ".join(f"{m.name} ({m.health:.0f}%)" for m in state.machines) or "none"

    return f"""CURRENT STATE:
Week: {state.week}
Cash: {format_currency(state.cash)}
Inventory: {state.inventory_kg:g} kg
Machines: {machines}
First-run customers waiting: {state.customers_first_run_queue}
Active repeat customers: {state.active_repeat_customers}
Shopify store: {"yes" if state.has_shopify else "no"}
Monthly fixed costs: {format_currency(state.monthly_costs)}
Last turn: {last.narrative_outcome if last else "Start of Game"}

PLAYER ACTION:
"{action}"

Next week number: {state.week + 1}"""


# =============================================================================
# GENERATORS
# =============================================================================


class LLMClient(Protocol):
    """Any client exposing the shared ``generate`` interface."""

    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        json_response: bool = True,
    ) -> Any: ...


class TurnGenerator(Protocol):
    """Produces a raw turn proposal for the given state and action."""

    async def generate_turn(self, state: BusinessState, action: str) -> Any: ...


class LLMTurnGenerator:
    """Turn generator backed by an LLM client."""

    def __init__(self, client: LLMClient, system_prompt: str = SYSTEM_PROMPT):
        self._client = client
        self._system_prompt = system_prompt
        self._logger = logger.bind(component="turn_generator", client=type(client).__name__)

    async def generate_turn(self, state: BusinessState, action: str) -> Any:
        """Ask the LLM for the next turn and decode its JSON.

        Raises:
            GeneratorError: If the call fails or the response is not JSON.
        """
        prompt = build_turn_prompt(state, action)
        self._logger.info("requesting_turn", week=state.week, action=action[:100])

        try:
            response = await self._client.generate(
                system_prompt=self._system_prompt,
                messages=[{"role": "user", "content": prompt}],
                json_response=True,
            )
        except GeneratorError:
            raise
        except Exception as e:
            raise GeneratorError(f"Generator request failed: {e}") from e

        if getattr(response, "stop_reason", "") == "max_tokens":
            self._logger.warning("response_truncated")

        return extract_json(response.content)


def create_client(provider: str | None = None) -> LLMClient:
    """Build the LLM client for a provider name (defaults to settings)."""
    provider = provider or get_settings().llm_provider
    if provider == "gemini":
        return GeminiClient()
    if provider == "claude":
        return ClaudeClient()
    if provider == "ollama":
        return OllamaClient()
    raise ValueError(f"Unknown LLM provider: {provider}")


def create_generator(provider: str | None = None) -> LLMTurnGenerator:
    """Build an LLM-backed turn generator."""
    return LLMTurnGenerator(create_client(provider))
