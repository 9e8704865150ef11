"""
Per-model pricing for usage metering.

Prices are USD per 1K tokens. One usage unit is USD 0.001, and a charge is
always rounded up to whole units.
"""

import math
from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal

from knowdesk.settings import settings

USD_PER_UNIT = Decimal("0.001")

# Average tokens of one support exchange, used for estimates only.
AVG_INPUT_TOKENS_PER_MESSAGE = 150
AVG_OUTPUT_TOKENS_PER_MESSAGE = 300


@dataclass(frozen=True)
class ModelPrice:
    input: Decimal
    output: Decimal
    label: str
    provider: str


BASE_MODEL_COSTS: dict[str, ModelPrice] = {
    # Google
    "gemini-2.5-pro": ModelPrice(Decimal("0.00125"), Decimal("0.01"), "Gemini 2.5 Pro", "GOOGLE"),
    "gemini-2.5-flash": ModelPrice(Decimal("0.0003"), Decimal("0.0025"), "Gemini 2.5 Flash", "GOOGLE"),
    "gemini-2.5-flash-lite": ModelPrice(Decimal("0.0001"), Decimal("0.0004"), "Gemini 2.5 Flash Lite", "GOOGLE"),
    "gemini-1.5-pro": ModelPrice(Decimal("0.0035"), Decimal("0.0105"), "Gemini 1.5 Pro", "GOOGLE"),
    "gemini-1.5-flash": ModelPrice(Decimal("0.000075"), Decimal("0.0003"), "Gemini 1.5 Flash", "GOOGLE"),
    # OpenAI
    "gpt-4o": ModelPrice(Decimal("0.005"), Decimal("0.015"), "GPT-4o", "OPENAI"),
    "gpt-4o-mini": ModelPrice(Decimal("0.00015"), Decimal("0.0006"), "GPT-4o Mini", "OPENAI"),
    "gpt-4-turbo-preview": ModelPrice(Decimal("0.01"), Decimal("0.03"), "GPT-4 Turbo", "OPENAI"),
    # Anthropic
    "claude-3-opus": ModelPrice(Decimal("0.015"), Decimal("0.075"), "Claude 3 Opus", "ANTHROPIC"),
    "claude-3-sonnet": ModelPrice(Decimal("0.003"), Decimal("0.015"), "Claude 3 Sonnet", "ANTHROPIC"),
    "claude-3-haiku": ModelPrice(Decimal("0.00025"), Decimal("0.00125"), "Claude 3 Haiku", "ANTHROPIC"),
    # Mistral
    "mistral-large": ModelPrice(Decimal("0.004"), Decimal("0.012"), "Mistral Large", "MISTRAL"),
    "mistral-small": ModelPrice(Decimal("0.001"), Decimal("0.003"), "Mistral Small", "MISTRAL"),
}

# Unknown models are billed at the GPT-4o rate, never for free.
DEFAULT_MODEL = "gpt-4o"


def _with_markup(price: ModelPrice, markup_percent: int) -> ModelPrice:
    factor = 1 + Decimal(markup_percent) / 100
    return ModelPrice(price.input * factor, price.output * factor, price.label, price.provider)


MODEL_PRICING: dict[str, ModelPrice] = {
    model: _with_markup(price, settings.PRICING_MARKUP_PERCENT)
    for model, price in BASE_MODEL_COSTS.items()
}


def get_model_price(model: str) -> ModelPrice:
    return MODEL_PRICING.get(model, MODEL_PRICING[DEFAULT_MODEL])


def calculate_usd_cost(model: str, input_tokens: int, output_tokens: int) -> Decimal:
    price = get_model_price(model)
    return (Decimal(input_tokens) / 1000) * price.input + (
        Decimal(output_tokens) / 1000
    ) * price.output


def calculate_token_cost(model: str, input_tokens: int, output_tokens: int) -> int:
    """Usage units to charge for one model call, rounded up."""
    usd = calculate_usd_cost(model, input_tokens, output_tokens)
    return int((usd / USD_PER_UNIT).to_integral_value(rounding=ROUND_CEILING))


def estimated_cost_per_message(model: str) -> Decimal:
    return calculate_usd_cost(
        model, AVG_INPUT_TOKENS_PER_MESSAGE, AVG_OUTPUT_TOKENS_PER_MESSAGE
    )


def estimate_messages_remaining(balance: int, model: str) -> int:
    cost = estimated_cost_per_message(model)
    if cost <= 0:
        return 0
    return math.floor((Decimal(balance) * USD_PER_UNIT) / cost)


def estimate_units_per_message(model: str) -> int:
    return calculate_token_cost(
        model, AVG_INPUT_TOKENS_PER_MESSAGE, AVG_OUTPUT_TOKENS_PER_MESSAGE
    )
