"""
Multi-provider LLM adapter
Dispatches chat completions to OpenAI (REST), Anthropic or Google Gemini
depending on the AI_PROVIDER setting.
"""

import logging
import os
from typing import Optional

import anthropic
import httpx
from google import genai
from google.genai import types as genai_types
from sqlalchemy.orm import Session

from ..config import OPENAI_API_URL
from .settings_service import get_settings

logger = logging.getLogger(__name__)

PROVIDER_KEY_SETTINGS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-20241022",
    "gemini": "gemini-1.5-flash",
}

VALID_ANTHROPIC_MODELS = [
    "claude-3-5-sonnet-20241022",
    "claude-3-5-sonnet-20240620",
    "claude-3-opus-20240229",
    "claude-3-sonnet-20240229",
    "claude-3-haiku-20240307",
]

SETTINGS_HINT = "Please check your API key in Settings → AI Providers."


class AIProviderError(Exception):
    """Configuration or vendor error with a user-facing message"""


def get_ai_config(db: Session) -> dict:
    """
    Provider, key and model: database settings first, then environment.

    Raises:
        AIProviderError: no API key for the selected provider
    """
    try:
        stored = get_settings(db, ["AI_PROVIDER", "AI_MODEL", *PROVIDER_KEY_SETTINGS.values()])
    except Exception as e:
        logger.warning(f"⚠️ Could not read AI settings from database, using environment: {e}")
        stored = {}

    provider = stored.get("AI_PROVIDER") or os.getenv("AI_PROVIDER") or "openai"
    model = stored.get("AI_MODEL") or os.getenv("AI_MODEL") or None

    key_name = PROVIDER_KEY_SETTINGS.get(provider)
    api_key = (stored.get(key_name) or os.getenv(key_name) or "") if key_name else ""
    if key_name and not api_key:
        raise AIProviderError(
            f"API key not configured for {provider}. Please add it in Settings → AI Providers."
        )

    return {"provider": provider, "apiKey": api_key, "model": model}


async def _call_openai(api_key: str, model: str, messages: list[dict], temperature: float, json_mode: bool) -> str:
    body = {"model": model, "messages": messages, "temperature": temperature}
    if json_mode:
        body["response_format"] = {"type": "json_object"}

    async with httpx.AsyncClient() as client:
        response = await client.post(
            OPENAI_API_URL,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json=body,
            timeout=60.0,
        )

    if response.status_code in (401, 403):
        raise AIProviderError(f"OpenAI API key is invalid or expired. {SETTINGS_HINT}")
    if response.status_code == 404:
        raise AIProviderError(
            f'Invalid OpenAI model: "{model}". Please check your model name in Settings → AI Providers. '
            "Common models: gpt-4o, gpt-4o-mini, gpt-4-turbo, gpt-3.5-turbo"
        )
    if not response.is_success:
        raise AIProviderError(f"OpenAI API returned status {response.status_code}: {response.text}")

    data = response.json()
    return data["choices"][0]["message"].get("content") or ""


async def _call_anthropic(api_key: str, model: str, messages: list[dict], temperature: float) -> str:
    if model not in VALID_ANTHROPIC_MODELS:
        raise AIProviderError(
            f'Invalid Anthropic model: "{model}". Valid models are: {", ".join(VALID_ANTHROPIC_MODELS)}. '
            "Please update the model name in Settings → AI Providers or leave it empty to use the default."
        )

    system_prompt = next((m["content"] for m in messages if m["role"] == "system"), "")
    conversation = [
        {"role": "assistant" if m["role"] == "assistant" else "user", "content": m["content"]}
        for m in messages
        if m["role"] != "system"
    ]

    client = anthropic.AsyncAnthropic(api_key=api_key)
    try:
        response = await client.messages.create(
            model=model,
            max_tokens=4096,
            system=system_prompt,
            messages=conversation,
            temperature=temperature,
        )
    except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
        raise AIProviderError(f"Anthropic API key is invalid or expired. {SETTINGS_HINT}") from e
    except anthropic.NotFoundError as e:
        raise AIProviderError(
            f'Invalid Anthropic model: "{model}". Please check your model name in Settings → AI Providers. '
            f"Valid models: {', '.join(VALID_ANTHROPIC_MODELS)}"
        ) from e

    block = response.content[0]
    if getattr(block, "type", None) == "text":
        return block.text
    raise AIProviderError("Unexpected response format from Anthropic")


async def _call_gemini(api_key: str, model: str, messages: list[dict], temperature: float, json_mode: bool) -> str:
    labels = {"system": "System", "assistant": "Assistant"}
    prompt = "".join(f"{labels.get(m['role'], 'User')}: {m['content']}\n\n" for m in messages)

    client = genai.Client(api_key=api_key)
    try:
        response = await client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(
                temperature=temperature,
                response_mime_type="application/json" if json_mode else None,
            ),
        )
    except Exception as e:
        message = str(e)
        if getattr(e, "code", None) in (401, 403) or "API key" in message:
            raise AIProviderError(f"Gemini API key is invalid or expired. {SETTINGS_HINT}") from e
        if "model" in message:
            raise AIProviderError(
                f'Invalid Gemini model: "{model}". Please check your model name in Settings → AI Providers. '
                "Common models: gemini-1.5-flash, gemini-1.5-pro, gemini-pro"
            ) from e
        raise
    return response.text or ""


async def call_ai(
    db: Session,
    messages: list[dict],
    temperature: float = 0.7,
    json_mode: bool = True,
    model: Optional[str] = None,
) -> str:
    """
    Run one chat completion on the configured provider

    Args:
        messages: [{"role": "system" | "user" | "assistant", "content": str}]
        json_mode: Ask the provider for a JSON object response

    Returns:
        Raw text content of the completion
    """
    config = get_ai_config(db)
    provider = config["provider"]
    selected_model = model or config["model"] or DEFAULT_MODELS.get(provider)

    logger.info(f"🤖 AI completion via {provider} ({selected_model})")

    if provider == "openai":
        return await _call_openai(config["apiKey"], selected_model, messages, temperature, json_mode)
    if provider == "anthropic":
        return await _call_anthropic(config["apiKey"], selected_model, messages, temperature)
    if provider == "gemini":
        return await _call_gemini(config["apiKey"], selected_model, messages, temperature, json_mode)
    raise AIProviderError(f"Unsupported AI provider: {provider}")
