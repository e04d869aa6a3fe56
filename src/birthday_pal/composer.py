from __future__ import annotations

import asyncio
import logging
import re
from typing import Protocol

import aiohttp

from birthday_pal.models import MessageTone

LOGGER = logging.getLogger(__name__)

DEFAULT_OLLAMA_MODEL = "llama3.2"
DEFAULT_TIMEOUT_SECONDS = 20.0

_THINK_BLOCK = re.compile(r"<\s*think\s*>.*?<\s*/\s*think\s*>", re.I | re.S)

INSTRUCTIONS = (
    "You write short SMS birthday messages.\n\n"
    "Rules:\n"
    "- Use the requested tone: formal, casual, funny, or romantic.\n"
    "- 1-2 sentences max.\n"
    "- Address the person by name.\n"
    "- Follow the user's notes for style and content.\n"
    "- Output only the message text, no quotes, no meta commentary."
)


class MessageComposer(Protocol):
    async def compose(self, tone: MessageTone, name: str, age: int | None, hint: str | None) -> str:
        ...


def fallback_message(tone: MessageTone, name: str, age: int | None) -> str:
    if tone is MessageTone.FORMAL:
        return f"Happy birthday, {name}. Wishing you a wonderful year ahead."
    if tone is MessageTone.CASUAL:
        if age is not None:
            return f"Happy birthday, {name}! You're now {age}. Hope it's a great one 🎉"
        return f"Happy birthday, {name}! Hope it's a great one 🎉"
    if tone is MessageTone.FUNNY:
        return f"HBD {name}! Another lap around the sun — level {age if age is not None else 0} unlocked 🥳"
    return f"Happy birthday, {name} ❤️ So grateful for you—hope today is perfect."


def build_prompt(tone: MessageTone, name: str, age: int | None, hint: str | None) -> str:
    if age is not None:
        age_line = f"They are turning {age}."
    else:
        age_line = "Do not mention their age unless the notes ask for it."

    lines = [f"Write a {tone.value} birthday text for {name}.", age_line]
    cleaned_hint = (hint or "").strip()
    if cleaned_hint:
        lines.append(f'User notes for style/content: "{cleaned_hint}"')
    return "\n".join(lines)


def clean_response(text: str) -> str:
    cleaned = _THINK_BLOCK.sub("", text or "").strip()
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in {'"', "'"}:
        cleaned = cleaned[1:-1].strip()
    return cleaned


class TemplateComposer:
    async def compose(self, tone: MessageTone, name: str, age: int | None, hint: str | None) -> str:
        return fallback_message(tone, name, age)


class OllamaComposer:
    def __init__(
        self,
        *,
        base_url: str,
        model: str = DEFAULT_OLLAMA_MODEL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        temperature: float = 0.7,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._temperature = temperature

    async def _generate(self, prompt: str) -> str:
        payload = {
            "model": self._model,
            "prompt": prompt,
            "system": INSTRUCTIONS,
            "options": {"temperature": self._temperature},
            "stream": False,
            "think": False,
        }
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            async with session.post(f"{self._base_url}/api/generate", json=payload) as response:
                response.raise_for_status()
                data = await response.json(content_type=None)

        if not isinstance(data, dict):
            raise ValueError("Unexpected response shape from Ollama")
        return clean_response(str(data.get("response") or ""))

    async def compose(self, tone: MessageTone, name: str, age: int | None, hint: str | None) -> str:
        fallback = fallback_message(tone, name, age)
        try:
            text = await self._generate(build_prompt(tone, name, age, hint))
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            LOGGER.warning("Message generation failed, using %s template: %s", tone.value, exc)
            return fallback

        if not text:
            LOGGER.warning("Empty generation, using %s template", tone.value)
            return fallback
        return text


def build_composer(
    base_url: str | None,
    *,
    model: str = DEFAULT_OLLAMA_MODEL,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> MessageComposer:
    if base_url:
        LOGGER.info("Composing messages with Ollama model %s at %s", model, base_url)
        return OllamaComposer(base_url=base_url, model=model, timeout_seconds=timeout_seconds)
    LOGGER.info("Composing messages from templates")
    return TemplateComposer()
