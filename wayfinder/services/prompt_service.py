import asyncio
import json
import logging
from pathlib import Path
from string import Formatter
from typing import Any

from wayfinder.core.prompts import DEFAULT_PROMPTS
from wayfinder.models.prompt import PromptDocument

logger = logging.getLogger(__name__)


def template_fields(template: str) -> set[str]:
    """Names of the ``{placeholders}`` a template expects; escaped braces are ignored."""
    return {field for _, field, _, _ in Formatter().parse(template) if field}


class PromptService:
    """
    Serves the LLM prompt templates. Operators may override a built-in template,
    but an override must use exactly the placeholders the default renders with,
    otherwise AIService could not fill it in.
    """

    def __init__(self, store_path: Path | None = None):
        base_dir = Path(__file__).resolve().parents[1]
        self.store_path = store_path or base_dir / "data" / "prompts.json"
        self._lock = asyncio.Lock()

    async def get_prompt(self, key: str) -> str:
        normalized_key = self._require_known(key)
        overrides = await self._load_overrides()
        return overrides.get(normalized_key, DEFAULT_PROMPTS[normalized_key])

    async def is_overridden(self, key: str) -> bool:
        normalized_key = self._normalize_key(key)
        overrides = await self._load_overrides()
        return normalized_key in overrides and overrides[normalized_key] != DEFAULT_PROMPTS.get(normalized_key)

    async def list_prompts(self) -> list[PromptDocument]:
        overrides = await self._load_overrides()
        return [
            PromptDocument(
                key=key,
                prompt=overrides.get(key, default),
                is_default=overrides.get(key, default) == default,
            )
            for key, default in DEFAULT_PROMPTS.items()
        ]

    async def upsert_prompt(self, key: str, prompt_text: str) -> str:
        normalized_key = self._require_known(key)
        sanitized_prompt = prompt_text.strip()
        if not sanitized_prompt:
            raise ValueError("Prompt text cannot be empty.")

        try:
            fields = template_fields(sanitized_prompt)
        except ValueError as exc:
            raise ValueError(f"Prompt text is not a valid template: {exc}") from exc
        expected = template_fields(DEFAULT_PROMPTS[normalized_key])
        if fields != expected:
            placeholders = ", ".join(f"{{{name}}}" for name in sorted(expected))
            raise ValueError(f"Prompt '{normalized_key}' must use exactly these placeholders: {placeholders}")

        async with self._lock:
            data = await self._read_store()
            data[normalized_key] = sanitized_prompt
            await self._write_store(data)

        logger.info("Prompt '%s' overridden.", normalized_key)
        return sanitized_prompt

    async def reset_prompt(self, key: str) -> str:
        normalized_key = self._require_known(key)

        async with self._lock:
            data = await self._read_store()
            if data.pop(normalized_key, None) is not None:
                await self._write_store(data)

        logger.info("Prompt '%s' reset to its default.", normalized_key)
        return DEFAULT_PROMPTS[normalized_key]

    async def _load_overrides(self) -> dict[str, str]:
        async with self._lock:
            data = await self._read_store()
        # Entries for templates that no longer exist are ignored.
        return {key: value for key, value in data.items() if key in DEFAULT_PROMPTS}

    async def _read_store(self) -> dict[str, str]:
        if not self.store_path.exists():
            return {}

        def _read() -> dict[str, Any]:
            with self.store_path.open("r", encoding="utf-8") as handle:
                return json.load(handle)

        return await asyncio.to_thread(_read)

    async def _write_store(self, data: dict[str, str]) -> None:
        def _write() -> None:
            self.store_path.parent.mkdir(parents=True, exist_ok=True)
            with self.store_path.open("w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)

        await asyncio.to_thread(_write)

    def _require_known(self, key: str) -> str:
        normalized_key = self._normalize_key(key)
        if normalized_key not in DEFAULT_PROMPTS:
            raise KeyError(f"Prompt '{key}' not found.")
        return normalized_key

    def normalize_key(self, key: str) -> str:
        return self._normalize_key(key)

    @staticmethod
    def _normalize_key(key: str) -> str:
        return key.strip().lower().replace(" ", "-").replace("_", "-")
