import asyncio
import logging
import json
from typing import Any
from google.genai import types
import google.genai as genai
from pydantic import BaseModel, ValidationError
from wayfinder.core.config import settings
from wayfinder.core.exceptions import AIGenerationException
from wayfinder.models.graph import DiscoveryPrompts, LateralConnection
from wayfinder.services.prompt_service import PromptService
from wayfinder.services.ai_response_parser import parse_ai_response_text

logger = logging.getLogger(__name__)

LATERAL_CONNECTION_COUNT = 4

# Pydantic models for parsing the specific JSON structure from the LLM.
class AI_Connection(BaseModel):
    concept: str
    reason: str
    type: str

class AI_DiscoveryPrompts(BaseModel):
    bridging_text: str
    questions: list[str]

class AIService:
    def __init__(self, api_key: str, prompt_service: PromptService, client: Any = None, model: str | None = None):
        self.api_key = api_key
        self.prompt_service = prompt_service
        self.model = model or settings.GEMINI_MODEL
        self._client = client

    @property
    def client(self):
        # Created on first use so that constructing the service never needs a key.
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def generate_lateral_connections(self, concept: str) -> list[LateralConnection]:
        """Ask the model for sideways (non-hierarchical) neighbours of a concept."""
        prompt = await self._render("lateral-connections", concept=concept, count=LATERAL_CONNECTION_COUNT)
        payload = await self._generate_json(prompt)

        if not isinstance(payload, list) or not payload:
            logger.error("Lateral connection payload was not a non-empty list: %r", payload)
            raise AIGenerationException("Failed to generate lateral connections")

        connections = []
        for item in payload:
            try:
                ai_connection = AI_Connection.model_validate(item)
                connections.append(
                    LateralConnection(
                        concept=ai_connection.concept.strip(),
                        reason=ai_connection.reason.strip(),
                        type=ai_connection.type.strip().lower(),
                    )
                )
            except ValidationError as e:
                logger.warning("Dropping malformed lateral connection %r: %s", item, e)

        if not connections:
            raise AIGenerationException("Failed to generate lateral connections")
        return connections

    async def generate_discovery_prompts(self, concept: str, connection: LateralConnection) -> DiscoveryPrompts:
        prompt = await self._render(
            "discovery-prompts",
            concept=concept,
            connection_concept=connection.concept,
            connection_type=connection.type.value,
            connection_reason=connection.reason,
        )
        payload = await self._generate_json(prompt)
        try:
            ai_prompts = AI_DiscoveryPrompts.model_validate(payload)
        except ValidationError as e:
            logger.error("Discovery prompt payload failed validation: %s", e)
            raise AIGenerationException("Failed to generate discovery prompts") from e

        questions = [question.strip() for question in ai_prompts.questions if question.strip()]
        if not questions:
            raise AIGenerationException("Failed to generate discovery prompts")
        return DiscoveryPrompts(bridging_text=ai_prompts.bridging_text.strip(), questions=questions)

    async def generate_micro_discovery(self, concept: str) -> str:
        prompt = await self._render("micro-discovery", concept=concept)
        return await self._generate_text(prompt, failure_message="Failed to generate micro-discovery prompt")

    async def generate_self_narrative(self, summary: str) -> str:
        prompt = await self._render("self-narrative", summary=summary)
        return await self._generate_text(prompt, failure_message="Failed to generate self-narrative")

    async def _render(self, prompt_key: str, **values: Any) -> str:
        prompt_template = await self.prompt_service.get_prompt(prompt_key)
        try:
            return prompt_template.format(**values)
        except (KeyError, IndexError) as e:
            logger.error("Prompt template '%s' references an unknown placeholder: %s", prompt_key, e)
            raise AIGenerationException(f"Prompt '{prompt_key}' is malformed.") from e

    async def _call_model(self, prompt: str, mime_type: str) -> Any:
        generation_config = types.GenerateContentConfig(response_mime_type=mime_type)
        try:
            return await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.model,
                contents=prompt,
                config=generation_config
            )
        except Exception as e:
            logger.error("An unexpected error occurred with the Gemini API: %s", e)
            raise AIGenerationException("The language model request failed.") from e

    async def _generate_json(self, prompt: str) -> Any:
        response = await self._call_model(prompt, "application/json")
        raw_text = self._extract_structured_text(response)
        if not raw_text:
            logger.error("AI response did not contain structured JSON output.")
            raise AIGenerationException("The language model returned an empty response.")
        try:
            return parse_ai_response_text(raw_text)
        except json.JSONDecodeError as e:
            logger.error("AI response parsing failed: %s", e)
            logger.debug("Raw AI response text: %s", raw_text)
            raise AIGenerationException("The language model returned invalid JSON.") from e

    async def _generate_text(self, prompt: str, failure_message: str) -> str:
        response = await self._call_model(prompt, "text/plain")
        text = self._extract_structured_text(response).strip()
        if not text:
            logger.error("AI response did not contain any text.")
            raise AIGenerationException(failure_message)
        return text

    @staticmethod
    def _extract_structured_text(response: Any) -> str:
        """
        Attempt to extract the JSON or text payload from the SDK response.
        """
        if response is None:
            return ""

        try:
            candidates = getattr(response, "candidates", None) or []
            for candidate in candidates:
                content = getattr(candidate, "content", None)
                parts = getattr(content, "parts", None) or []
                for part in parts:
                    inline_data = getattr(part, "inline_data", None)
                    part_mime = getattr(part, "mime_type", None)
                    inline_mime = getattr(inline_data, "mime_type", None) if inline_data else None
                    mime_type = (part_mime or inline_mime or "").lower()
                    if mime_type.startswith("application/x-thought"):
                        logger.debug("Skipping thought-signature part in candidate.")
                        continue
                    if mime_type.startswith("application/json") or mime_type.startswith("text/"):
                        text_part = getattr(part, "text", None)
                        if text_part:
                            return text_part
                        if inline_data:
                            data = getattr(inline_data, "data", None)
                            if isinstance(data, bytes):
                                return data.decode("utf-8")
                            if data:
                                return str(data)
        except Exception as exc:
            logger.debug("Falling back to response.text due to extraction error: %s", exc)

        return getattr(response, "text", "") or ""
