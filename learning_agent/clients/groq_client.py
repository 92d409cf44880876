import json
import logging

from groq import AsyncGroq, GroqError

from learning_agent.config import settings
from learning_agent.errors import ExternalServiceError

LOGGER = logging.getLogger(__name__)


class GroqClient:
    """Async wrapper around the official Groq SDK for structured output.

    Usage::

        groq = GroqClient()                                  # DEFAULT_MODEL from env
        data = await groq.chat_json(messages, MY_SCHEMA)     # parsed dict

    Every failure (transport, API status, unparsable content) surfaces as
    :class:`ExternalServiceError`.  There is no retry: one request, one
    attempt.
    """

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        self._model = model or settings.default_model
        self._api_key = api_key or settings.groq_api_key
        self._client = AsyncGroq(api_key=self._api_key)

    @property
    def default_model(self) -> str:
        return self._model

    @property
    def configured(self) -> bool:
        return bool(self._api_key) and self._api_key != "gsk_placeholder"

    async def chat_json(
        self,
        messages: list[dict],
        response_schema: dict,
        *,
        schema_name: str = "response",
        model: str | None = None,
        temperature: float | None = None,
    ) -> dict:
        """Structured-output completion using Groq's strict JSON Schema mode.

        Groq strict mode requires ``"additionalProperties": false`` on every
        object and all properties listed in ``"required"``.
        """
        kwargs: dict = {
            "model": model or self._model,
            "messages": messages,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name,
                    "strict": True,
                    "schema": response_schema,
                },
            },
        }
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            resp = await self._client.chat.completions.create(**kwargs)
        except GroqError as e:
            LOGGER.warning("Groq request %s failed: %s", schema_name, e)
            raise ExternalServiceError(f"Groq request failed: {e}") from e

        content = resp.choices[0].message.content if resp.choices else None
        try:
            return json.loads(content or "")
        except json.JSONDecodeError as e:
            LOGGER.warning("Groq returned unparsable %s payload", schema_name)
            raise ExternalServiceError(f"Unparsable {schema_name} response") from e
