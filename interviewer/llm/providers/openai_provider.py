from loguru import logger

from llm.base import BaseLLM, ContentUnavailableError


class OpenAIProvider(BaseLLM):
    """OpenAI chat completions provider."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        self.api_key = api_key
        self.model = model
        self._client = None

    def _ensure_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)

    async def complete(self, messages, max_tokens=400, temperature=0.7, json_mode=False) -> str:
        self._ensure_client()

        kwargs = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except Exception as e:
            logger.error("OpenAI completion error: {}", e)
            raise ContentUnavailableError(str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ContentUnavailableError("OpenAI returned an empty completion")
        return content
