from loguru import logger

from llm.base import BaseLLM, ContentUnavailableError


class ClaudeProvider(BaseLLM):
    """Anthropic Claude provider."""

    def __init__(self, api_key: str, model: str = "claude-haiku-4-5-20251001"):
        self.api_key = api_key
        self.model = model
        self._client = None

    def _ensure_client(self):
        if self._client is None:
            from anthropic import AsyncAnthropic
            self._client = AsyncAnthropic(api_key=self.api_key)

    async def complete(self, messages, max_tokens=400, temperature=0.7, json_mode=False) -> str:
        self._ensure_client()

        # Claude takes the system prompt separately and wants the
        # conversation to start with a user turn
        system_msg = ""
        conversation = []
        for msg in messages:
            if msg["role"] == "system":
                system_msg = msg["content"]
            else:
                conversation.append({"role": msg["role"], "content": msg["content"]})
        if conversation and conversation[0]["role"] != "user":
            conversation.insert(0, {"role": "user", "content": "(interview in progress)"})
        if json_mode:
            system_msg += "\nReply with a single JSON object and nothing else."

        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_msg,
                messages=conversation,
            )
        except Exception as e:
            logger.error("Claude completion error: {}", e)
            raise ContentUnavailableError(str(e)) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text:
            raise ContentUnavailableError("Claude returned an empty completion")
        return text
