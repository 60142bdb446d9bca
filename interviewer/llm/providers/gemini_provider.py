from loguru import logger

from llm.base import BaseLLM, ContentUnavailableError


class GeminiProvider(BaseLLM):
    """Google Gemini provider."""

    def __init__(self, api_key: str, model: str = "gemini-1.5-flash"):
        self.api_key = api_key
        self.model = model
        self._client = None

    def _ensure_client(self):
        if self._client is None:
            import google.generativeai as genai
            genai.configure(api_key=self.api_key)
            self._client = genai.GenerativeModel(self.model)

    async def complete(self, messages, max_tokens=400, temperature=0.7, json_mode=False) -> str:
        self._ensure_client()

        # Gemini uses {"role": "user"/"model", "parts": [text]}; the system
        # prompt is prepended to the first user turn.
        system_msg = ""
        contents = []
        for msg in messages:
            if msg["role"] == "system":
                system_msg = msg["content"]
            elif msg["role"] == "user":
                contents.append({"role": "user", "parts": [msg["content"]]})
            elif msg["role"] == "assistant":
                contents.append({"role": "model", "parts": [msg["content"]]})
        if not contents or contents[0]["role"] != "user":
            contents.insert(0, {"role": "user", "parts": [""]})
        if system_msg:
            first = contents[0]
            first["parts"] = [f"{system_msg}\n\n{first['parts'][0]}".strip()]

        generation_config = {"max_output_tokens": max_tokens, "temperature": temperature}
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        try:
            response = await self._client.generate_content_async(
                contents, generation_config=generation_config,
            )
            text = response.text
        except Exception as e:
            logger.error("Gemini completion error: {}", e)
            raise ContentUnavailableError(str(e)) from e

        if not text:
            raise ContentUnavailableError("Gemini returned an empty completion")
        return text
