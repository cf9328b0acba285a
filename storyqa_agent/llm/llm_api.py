import logging

from openai import AsyncOpenAI


def mask_secret(secret: str) -> str:
    if not secret:
        return ""
    if len(secret) <= 12:
        return "***"
    return f"{secret[:8]}...{secret[-4:]}"


class LLMAPI:
    def __init__(self, llm_config) -> None:
        self.llm_config = llm_config
        self.api_type = self.llm_config.get("api", "openai")
        self.model = self.llm_config.get("model")
        self.temperature = float(self.llm_config.get("temperature", 0.1))
        self.max_tokens = int(self.llm_config.get("max_tokens", 4000))
        self.timeout = float(self.llm_config.get("timeout", 60))
        self.client = None

    async def initialize(self):
        if self.api_type == "openai":
            self.api_key = self.llm_config.get("api_key")
            if not self.api_key:
                raise ValueError("API key is empty. OpenAI client not initialized.")
            self.base_url = self.llm_config.get("base_url")
            self.client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url) if self.base_url else AsyncOpenAI(
                api_key=self.api_key)
            logging.info(
                f"AsyncOpenAI client initialized with API key: {mask_secret(self.api_key)}, Model: {self.model} "
                f"and base URL: {self.base_url}"
            )
        else:
            raise ValueError("Invalid API type or missing credentials. LLM client not initialized.")

        return self

    async def get_llm_response(self, system_prompt, prompt):
        if self.client is None:
            await self.initialize()

        try:
            messages = self._create_messages(system_prompt, prompt)
            return await self._call_openai(messages)
        except Exception as e:
            logging.error(f"LLMAPI.get_llm_response encountered error: {e}")
            raise

    def _create_messages(self, system_prompt, prompt):
        if self.api_type == "openai":
            return [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ]
        raise ValueError("Invalid api_type. Choose 'openai'.")

    async def _call_openai(self, messages):
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            timeout=self.timeout,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        content = completion.choices[0].message.content
        return self._clean_response(content)

    @staticmethod
    def _clean_response(response):
        """Remove Markdown code fences around the response if present."""
        if not response or not isinstance(response, str):
            return response
        response = response.strip()
        if response.startswith("```json") and response.endswith("```"):
            logging.debug("Cleaning response: Removing ```json``` markers")
            return response[7:-3].strip()
        if response.startswith("```") and response.endswith("```"):
            logging.debug("Cleaning response: Removing ``` markers")
            return response[3:-3].strip()
        return response

    async def close(self):
        if self.client is not None:
            await self.client.close()
            self.client = None
