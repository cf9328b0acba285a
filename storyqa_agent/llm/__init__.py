from .llm_api import LLMAPI, mask_secret
from .prompt import LLMPrompt

__all__ = ["LLMAPI", "LLMPrompt", "mask_secret"]
