"""Model client and prompt templates."""

from agent_pipeline.llm.client import ChatMessage, ModelClient, OpenAIChatClient, build_model_client
from agent_pipeline.llm.prompts import PromptStore, PromptTemplate

__all__ = [
    "ChatMessage",
    "ModelClient",
    "OpenAIChatClient",
    "PromptStore",
    "PromptTemplate",
    "build_model_client",
]
