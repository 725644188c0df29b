from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel

from synthesis.agent.llm_client import GenerativeService, LLMClient
from synthesis.core.config import settings

InType = TypeVar("InType")
OutType = TypeVar("OutType", bound=BaseModel)


class BaseAgent(ABC, Generic[InType, OutType]):
    """Abstract base class for all stages in the pipeline."""

    def __init__(self, llm: GenerativeService | None = None, model_name: str | None = None):
        self.model_name = model_name or settings.MODEL_DEFAULT
        self.llm = llm or LLMClient(model_name=self.model_name)

    @abstractmethod
    async def run(self, input_data: InType) -> OutType:
        """Run the stage on the given input to produce the output artifact."""
        pass

    def get_system_prompt(self, **kwargs) -> str:
        """Optional helper to format the system prompt."""
        return ""
