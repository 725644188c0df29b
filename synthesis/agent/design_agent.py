import logging

from pydantic import BaseModel

from synthesis.agent.artifacts import DesignPlan
from synthesis.agent.base import BaseAgent
from synthesis.agent.content_schema import ContentSchema
from synthesis.agent.llm_client import CallOptions, GenerativeService, get_message_text
from synthesis.agent.prompts.design import (
    DESIGN_SYSTEM_PROMPT,
    MECHANISM_COMPLEXITY_GUIDES,
    RULES_KNOWLEDGE_HEADER,
)
from synthesis.agent.vessel_config import parse_sections

logger = logging.getLogger(__name__)

DEFAULT_DESIGN_NAME = "Untitled design"


class DesignInput(BaseModel):
    prompt: str
    mechanism_complexity: str = "moderate"
    class_guide: str | None = None


def parse_design_plan(text: str) -> DesignPlan:
    """Read the three bracketed sections; anything missing falls back to a default."""
    sections = parse_sections(text)
    name = sections.get("name", "").splitlines()[0].strip() if sections.get("name") else ""
    rationale = sections.get("rationale", "").strip()
    framework = (sections.get("mechanism framework") or sections.get("mechanism") or "").strip()
    if not framework and not sections:
        framework = text.strip()
    return DesignPlan(
        name=name or DEFAULT_DESIGN_NAME,
        rationale=rationale,
        mechanism_framework=framework,
    )


class DesignAgent(BaseAgent[DesignInput, DesignPlan]):
    """
    Proposes a concept (name, intent, mechanism in prose) before any schema work.
    Output is plain text, never a function call.
    """

    def __init__(self, schema: ContentSchema, llm: GenerativeService | None = None, model_name: str | None = None):
        super().__init__(llm=llm, model_name=model_name)
        self.schema = schema

    def get_system_prompt(self, **kwargs) -> str:
        complexity = kwargs.get("mechanism_complexity") or "moderate"
        prompt = DESIGN_SYSTEM_PROMPT.format(
            label=self.schema.label.lower(),
            design_focus=self.schema.design_focus,
            complexity_guide=MECHANISM_COMPLEXITY_GUIDES.get(complexity, ""),
        ).strip()
        class_guide = kwargs.get("class_guide")
        if class_guide:
            prompt += "\n\n" + RULES_KNOWLEDGE_HEADER.strip() + "\n" + class_guide.strip()
        return prompt

    async def run(self, input_data: DesignInput) -> DesignPlan:
        messages = [
            {
                "role": "system",
                "content": self.get_system_prompt(
                    mechanism_complexity=input_data.mechanism_complexity,
                    class_guide=input_data.class_guide,
                ),
            },
            {"role": "user", "content": input_data.prompt},
        ]
        raw = await self.llm.call(messages, CallOptions(model=self.model_name, temperature=0.8))
        text = get_message_text(raw)
        if not text.strip():
            raise ValueError("Design stage returned empty content")

        plan = parse_design_plan(text)
        logger.info("Design stage proposed %r.", plan.name)
        return plan
