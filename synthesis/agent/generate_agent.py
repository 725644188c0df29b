import logging

from pydantic import BaseModel, Field

from synthesis.agent.artifacts import DesignPlan
from synthesis.agent.base import BaseAgent
from synthesis.agent.content_schema import ContentSchema
from synthesis.agent.knowledge import KnowledgeExample
from synthesis.agent.llm_client import CallOptions, GenerativeService
from synthesis.agent.prompts.generate import (
    DESIGN_BRIEF_HEADER,
    EXAMPLES_HEADER,
    GENERATE_RETRY_NOTE,
    GENERATE_SYSTEM_PROMPT,
)
from synthesis.agent.response_parser import ParsedPayload, parse_candidate_response

logger = logging.getLogger(__name__)


class GenerateInput(BaseModel):
    prompt: str
    design_plan: DesignPlan | None = None
    format_guidance: str = ""
    examples: list[KnowledgeExample] = Field(default_factory=list)
    retry_reason: str | None = None


def render_design_brief(plan: DesignPlan) -> str:
    lines = [DESIGN_BRIEF_HEADER.strip(), f"Name: {plan.name}"]
    if plan.rationale:
        lines.append(f"Rationale: {plan.rationale}")
    if plan.mechanism_framework:
        lines.append(f"Mechanism framework:\n{plan.mechanism_framework}")
    return "\n".join(lines)


class GenerateAgent(BaseAgent[GenerateInput, ParsedPayload]):
    """Produces the structured candidate through a forced function call. One attempt per run."""

    def __init__(
        self,
        schema: ContentSchema,
        llm: GenerativeService | None = None,
        model_name: str | None = None,
        min_description_length: int | None = None,
    ):
        super().__init__(llm=llm, model_name=model_name)
        self.schema = schema
        self.min_description_length = min_description_length

    def get_system_prompt(self, **kwargs) -> str:
        return GENERATE_SYSTEM_PROMPT.format(
            label=self.schema.label.lower(),
            function_name=self.schema.function_name,
            generation_rules=self.schema.generation_rules,
            format_guidance=kwargs.get("format_guidance") or "",
        ).strip()

    def build_user_prompt(self, input_data: GenerateInput) -> str:
        parts = []
        if input_data.design_plan is not None:
            parts.append(render_design_brief(input_data.design_plan))
        parts.append(input_data.prompt)
        if input_data.examples:
            rendered = "\n\n".join(f"{e.name}\n{e.text}" for e in input_data.examples)
            parts.append(EXAMPLES_HEADER.strip() + "\n\n" + rendered)
        if input_data.retry_reason:
            parts.append(
                GENERATE_RETRY_NOTE.format(
                    reason=input_data.retry_reason,
                    function_name=self.schema.function_name,
                ).strip()
            )
        return "\n\n".join(parts)

    async def run(self, input_data: GenerateInput) -> ParsedPayload:
        messages = [
            {"role": "system", "content": self.get_system_prompt(format_guidance=input_data.format_guidance)},
            {"role": "user", "content": self.build_user_prompt(input_data)},
        ]
        raw = await self.llm.call(
            messages,
            CallOptions(
                model=self.model_name,
                tool=self.schema.tool_definition(),
                tool_choice=self.schema.tool_choice(),
                temperature=0.7,
            ),
        )
        parsed = parse_candidate_response(raw, min_description_length=self.min_description_length)
        logger.info("Generate stage produced %r via %s.", parsed.candidate.name, parsed.strategy)
        return parsed
