import json
import logging

from synthesis.agent.artifacts import CandidateObject
from synthesis.agent.base import BaseAgent
from synthesis.agent.content_schema import ContentSchema
from synthesis.agent.llm_client import CallOptions, GenerativeService
from synthesis.agent.prompts.format import FORMAT_SYSTEM_PROMPT
from synthesis.agent.response_parser import parse_candidate_response

logger = logging.getLogger(__name__)


class FormatAgent(BaseAgent[CandidateObject, CandidateObject]):
    """Structural clean-up pass over a generated candidate; narrative text must survive unchanged."""

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
        return FORMAT_SYSTEM_PROMPT.format(
            label=self.schema.label.lower(),
            function_name=self.schema.function_name,
        ).strip()

    async def run(self, input_data: CandidateObject) -> CandidateObject:
        messages = [
            {"role": "system", "content": self.get_system_prompt()},
            {"role": "user", "content": json.dumps(input_data.model_dump(), ensure_ascii=False, indent=2)},
        ]
        raw = await self.llm.call(
            messages,
            CallOptions(
                model=self.model_name,
                tool=self.schema.tool_definition(),
                tool_choice=self.schema.tool_choice(),
                temperature=0.1,
            ),
        )
        parsed = parse_candidate_response(raw, min_description_length=self.min_description_length)
        logger.info("Format stage returned %r via %s.", parsed.candidate.name, parsed.strategy)
        return parsed.candidate
