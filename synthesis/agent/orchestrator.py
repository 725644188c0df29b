import asyncio
import json
import logging
import random
from collections.abc import AsyncIterator
from typing import Any

from pydantic import BaseModel

from synthesis.agent.artifacts import (
    CandidateObject,
    DesignPlan,
    Diagnostic,
    MaterialRole,
    RawItem,
    SynthesisRequest,
    SynthesisResult,
    TargetSpec,
)
from synthesis.agent.classifier import extract_materials
from synthesis.agent.content_schema import FEAT, ContentSchema
from synthesis.agent.design_agent import DesignAgent, DesignInput
from synthesis.agent.errors import (
    GenerationFailed,
    GenerativeServiceError,
    QuotaExceeded,
    RequirementError,
    SynthesisError,
)
from synthesis.agent.format_agent import FormatAgent
from synthesis.agent.generate_agent import GenerateAgent, GenerateInput
from synthesis.agent.knowledge import KnowledgeBase
from synthesis.agent.llm_client import GenerativeService
from synthesis.agent.prompt_composer import compose_prompt, compute_effective_level
from synthesis.agent.quota import QuotaLedger
from synthesis.agent.requirement_validator import validate_materials
from synthesis.agent.response_parser import ParseFailure, ParsedPayload
from synthesis.agent.sanitizer import sanitize_candidate
from synthesis.agent.vessel_config import parse_vessel_config
from synthesis.core.config import Settings, settings

logger = logging.getLogger(__name__)

MAX_GENERATE_ATTEMPTS = 3


class PipelineConfig(BaseModel):
    design_stage_enabled: bool = True
    format_stage_enabled: bool = True
    design_model: str = "gpt-4o"
    generate_model: str = "gpt-4o"
    format_model: str = "gpt-4o"
    retry_delay_seconds: float = 1.0
    description_min_length: int = 10
    synthesis_cost: int = 1

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "PipelineConfig":
        source = source or settings
        return cls(
            design_stage_enabled=source.DESIGN_STAGE_ENABLED,
            format_stage_enabled=source.FORMAT_STAGE_ENABLED,
            design_model=source.MODEL_DESIGN or source.MODEL_DEFAULT,
            generate_model=source.MODEL_GENERATE or source.MODEL_DEFAULT,
            format_model=source.MODEL_FORMAT or source.MODEL_DEFAULT,
            retry_delay_seconds=source.GENERATE_RETRY_DELAY_SECONDS,
            description_min_length=source.DESCRIPTION_MIN_LENGTH,
            synthesis_cost=source.SYNTHESIS_COST,
        )


class Identity(BaseModel):
    id: str
    privileged: bool = False


class SynthesisEvent(BaseModel):
    status: str
    message: str | None = None
    artifact: dict[str, Any] | None = None
    result: SynthesisResult | None = None

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json", exclude_none=True), ensure_ascii=False)


def _union(*groups: list[str] | tuple[str, ...]) -> list[str]:
    merged: list[str] = []
    for group in groups:
        for value in group:
            normalized = value.strip().lower()
            if normalized and normalized not in merged:
                merged.append(normalized)
    return merged


def resolve_target(vessel_text: str, target: TargetSpec, schema: ContentSchema) -> TargetSpec:
    """Fill target gaps from the Vessel's configuration lines; explicit caller values win."""
    config = parse_vessel_config(vessel_text)
    class_name = target.class_name or config.class_name
    if class_name and class_name.upper() == "SELF":
        class_name = None
    use_rules_knowledge = target.use_rules_knowledge
    if not use_rules_knowledge and config.use_rules_knowledge:
        use_rules_knowledge = True
    complexity = target.mechanism_complexity
    if "mechanism_complexity" not in target.model_fields_set and config.mechanism_complexity:
        complexity = config.mechanism_complexity
    return target.model_copy(
        update={
            "level": min(20, target.level or config.level or 1),
            "category": schema.fixed_category or target.category or config.category,
            "class_name": class_name,
            "required_traits": _union(target.required_traits, config.required_traits, schema.mandated_traits),
            "mechanism_complexity": complexity,
            "use_rules_knowledge": use_rules_knowledge,
        }
    )


def build_synthesis_request(
    items: list[RawItem],
    target: TargetSpec | None = None,
    *,
    role_hints: dict[str, MaterialRole | str] | None = None,
    schema: ContentSchema = FEAT,
) -> SynthesisRequest:
    """
    Classify raw items and gate them through the Requirement Validator.

    Raises ClassificationError for any unclassifiable item and RequirementError
    when validation reports errors. Neither touches the generative service.
    """
    materials = extract_materials(items, role_hints)
    validation = validate_materials(materials)
    if not validation.is_valid:
        logger.info("Synthesis blocked by requirements: %s", "; ".join(validation.errors))
        raise RequirementError(validation)

    vessel = validation.breakdown_by_role[MaterialRole.VESSEL][0]
    others = [m for m in materials if m.role is not MaterialRole.VESSEL]
    resolved = resolve_target(vessel.private_text, target or TargetSpec(), schema)
    return SynthesisRequest(vessel=vessel, materials=others, target=resolved)


class SynthesisPipeline:
    """
    Runs Design? -> Generate -> Format? for one request at a time. All collaborators
    are injected so concurrent requests share nothing but the ledger.
    """

    def __init__(
        self,
        llm: GenerativeService,
        knowledge_base: KnowledgeBase,
        ledger: QuotaLedger,
        config: PipelineConfig | None = None,
        schema: ContentSchema = FEAT,
        rng: random.Random | None = None,
    ):
        self.llm = llm
        self.knowledge_base = knowledge_base
        self.ledger = ledger
        self.config = config or PipelineConfig.from_settings()
        self.schema = schema
        self.rng = rng or random.Random()

        self.design_agent = DesignAgent(schema, llm=llm, model_name=self.config.design_model)
        self.generate_agent = GenerateAgent(
            schema,
            llm=llm,
            model_name=self.config.generate_model,
            min_description_length=self.config.description_min_length,
        )
        self.format_agent = FormatAgent(
            schema,
            llm=llm,
            model_name=self.config.format_model,
            min_description_length=self.config.description_min_length,
        )

    def should_run_design(self, request: SynthesisRequest) -> bool:
        if request.by_role(MaterialRole.CATALYST):
            return False
        return self.config.design_stage_enabled

    async def _design(self, request: SynthesisRequest, prompt: str) -> DesignPlan:
        class_guide = None
        if request.target.use_rules_knowledge:
            class_guide = self.knowledge_base.class_guide(request.target.class_name) or (
                self.knowledge_base.mechanics_reference or None
            )
        try:
            return await self.design_agent.run(
                DesignInput(
                    prompt=prompt,
                    mechanism_complexity=request.target.mechanism_complexity,
                    class_guide=class_guide,
                )
            )
        except (GenerativeServiceError, ValueError) as e:
            logger.error("Design stage failed: %s", e)
            raise GenerationFailed("design", str(e)) from e

    async def _generate_once(self, generate_input: GenerateInput) -> ParsedPayload:
        try:
            return await self.generate_agent.run(generate_input)
        except GenerativeServiceError as e:
            raise ParseFailure(f"Service error: {e}") from e

    async def _format(self, candidate: CandidateObject) -> CandidateObject:
        return await self.format_agent.run(candidate)

    async def iter_synthesis(self, request: SynthesisRequest, identity: Identity) -> AsyncIterator[SynthesisEvent]:
        """
        Yield progress events and finish with a `completed` event carrying the result.
        Terminal failures are raised, never yielded.
        """
        yield SynthesisEvent(status="starting", message="Composing synthesis prompt...")
        prompt = compose_prompt(request, self.rng)
        catalysts = request.by_role(MaterialRole.CATALYST)
        effective_level = compute_effective_level(request.target.level or 1, request.vessel, catalysts)
        stages_run: list[str] = []
        diagnostics: list[Diagnostic] = []

        # 1. Design
        plan: DesignPlan | None = None
        if self.should_run_design(request):
            yield SynthesisEvent(status="design", message="Designing the concept...")
            plan = await self._design(request, prompt)
            stages_run.append("design")
            yield SynthesisEvent(status="design_done", artifact=plan.model_dump())
        else:
            reason = "catalyst present" if catalysts else "disabled"
            yield SynthesisEvent(status="design_skipped", message=f"Design stage skipped ({reason}).")

        # 2. Generate
        generate_input = GenerateInput(
            prompt=prompt,
            design_plan=plan,
            format_guidance=self.knowledge_base.format_guidance,
            examples=self.knowledge_base.find_examples(
                class_name=request.target.class_name,
                level=request.target.level,
                category=request.target.category,
            ),
        )
        parsed: ParsedPayload | None = None
        last_failure: ParseFailure | None = None
        attempts = 0
        for attempt_idx in range(1, MAX_GENERATE_ATTEMPTS + 1):
            attempts = attempt_idx
            yield SynthesisEvent(
                status="generate",
                message=f"Generating (attempt {attempt_idx}/{MAX_GENERATE_ATTEMPTS})...",
            )
            try:
                parsed = await self._generate_once(generate_input)
                break
            except ParseFailure as e:
                last_failure = e
                if attempt_idx < MAX_GENERATE_ATTEMPTS:
                    logger.warning(
                        "Generate attempt %s/%s failed: %s. Retrying...",
                        attempt_idx,
                        MAX_GENERATE_ATTEMPTS,
                        e.reason,
                    )
                    yield SynthesisEvent(status="generate_retry", message=e.reason)
                    generate_input = generate_input.model_copy(update={"retry_reason": e.reason})
                    await asyncio.sleep(self.config.retry_delay_seconds)

        if parsed is None:
            reason = last_failure.reason if last_failure else "unknown failure"
            logger.error("Generate stage exhausted %s attempts: %s", MAX_GENERATE_ATTEMPTS, reason)
            raise GenerationFailed("generate", reason, attempts=attempts)

        stages_run.append("generate")
        candidate = parsed.candidate
        yield SynthesisEvent(
            status="generate_done",
            artifact=candidate.model_dump(),
            message=f"Recovered via {parsed.strategy}",
        )

        # 3. Format
        if self.config.format_stage_enabled:
            yield SynthesisEvent(status="format", message="Checking structure...")
            try:
                candidate = await self._format(candidate)
                stages_run.append("format")
                yield SynthesisEvent(status="format_done", artifact=candidate.model_dump())
            except (ParseFailure, GenerativeServiceError) as e:
                logger.warning("Format stage failed, keeping generated object: %s", e)
                diagnostics.append(
                    Diagnostic(code="format_degraded", message=f"Format stage failed: {e}")
                )
                yield SynthesisEvent(status="format_degraded", message=str(e))

        # 4. Sanitize
        yield SynthesisEvent(status="sanitize", message="Validating consistency...")
        candidate, sanitize_diagnostics = sanitize_candidate(
            candidate,
            self.schema,
            required_traits=request.target.required_traits,
            category=request.target.category,
        )
        diagnostics.extend(sanitize_diagnostics)

        # 5. Ledger
        if not identity.privileged:
            cost = self.config.synthesis_cost
            if not await self.ledger.try_consume(identity.id, cost):
                logger.info("Discarding %r: quota exhausted for %s.", candidate.name, identity.id)
                raise QuotaExceeded(identity.id, cost)

        result = SynthesisResult(
            candidate=candidate,
            diagnostics=diagnostics,
            stages_run=stages_run,
            generate_attempts=attempts,
            effective_level=effective_level,
            used_material_ids=[request.vessel.id] + [m.id for m in request.materials],
        )
        logger.info(
            "Synthesis of %r completed (stages=%s, diagnostics=%s).",
            candidate.name,
            ",".join(stages_run),
            len(diagnostics),
        )
        yield SynthesisEvent(status="completed", result=result)

    async def synthesize(self, request: SynthesisRequest, identity: Identity) -> SynthesisResult:
        result: SynthesisResult | None = None
        async for event in self.iter_synthesis(request, identity):
            if event.result is not None:
                result = event.result
        if result is None:
            raise RuntimeError("Synthesis finished without a result")
        return result


async def run_synthesis_generator(
    pipeline: SynthesisPipeline,
    request: SynthesisRequest,
    identity: Identity,
):
    """
    Generator function that runs the pipeline and yields SSE-ready JSON strings.
    Terminal errors become a final `error` event.
    """
    try:
        async for event in pipeline.iter_synthesis(request, identity):
            yield event.to_json()
    except SynthesisError as e:
        logger.error("Synthesis failed: %s", e)
        yield json.dumps({"status": "error", "error": type(e).__name__, "message": str(e)})
