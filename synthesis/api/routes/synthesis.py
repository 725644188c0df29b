import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from synthesis.agent.artifacts import MaterialRole, RawItem, SynthesisResult, TargetSpec, ValidationResult
from synthesis.agent.classifier import extract_materials
from synthesis.agent.errors import (
    ClassificationError,
    GenerationFailed,
    QuotaExceeded,
    RequirementError,
)
from synthesis.agent.orchestrator import build_synthesis_request, run_synthesis_generator
from synthesis.agent.requirement_validator import validate_materials
from synthesis.api.deps import CurrentIdentity, PipelineDep, SchemaDep

router = APIRouter()
logger = logging.getLogger(__name__)


class SynthesisPayload(BaseModel):
    items: list[RawItem]
    target: TargetSpec = Field(default_factory=TargetSpec)
    role_hints: dict[str, MaterialRole] = Field(default_factory=dict)


def _classification_detail(e: ClassificationError) -> dict:
    return {"error": "ClassificationError", "item_id": e.item_id, "message": str(e)}


def _requirement_detail(e: RequirementError) -> dict:
    validation = e.validation
    return {
        "error": "RequirementError",
        "errors": validation.errors,
        "warnings": validation.warnings,
        "suggestions": validation.suggestions,
    }


@router.post("/validate", response_model=ValidationResult)
async def validate_synthesis(payload: SynthesisPayload) -> ValidationResult:
    """Classify the items and report whether they satisfy the Vessel's requirements."""
    try:
        materials = extract_materials(payload.items, payload.role_hints)
    except ClassificationError as e:
        raise HTTPException(status_code=422, detail=_classification_detail(e)) from e
    return validate_materials(materials)


@router.post("/", response_model=SynthesisResult)
async def synthesize(
    payload: SynthesisPayload,
    pipeline: PipelineDep,
    schema: SchemaDep,
    identity: CurrentIdentity,
) -> SynthesisResult:
    try:
        request = build_synthesis_request(
            payload.items, payload.target, role_hints=payload.role_hints, schema=schema
        )
        return await pipeline.synthesize(request, identity)
    except ClassificationError as e:
        raise HTTPException(status_code=422, detail=_classification_detail(e)) from e
    except RequirementError as e:
        raise HTTPException(status_code=422, detail=_requirement_detail(e)) from e
    except QuotaExceeded as e:
        raise HTTPException(status_code=402, detail={"error": "QuotaExceeded", "message": str(e)}) from e
    except GenerationFailed as e:
        raise HTTPException(
            status_code=502,
            detail={"error": "GenerationFailed", "stage": e.stage, "reason": e.reason, "attempts": e.attempts},
        ) from e


@router.post("/stream")
async def synthesize_stream(
    payload: SynthesisPayload,
    pipeline: PipelineDep,
    schema: SchemaDep,
    identity: CurrentIdentity,
):
    """Start the synthesis pipeline and stream progress via SSE."""
    try:
        request = build_synthesis_request(
            payload.items, payload.target, role_hints=payload.role_hints, schema=schema
        )
    except ClassificationError as e:
        raise HTTPException(status_code=422, detail=_classification_detail(e)) from e
    except RequirementError as e:
        raise HTTPException(status_code=422, detail=_requirement_detail(e)) from e

    return EventSourceResponse(run_synthesis_generator(pipeline, request, identity))
