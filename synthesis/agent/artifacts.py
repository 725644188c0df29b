from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MaterialRole(str, Enum):
    VESSEL = "vessel"
    CATALYST = "catalyst"
    TEMPLATE = "template"
    MODIFIER = "modifier"


NON_VESSEL_ROLES = (MaterialRole.CATALYST, MaterialRole.TEMPLATE, MaterialRole.MODIFIER)

RARITY_TIERS = {"common": 0, "uncommon": 1, "rare": 2, "unique": 3}


class RawItem(BaseModel):
    """An inventory item as supplied by the material source."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    display_name: str = Field(alias="name")
    tags: list[str] = Field(default_factory=list)
    content_type: str | None = None
    public_text: str = ""
    private_text: str = ""
    rarity: str = "common"
    role_marker: str | None = Field(
        default=None, description="Explicit role flag set by the material source, e.g. 'catalyst'"
    )
    deity: str | None = None
    aspect: str | None = None
    level_adjustment: str | None = None
    structured_reference: dict[str, Any] | None = None
    fragment_kind: str | None = None


class LevelAdjustment(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: Literal["absolute", "relative"]
    value: int

    @classmethod
    def parse(cls, text: str | None) -> "LevelAdjustment | None":
        if text is None:
            return None
        raw = str(text).strip()
        if not raw:
            return None
        sign = raw[0]
        digits = raw[1:].strip() if sign in "+-" else raw
        if not digits.isdigit():
            return None
        if sign == "+":
            return cls(mode="relative", value=int(digits))
        if sign == "-":
            return cls(mode="relative", value=-int(digits))
        return cls(mode="absolute", value=int(digits))

    def apply(self, level: int) -> int:
        if self.mode == "relative":
            return max(1, level + self.value)
        return max(1, level, self.value)


class RequirementBound(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: int = Field(default=0, ge=0)
    max: int | None = Field(default=None, description="None means unbounded")

    @model_validator(mode="after")
    def _check_order(self) -> "RequirementBound":
        if self.max is not None and self.max < self.min:
            raise ValueError(f"max ({self.max}) must be >= min ({self.min})")
        return self


class RequirementBounds(BaseModel):
    model_config = ConfigDict(frozen=True)

    catalyst: RequirementBound = RequirementBound(min=0, max=2)
    template: RequirementBound = RequirementBound(min=0, max=1)
    modifier: RequirementBound = RequirementBound(min=1, max=3)

    def for_role(self, role: MaterialRole) -> RequirementBound:
        return getattr(self, role.value)


class VesselMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal[MaterialRole.VESSEL] = MaterialRole.VESSEL
    requirement_bounds: RequirementBounds = RequirementBounds()
    configuration: dict[str, str] = Field(default_factory=dict)
    sections: dict[str, str] = Field(default_factory=dict)
    identity: str | None = None
    level_adjustment: LevelAdjustment | None = None


class CatalystMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal[MaterialRole.CATALYST] = MaterialRole.CATALYST
    identity: str | None = None
    aspect: str | None = None
    level_adjustment: LevelAdjustment | None = None


class TemplateMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal[MaterialRole.TEMPLATE] = MaterialRole.TEMPLATE
    structured_reference: dict[str, Any] | None = None
    source_content_type: str | None = None


class ModifierMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal[MaterialRole.MODIFIER] = MaterialRole.MODIFIER


RoleMetadata = Annotated[
    Union[VesselMetadata, CatalystMetadata, TemplateMetadata, ModifierMetadata],
    Field(discriminator="role"),
]


class Material(BaseModel):
    """A classified input unit. The role is fixed once classification has run."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    public_text: str = ""
    private_text: str = ""
    rarity_tier: int = Field(default=0, ge=0)
    role_metadata: RoleMetadata

    @property
    def role(self) -> MaterialRole:
        return self.role_metadata.role


class TargetSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: int | None = Field(default=None, ge=1, le=20)
    category: str | None = None
    class_name: str | None = None
    required_traits: list[str] = Field(default_factory=list)
    mechanism_complexity: Literal["none", "simple", "moderate", "complex"] = "moderate"
    use_rules_knowledge: bool = False
    actor_context: str | None = None


class SynthesisRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    vessel: Material
    materials: list[Material] = Field(default_factory=list)
    target: TargetSpec = TargetSpec()

    @model_validator(mode="after")
    def _single_vessel(self) -> "SynthesisRequest":
        if self.vessel.role is not MaterialRole.VESSEL:
            raise ValueError("vessel must have the vessel role")
        if any(m.role is MaterialRole.VESSEL for m in self.materials):
            raise ValueError("materials must not contain a second vessel")
        return self

    def by_role(self, role: MaterialRole) -> list[Material]:
        return [m for m in self.materials if m.role is role]


class DesignPlan(BaseModel):
    """Free-text creative brief produced by the Design stage."""
    name: str = Field(description="Working name of the content object")
    rationale: str = Field(description="One or two sentences describing the design intent")
    mechanism_framework: str = Field(
        description="Interaction logic in prose, without numeric values"
    )


class RuleText(BaseModel):
    value: str = ""
    gm: str = ""


class Frequency(BaseModel):
    max: int = 1
    per: str = "day"


class CandidateObject(BaseModel):
    """Structured rule entry returned by the Generate stage and refined by Format."""

    model_config = ConfigDict(extra="allow")

    name: str
    description: RuleText
    level: int = 1
    category: str | None = None
    action_type: str = "passive"
    actions: int | None = None
    traits: list[str] = Field(default_factory=list)
    rarity: str = "common"
    frequency: Frequency | None = None
    prerequisites: list[str] = Field(default_factory=list)
    rules: list[dict[str, Any]] = Field(default_factory=list)


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    breakdown_by_role: dict[MaterialRole, list[Material]] = Field(default_factory=dict)


class Diagnostic(BaseModel):
    code: str
    field: str | None = None
    message: str


class SynthesisResult(BaseModel):
    candidate: CandidateObject
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    stages_run: list[str] = Field(default_factory=list)
    generate_attempts: int = 1
    effective_level: int = 1
    used_material_ids: list[str] = Field(default_factory=list)
