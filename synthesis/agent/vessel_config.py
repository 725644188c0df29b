"""
Parser for the configuration text a Vessel carries in its private text.

Grammar:
    KEY: value          one setting per line, KEY matches [A-Z][A-Z0-9_]*
    【Header】 body      a section whose body runs until the next 【 or the end

Anything that does not match is ignored. A key or section that does not appear
is simply absent from the result; nothing here raises on malformed input.
"""
import logging
import re

from pydantic import BaseModel, Field

from synthesis.agent.artifacts import LevelAdjustment, RequirementBound, RequirementBounds
from synthesis.text_markup import html_to_text

logger = logging.getLogger(__name__)

_CONFIG_LINE_RE = re.compile(r"^[ \t]*([A-Z][A-Z0-9_]*)[ \t]*[:：][ \t]*(.*?)[ \t]*$", re.MULTILINE)
_SECTION_RE = re.compile(r"【([^】]+)】\s*([\s\S]*?)(?=【|$)")

SECTION_ALIASES: dict[str, tuple[str, ...]] = {
    "guidance": ("guidance", "合成指导"),
    "theme": ("theme", "神龛特色"),
    "principles": ("principles", "设计原则"),
}

_BOUND_KEYS: dict[str, tuple[str, ...]] = {
    "catalyst": ("CATALYST", "CATALYSTS", "DIVINITIES"),
    "template": ("TEMPLATE", "TEMPLATES", "OFFERINGS"),
    "modifier": ("MODIFIER", "MODIFIERS", "FRAGMENTS"),
}

_TRUE_WORDS = ("yes", "1", "on")
_FALSE_WORDS = ("no", "0", "off")

MECHANISM_COMPLEXITIES = ("none", "simple", "moderate", "complex")


def parse_config_lines(text: str) -> dict[str, str]:
    if not text:
        return {}
    return {key: value for key, value in _CONFIG_LINE_RE.findall(html_to_text(text)) if value}


def parse_sections(text: str) -> dict[str, str]:
    """Return every bracketed section keyed by its header, lower-cased and stripped."""
    if not text:
        return {}
    sections: dict[str, str] = {}
    for header, body in _SECTION_RE.findall(text):
        body = body.strip()
        if body:
            sections[header.strip().lower()] = body
    return sections


def pick_section(sections: dict[str, str], name: str) -> str | None:
    for alias in SECTION_ALIASES.get(name, (name,)):
        if alias in sections:
            return sections[alias]
    return None


def parse_flag(value: str | None) -> bool | None:
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered.startswith("t") or lowered in _TRUE_WORDS:
        return True
    if lowered.startswith("f") or lowered in _FALSE_WORDS:
        return False
    return None


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    match = re.match(r"^\s*(\d+)", value)
    return int(match.group(1)) if match else None


def parse_requirement_bounds(config: dict[str, str]) -> RequirementBounds | None:
    """Build bounds from *_MIN / *_MAX keys. Returns None when none are declared."""
    defaults = RequirementBounds()
    declared = False
    bounds: dict[str, RequirementBound] = {}
    for role, prefixes in _BOUND_KEYS.items():
        default = getattr(defaults, role)
        low = high = None
        for prefix in prefixes:
            low = low if low is not None else _parse_int(config.get(f"{prefix}_MIN"))
            high = high if high is not None else _parse_int(config.get(f"{prefix}_MAX"))
        if low is not None or high is not None:
            declared = True
        low = default.min if low is None else low
        if high is None:
            high = default.max if default.max is None or default.max >= low else low
        elif high < low:
            logger.warning("Vessel declares %s max %s below min %s; clamping.", role, high, low)
            high = low
        bounds[role] = RequirementBound(min=low, max=high)
    if not declared:
        return None
    return RequirementBounds(**bounds)


class VesselConfig(BaseModel):
    configuration: dict[str, str] = Field(default_factory=dict)
    sections: dict[str, str] = Field(default_factory=dict)
    requirement_bounds: RequirementBounds | None = None
    level: int | None = None
    level_adjustment: LevelAdjustment | None = None
    category: str | None = None
    class_name: str | None = None
    mechanism_complexity: str | None = None
    required_traits: list[str] = Field(default_factory=list)
    use_rules_knowledge: bool | None = None
    identity: str | None = None


def parse_vessel_config(text: str) -> VesselConfig:
    config = parse_config_lines(text)
    sections = parse_sections(text)

    complexity = (config.get("MECHANISM_COMPLEXITY") or "").strip().lower() or None
    if complexity is not None and complexity not in MECHANISM_COMPLEXITIES:
        logger.warning("Ignoring unknown mechanism complexity %r.", complexity)
        complexity = None

    traits = [t.strip().lower() for t in config.get("REQUIRED_TRAITS", "").split(",") if t.strip()]

    return VesselConfig(
        configuration=config,
        sections=sections,
        requirement_bounds=parse_requirement_bounds(config),
        level=_parse_int(config.get("LEVEL") or config.get("FEAT_LEVEL")),
        level_adjustment=LevelAdjustment.parse(config.get("EFFECTIVE_LEVEL")),
        category=(config.get("CATEGORY") or "").strip().lower() or None,
        class_name=(config.get("CLASS_NAME") or "").strip() or None,
        mechanism_complexity=complexity,
        required_traits=traits,
        use_rules_knowledge=parse_flag(config.get("USE_RULES_KNOWLEDGE")),
        identity=(config.get("DEITY") or "").strip() or None,
    )
