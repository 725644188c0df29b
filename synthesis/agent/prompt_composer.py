import json
import random
import re

from synthesis.agent.artifacts import Material, MaterialRole, SynthesisRequest
from synthesis.agent.vessel_config import parse_sections, pick_section
from synthesis.text_markup import html_to_text, strip_tags

_ORDERED_LIST_RE = re.compile(r"<ol[^>]*>([\s\S]*?)</ol>", re.IGNORECASE)
_LIST_ITEM_RE = re.compile(r"<li[^>]*>([\s\S]*?)</li>", re.IGNORECASE)

# Reference fields that are bookkeeping rather than style.
_REFERENCE_SKIP_KEYS = {"_id", "_stats", "id", "img", "folder", "sort", "ownership", "flags"}

VESSEL_SECTION_TITLES = (
    ("guidance", "Synthesis guidance"),
    ("theme", "Theme"),
    ("principles", "Design principles"),
)


def process_random_prompt(text: str, rng: random.Random) -> str:
    """
    Resolve every <ol> block to one uniformly chosen <li> alternative, then strip
    presentational markup from the whole text.

    Given the same rng state and input this always returns the same text.
    """
    if not text:
        return ""

    def _choose(match: re.Match) -> str:
        options = [strip_tags(item) for item in _LIST_ITEM_RE.findall(match.group(1))]
        options = [option for option in options if option]
        if not options:
            return ""
        return f"\n{rng.choice(options)}\n"

    return html_to_text(_ORDERED_LIST_RE.sub(_choose, text))


def compute_effective_level(base_level: int, vessel: Material, catalysts: list[Material]) -> int:
    """Apply the Vessel's level adjustment, then each Catalyst's, in order."""
    level = base_level
    adjustment = vessel.role_metadata.level_adjustment
    if adjustment is not None:
        level = adjustment.apply(level)
    for catalyst in catalysts:
        adjustment = catalyst.role_metadata.level_adjustment
        if adjustment is not None:
            level = adjustment.apply(level)
    return max(1, level)


def _render_reference(reference: dict) -> str:
    compact = {k: v for k, v in reference.items() if k not in _REFERENCE_SKIP_KEYS}
    return json.dumps(compact, ensure_ascii=False, indent=2, sort_keys=True)


def _render_template(index: int, material: Material) -> str:
    lines = [f"Template {index} - {material.display_name}"]
    reference = material.role_metadata.structured_reference
    if reference:
        lines.append("Reference object:")
        lines.append(_render_reference(reference))
        return "\n".join(lines)
    public = html_to_text(material.public_text)
    private = html_to_text(material.private_text)
    if public:
        lines.append(public)
    if private:
        lines.append(f"Supplementary notes:\n{private}")
    return "\n".join(lines)


def _directive_text(material: Material, rng: random.Random) -> str:
    return process_random_prompt(material.private_text or material.public_text, rng)


def _render_catalyst(index: int, material: Material, rng: random.Random) -> str:
    metadata = material.role_metadata
    title = f"Direction {index} - {material.display_name}"
    if metadata.identity:
        title += f" ({metadata.identity})"
    body = _directive_text(material, rng)
    if metadata.aspect:
        body = f"Aspect: {metadata.aspect}\n{body}" if body else f"Aspect: {metadata.aspect}"
    return f"{title}\n{body}" if body else title


def _render_modifier(index: int, material: Material, rng: random.Random) -> str:
    title = f"Element {index} - {material.display_name}"
    body = _directive_text(material, rng)
    return f"{title}\n{body}" if body else title


def vessel_sections(vessel: Material) -> list[tuple[str, str]]:
    sections = vessel.role_metadata.sections or parse_sections(vessel.private_text)
    rendered = []
    for key, title in VESSEL_SECTION_TITLES:
        body = pick_section(sections, key)
        if body:
            rendered.append((title, html_to_text(body)))
    return rendered


def _vessel_block(vessel: Material) -> str | None:
    parts = [f"{title}:\n{body}" for title, body in vessel_sections(vessel) if body]
    if not parts:
        return None
    return f"## Vessel: {vessel.display_name}\n\n" + "\n\n".join(parts)


def _target_block(request: SynthesisRequest, effective_level: int) -> str:
    target = request.target
    lines = []
    base_level = target.level or 1
    lines.append(f"- Level: {base_level}")
    if effective_level != base_level:
        lines.append(
            f"- Effective power level: {effective_level} (design the strength for this level, "
            f"but keep the entry's level field at {base_level})"
        )
    if target.category:
        lines.append(f"- Category: {target.category}")
    if target.class_name:
        lines.append(f"- Class: {target.class_name}")
    if target.required_traits:
        lines.append(f"- Required traits: {', '.join(target.required_traits)}")
    if target.actor_context:
        lines.append(f"- Character context: {target.actor_context}")
    return "## Target profile\n\n" + "\n".join(lines)


def compose_prompt(request: SynthesisRequest, rng: random.Random) -> str:
    """
    Serialize a request into labeled sections: Vessel, Templates, Catalysts,
    Modifiers, target profile. Empty sections are left out.
    """
    catalysts = request.by_role(MaterialRole.CATALYST)
    templates = request.by_role(MaterialRole.TEMPLATE)
    modifiers = request.by_role(MaterialRole.MODIFIER)

    blocks: list[str] = []

    vessel_block = _vessel_block(request.vessel)
    if vessel_block:
        blocks.append(vessel_block)

    if templates:
        rendered = "\n\n".join(_render_template(i, m) for i, m in enumerate(templates, start=1))
        blocks.append(
            "## Templates (follow their structure and style, not their content)\n\n" + rendered
        )

    if catalysts:
        rendered = "\n\n".join(_render_catalyst(i, m, rng) for i, m in enumerate(catalysts, start=1))
        blocks.append("## Core mechanism directions\n\n" + rendered)

    if modifiers:
        rendered = "\n\n".join(_render_modifier(i, m, rng) for i, m in enumerate(modifiers, start=1))
        blocks.append("## Flavor elements\n\n" + rendered)

    effective_level = compute_effective_level(request.target.level or 1, request.vessel, catalysts)
    blocks.append(_target_block(request, effective_level))

    return "\n\n".join(blocks)
