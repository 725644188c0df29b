import logging

from synthesis.agent.artifacts import (
    RARITY_TIERS,
    CatalystMetadata,
    LevelAdjustment,
    Material,
    MaterialRole,
    ModifierMetadata,
    RawItem,
    RequirementBounds,
    TemplateMetadata,
    VesselMetadata,
)
from synthesis.agent.errors import ClassificationError
from synthesis.agent.vessel_config import parse_vessel_config

logger = logging.getLogger(__name__)

# Checked in this order; the first role whose tag set intersects the item tags wins.
ROLE_TAGS: tuple[tuple[MaterialRole, frozenset[str]], ...] = (
    (MaterialRole.CATALYST, frozenset({"catalyst", "divinity", "神性", "指导"})),
    (MaterialRole.TEMPLATE, frozenset({"template", "offering", "贡品", "技能机"})),
    (MaterialRole.VESSEL, frozenset({"vessel", "shrine", "神龛", "训练场"})),
    (MaterialRole.MODIFIER, frozenset({"modifier", "fragment", "碎片", "个性"})),
)

# Catalysts are frequently named after a patron entity without carrying any tag.
KNOWN_CATALYST_NAMES = frozenset({
    "huitzilopochtli",
    "quetzalcoatl",
    "tlaloc",
    "tezcatlipoca",
    "xochiquetzal",
    "mictlantecuhtli",
})

TEMPLATE_CONTENT_TYPES = frozenset({
    "feat", "spell", "equipment", "weapon", "armor", "consumable", "action",
})

MODIFIER_FRAGMENT_KINDS = frozenset({"feat-fragment"})

_ROLE_MARKERS = {
    **{role.value: role for role in MaterialRole},
    "shrine": MaterialRole.VESSEL,
    "divinity": MaterialRole.CATALYST,
    "offering": MaterialRole.TEMPLATE,
    "fragment": MaterialRole.MODIFIER,
}


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def _role_from_marker(marker: str | None) -> MaterialRole | None:
    return _ROLE_MARKERS.get(_normalize(marker))


def classify_item(item: RawItem, role_hint: MaterialRole | str | None = None) -> MaterialRole | None:
    """Return the item's role, or None when nothing identifies it."""
    if role_hint is not None:
        hinted = role_hint if isinstance(role_hint, MaterialRole) else _role_from_marker(role_hint)
        if hinted is not None:
            return hinted

    marked = _role_from_marker(item.role_marker)
    if marked is not None:
        return marked

    tags = {_normalize(tag) for tag in item.tags if tag}
    for role, recognized in ROLE_TAGS:
        if tags & recognized:
            return role

    name = _normalize(item.display_name)
    if any(known in name for known in KNOWN_CATALYST_NAMES):
        return MaterialRole.CATALYST

    if _normalize(item.content_type) in TEMPLATE_CONTENT_TYPES:
        return MaterialRole.TEMPLATE
    if _normalize(item.fragment_kind) in MODIFIER_FRAGMENT_KINDS:
        return MaterialRole.MODIFIER

    return None


def _vessel_metadata(item: RawItem) -> VesselMetadata:
    config = parse_vessel_config(item.private_text)
    return VesselMetadata(
        requirement_bounds=config.requirement_bounds or RequirementBounds(),
        configuration=config.configuration,
        sections=config.sections,
        identity=item.deity or config.identity,
        level_adjustment=config.level_adjustment or LevelAdjustment.parse(item.level_adjustment),
    )


def extract_material(item: RawItem, role_hint: MaterialRole | str | None = None) -> Material:
    role = classify_item(item, role_hint)
    if role is None:
        logger.warning("Rejecting unclassifiable material %s (%s).", item.id, item.display_name)
        raise ClassificationError(item.id, item.display_name)

    if role is MaterialRole.VESSEL:
        metadata = _vessel_metadata(item)
    elif role is MaterialRole.CATALYST:
        metadata = CatalystMetadata(
            identity=item.deity,
            aspect=item.aspect,
            level_adjustment=LevelAdjustment.parse(item.level_adjustment),
        )
    elif role is MaterialRole.TEMPLATE:
        metadata = TemplateMetadata(
            structured_reference=item.structured_reference or None,
            source_content_type=_normalize(item.content_type) or None,
        )
    else:
        metadata = ModifierMetadata()

    return Material(
        id=item.id,
        display_name=item.display_name,
        public_text=item.public_text,
        private_text=item.private_text,
        rarity_tier=RARITY_TIERS.get(_normalize(item.rarity), 0),
        role_metadata=metadata,
    )


def extract_materials(
    items: list[RawItem],
    role_hints: dict[str, MaterialRole | str] | None = None,
) -> list[Material]:
    hints = role_hints or {}
    materials = [extract_material(item, hints.get(item.id)) for item in items]
    logger.info(
        "Classified %s materials: %s",
        len(materials),
        ", ".join(f"{m.display_name}={m.role.value}" for m in materials),
    )
    return materials
