from dataclasses import dataclass, field
from typing import Any

CLASS_TRAITS = (
    "alchemist", "barbarian", "bard", "champion", "cleric", "druid", "fighter",
    "gunslinger", "inventor", "investigator", "kineticist", "magus", "monk",
    "oracle", "paladin", "psychic", "ranger", "rogue", "sorcerer", "summoner",
    "swashbuckler", "thaumaturge", "warlock", "witch", "wizard",
)

ANCESTRY_TRAITS = (
    "catfolk", "dwarf", "elf", "gnome", "goblin", "halfling", "human", "kobold",
    "leshy", "lizardfolk", "orc", "ratfolk", "tengu",
)

ACTION_TRAITS = (
    "attack", "auditory", "concentrate", "curse", "death", "detection", "disease",
    "downtime", "emotion", "exploration", "flourish", "fortune", "healing",
    "incapacitation", "linguistic", "manipulate", "mental", "misfortune", "morph",
    "move", "open", "poison", "polymorph", "possession", "press", "scrying",
    "secret", "stance", "summoning", "teleportation", "visual", "light", "darkness",
)

DAMAGE_TRAITS = (
    "acid", "bleed", "cold", "electricity", "fire", "force", "negative", "positive",
    "sonic", "vitality", "void",
)

SCHOOL_TRAITS = (
    "abjuration", "conjuration", "divination", "enchantment", "evocation",
    "illusion", "necromancy", "transmutation",
)

CATEGORY_TRAITS = ("general", "skill", "combat", "spellcasting", "archetype", "class", "ancestry")

RARITY_VALUES = ("common", "uncommon", "rare", "unique")

DEFAULT_TRAIT_VOCABULARY = frozenset(
    CLASS_TRAITS
    + ANCESTRY_TRAITS
    + ACTION_TRAITS
    + DAMAGE_TRAITS
    + SCHOOL_TRAITS
    + CATEGORY_TRAITS
    + ("uncommon", "rare", "unique")
)

# Narrative markers that introduce a precondition ("trigger") block. They only
# count at the start of a paragraph or line.
DEFAULT_PRECONDITION_PATTERNS = (
    r"<strong>\s*Trigger\s*</strong>",
    r"\bTrigger\s*:",
    r"<strong>\s*触发\s*</strong>",
    r"触发\s*[:：]",
)


@dataclass(frozen=True)
class ContentSchema:
    """Describes one kind of generated content object and its closed value sets."""

    kind: str
    label: str
    function_name: str
    function_description: str
    action_types: tuple[str, ...] = ("passive", "free", "reaction", "action")
    default_action_type: str = "passive"
    precondition_permitting: frozenset[str] = frozenset({"reaction", "free"})
    precondition_requiring: frozenset[str] = frozenset({"reaction"})
    precondition_expected: frozenset[str] = frozenset({"free"})
    precondition_patterns: tuple[str, ...] = DEFAULT_PRECONDITION_PATTERNS
    rarities: tuple[str, ...] = RARITY_VALUES
    default_rarity: str = "common"
    categories: tuple[str, ...] = ("general", "skill", "ancestry", "class", "bonus")
    default_category: str = "general"
    category_aliases: dict[str, str] = field(
        default_factory=lambda: {"archetype": "general", "combat": "general", "feat": "general"}
    )
    frequency_periods: tuple[str, ...] = (
        "turn", "round", "minute", "hour", "day", "week", "month", "year",
        "PT1M", "PT10M", "PT1H", "P1W", "P1M",
    )
    default_frequency_period: str = "PT10M"
    trait_vocabulary: frozenset[str] = DEFAULT_TRAIT_VOCABULARY
    mandated_traits: tuple[str, ...] = ()
    fixed_category: str | None = None
    design_focus: str = ""
    generation_rules: str = ""

    def tool_definition(self) -> dict[str, Any]:
        """Function-call contract sent with Generate and Format calls."""
        return {
            "type": "function",
            "function": {
                "name": self.function_name,
                "description": self.function_description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "description": f"{self.label} name"},
                        "description": {
                            "type": "object",
                            "properties": {
                                "value": {
                                    "type": "string",
                                    "minLength": 50,
                                    "description": "Full rules text as HTML paragraphs",
                                },
                                "gm": {"type": "string", "description": "Notes hidden from players"},
                            },
                            "required": ["value"],
                        },
                        "level": {"type": "integer", "minimum": 1, "maximum": 20},
                        "category": {"type": "string", "enum": list(self.categories)},
                        "action_type": {"type": "string", "enum": list(self.action_types)},
                        "actions": {
                            "type": ["integer", "null"],
                            "minimum": 1,
                            "maximum": 3,
                            "description": "Number of actions, only for action_type 'action'",
                        },
                        "traits": {"type": "array", "items": {"type": "string"}},
                        "rarity": {"type": "string", "enum": list(self.rarities)},
                        "frequency": {
                            "type": ["object", "null"],
                            "properties": {
                                "max": {"type": "integer", "minimum": 1},
                                "per": {"type": "string", "enum": list(self.frequency_periods)},
                            },
                        },
                        "prerequisites": {"type": "array", "items": {"type": "string"}},
                        "rules": {"type": "array", "items": {"type": "object"}},
                    },
                    "required": ["name", "description", "level", "action_type", "traits"],
                },
            },
        }

    def tool_choice(self) -> dict[str, Any]:
        return {"type": "function", "function": {"name": self.function_name}}


FEAT = ContentSchema(
    kind="feat",
    label="Feat",
    function_name="generate_feat",
    function_description="Return a complete feat rule entry",
    design_focus=(
        "A feat is a permanent character option. Focus on one clear, reusable "
        "mechanic that rewards a specific play pattern."
    ),
    generation_rules=(
        "- Reactions and free actions that respond to an event must include a "
        "<p><strong>Trigger</strong> ...</p> paragraph.\n"
        "- Passive feats and ordinary actions must not include a trigger paragraph.\n"
        "- Use action_type 'action' with actions 1-3 for activities, otherwise leave actions null."
    ),
)

TACTIC_ACTION = ContentSchema(
    kind="tactic",
    label="Tactic action",
    function_name="generate_tactic_action",
    function_description="Return a complete tactical action rule entry",
    categories=("class",),
    default_category="class",
    category_aliases={},
    fixed_category="class",
    mandated_traits=("tactic",),
    trait_vocabulary=DEFAULT_TRAIT_VOCABULARY | {"tactic", "commander"},
    design_focus=(
        "A tactic is an activity a commander issues to allies. Describe who is "
        "affected and what they may do in response."
    ),
    generation_rules=(
        "- Always include the 'tactic' trait.\n"
        "- Prefer action_type 'action' with 1 or 2 actions."
    ),
)

_SCHEMAS = {schema.kind: schema for schema in (FEAT, TACTIC_ACTION)}


def get_content_schema(kind: str) -> ContentSchema:
    try:
        return _SCHEMAS[kind]
    except KeyError:
        raise ValueError(f"Unknown content schema {kind!r}") from None
