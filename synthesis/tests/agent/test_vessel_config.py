from synthesis.agent.artifacts import LevelAdjustment
from synthesis.agent.vessel_config import (
    parse_config_lines,
    parse_flag,
    parse_requirement_bounds,
    parse_sections,
    parse_vessel_config,
    pick_section,
)

VESSEL_TEXT = """
<p>MODIFIERS_MIN: 2</p>
<p>MODIFIERS_MAX: 4</p>
<p>CATALYSTS_MAX: 1</p>
<p>LEVEL: 4</p>
<p>CATEGORY: Class</p>
<p>REQUIRED_TRAITS: Fighter, Flourish</p>
<p>EFFECTIVE_LEVEL: +2</p>
<p>USE_RULES_KNOWLEDGE: yes</p>
【Guidance】Favor reactive defenses.
【Theme】Storms and thunder.
"""


def test_parse_config_lines_reads_key_value_pairs_through_markup():
    config = parse_config_lines(VESSEL_TEXT)

    assert config["MODIFIERS_MIN"] == "2"
    assert config["LEVEL"] == "4"
    assert config["REQUIRED_TRAITS"] == "Fighter, Flourish"


def test_parse_config_lines_ignores_lowercase_keys_and_prose():
    assert parse_config_lines("Note: this is prose\nlevel: 3\nJust words") == {}


def test_parse_sections_splits_on_next_bracket():
    sections = parse_sections("【Guidance】Be bold.\n【Principles】Keep it simple.")

    assert sections == {"guidance": "Be bold.", "principles": "Keep it simple."}


def test_missing_sections_are_absent_not_errors():
    sections = parse_sections("no headers here")

    assert sections == {}
    assert pick_section(sections, "guidance") is None


def test_pick_section_accepts_legacy_headers():
    sections = parse_sections("【合成指导】Legacy guidance text")

    assert pick_section(sections, "guidance") == "Legacy guidance text"


def test_requirement_bounds_absent_when_no_keys_declared():
    assert parse_requirement_bounds({"LEVEL": "3"}) is None


def test_requirement_bounds_fill_defaults_for_undeclared_roles():
    bounds = parse_requirement_bounds(parse_config_lines(VESSEL_TEXT))

    assert (bounds.modifier.min, bounds.modifier.max) == (2, 4)
    assert (bounds.catalyst.min, bounds.catalyst.max) == (0, 1)
    assert (bounds.template.min, bounds.template.max) == (0, 1)


def test_requirement_bounds_clamp_max_below_min():
    bounds = parse_requirement_bounds({"FRAGMENTS_MIN": "3", "FRAGMENTS_MAX": "1"})

    assert bounds.modifier.min == 3
    assert bounds.modifier.max == 3


def test_parse_flag_is_lenient():
    assert parse_flag("True") is True
    assert parse_flag("yes") is True
    assert parse_flag("0") is False
    assert parse_flag("false") is False
    assert parse_flag("maybe") is None


def test_parse_vessel_config_collects_target_fields():
    config = parse_vessel_config(VESSEL_TEXT)

    assert config.level == 4
    assert config.category == "class"
    assert config.required_traits == ["fighter", "flourish"]
    assert config.level_adjustment == LevelAdjustment(mode="relative", value=2)
    assert config.use_rules_knowledge is True
    assert pick_section(config.sections, "theme") == "Storms and thunder."


def test_parse_vessel_config_drops_unknown_complexity():
    assert parse_vessel_config("MECHANISM_COMPLEXITY: extreme").mechanism_complexity is None
    assert parse_vessel_config("MECHANISM_COMPLEXITY: Simple").mechanism_complexity == "simple"
