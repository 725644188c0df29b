import json

import pytest

from synthesis.agent.content_schema import FEAT, TACTIC_ACTION, get_content_schema
from synthesis.agent.knowledge import KnowledgeBase, KnowledgeExample
from synthesis.agent.sanitizer import sanitize_candidate
from synthesis.agent.response_parser import build_candidate
from synthesis.tests.factories import candidate_payload


def test_knowledge_base_loads_from_json(tmp_path):
    path = tmp_path / "knowledge.json"
    path.write_text(
        json.dumps(
            {
                "class_guides": {"Fighter": "Fighters excel with weapons."},
                "format_guidance": "Wrap paragraphs in <p>.",
                "examples": [{"name": "Power Attack", "class_name": "Fighter", "level": 1, "text": "Two actions."}],
            }
        ),
        encoding="utf-8",
    )

    knowledge = KnowledgeBase.from_file(path)

    assert knowledge.class_guide("fighter") == "Fighters excel with weapons."
    assert knowledge.class_guide("wizard") is None
    assert knowledge.class_guide(None) is None
    assert knowledge.format_guidance == "Wrap paragraphs in <p>."


def test_find_examples_ranks_by_shared_attributes():
    knowledge = KnowledgeBase(
        examples=[
            KnowledgeExample(name="Unrelated", class_name="Wizard", level=18, text="..."),
            KnowledgeExample(name="Close level", class_name="Rogue", level=3, text="..."),
            KnowledgeExample(name="Same class", class_name="Fighter", level=12, category="class", text="..."),
        ]
    )

    found = knowledge.find_examples(class_name="Fighter", level=2, category="class")

    assert [e.name for e in found] == ["Same class", "Close level"]


def test_find_examples_respects_limit():
    knowledge = KnowledgeBase(
        examples=[KnowledgeExample(name=f"Ex {i}", class_name="Fighter", text="...") for i in range(5)]
    )

    assert len(knowledge.find_examples(class_name="fighter", limit=2)) == 2


def test_get_content_schema_by_kind():
    assert get_content_schema("feat") is FEAT
    assert get_content_schema("tactic") is TACTIC_ACTION
    with pytest.raises(ValueError):
        get_content_schema("spell")


def test_tool_definition_names_the_forced_function():
    tool = TACTIC_ACTION.tool_definition()

    assert tool["function"]["name"] == "generate_tactic_action"
    assert TACTIC_ACTION.tool_choice() == {"type": "function", "function": {"name": "generate_tactic_action"}}
    assert tool["function"]["parameters"]["properties"]["category"]["enum"] == ["class"]


def test_tactic_schema_forces_category_and_trait():
    candidate = build_candidate(candidate_payload(category="skill", traits=["fighter"]))

    cleaned, diagnostics = sanitize_candidate(candidate, TACTIC_ACTION)

    assert cleaned.category == "class"
    assert cleaned.traits == ["fighter", "tactic"]
    assert diagnostics == []
