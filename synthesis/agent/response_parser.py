import json
import logging
import re
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from synthesis.agent.artifacts import CandidateObject
from synthesis.core.config import settings

logger = logging.getLogger(__name__)


class ParseFailure(Exception):
    """No strategy recovered a usable payload from a service response."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ParsedPayload(BaseModel):
    strategy: str
    candidate: CandidateObject


_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*[^\S\n]*\n?([\s\S]*?)```")


def _text_candidates(text: str) -> list[str]:
    """Fenced blocks first, in order, then the whole reply as written."""
    if not text:
        return []
    fenced = [block.strip() for block in _FENCE_RE.findall(text) if block.strip()]
    return fenced + [text.strip()]


def fix_common_json_errors(text: str) -> str:
    fixed = re.sub(r",\s*([}\]])", r"\1", text)
    fixed = re.sub(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:", r'\1"\2":', fixed)
    return fixed


def _load_json_object(raw: Any) -> dict | None:
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        loaded = json.loads(raw, strict=False)
    except json.JSONDecodeError:
        try:
            loaded = json.loads(fix_common_json_errors(raw), strict=False)
        except json.JSONDecodeError:
            return None
    return loaded if isinstance(loaded, dict) else None


def _message(raw: Any) -> dict:
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        return {}
    choices = raw.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return {}
    message = choices[0].get("message")
    return message if isinstance(message, dict) else {}


def _from_tool_calls(message: dict) -> dict | None:
    tool_calls = message.get("tool_calls")
    if not tool_calls:
        return None
    function = (tool_calls[0] or {}).get("function") or {}
    return _load_json_object(function.get("arguments"))


def _from_function_call(message: dict) -> dict | None:
    function_call = message.get("function_call")
    if not isinstance(function_call, dict):
        return None
    return _load_json_object(function_call.get("arguments"))


def _from_content_list(message: dict) -> dict | None:
    content = message.get("content")
    if not isinstance(content, list):
        return None
    for block in content:
        if isinstance(block, dict) and block.get("type") == "tool_use":
            return _load_json_object(block.get("input"))
    return None


def _from_content_block(message: dict) -> dict | None:
    content = message.get("content")
    if isinstance(content, dict) and content.get("type") == "tool_use":
        return _load_json_object(content.get("input"))
    return None


def _from_text(message: dict) -> dict | None:
    content = message.get("content")
    if not isinstance(content, str):
        return None
    for text in _text_candidates(content):
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            continue
        payload = _load_json_object(text[start:end + 1])
        if payload is not None:
            return payload
    return None


STRATEGIES: tuple[tuple[str, Callable[[dict], dict | None]], ...] = (
    ("tool_calls", _from_tool_calls),
    ("function_call", _from_function_call),
    ("content_list_tool_use", _from_content_list),
    ("content_tool_use", _from_content_block),
    ("text_json", _from_text),
)


def extract_payload(raw: Any) -> tuple[str, dict]:
    """Run the extraction strategies in order and return the first usable payload."""
    if isinstance(raw, str):
        message: dict = {"content": raw}
    else:
        message = _message(raw)
    if not message:
        raise ParseFailure("Response has no message to parse")

    for name, strategy in STRATEGIES:
        payload = strategy(message)
        if payload is not None:
            logger.info("Recovered payload using strategy %s.", name)
            return name, payload
    raise ParseFailure("No extraction strategy produced a JSON object")


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _unwrap_value(value: Any) -> Any:
    if isinstance(value, dict) and "value" in value:
        return value["value"]
    return value


def _normalize_prerequisites(value: Any) -> list[str]:
    value = _unwrap_value(value)
    if value is None:
        return []
    if isinstance(value, (str, dict)):
        value = [value]
    normalized: list[str] = []
    for entry in value:
        if isinstance(entry, dict):
            entry = _first(entry.get("value"), entry.get("label"), entry.get("name"))
        if isinstance(entry, str) and entry.strip():
            normalized.append(entry.strip())
    return normalized


def normalize_payload(payload: dict) -> dict:
    """
    Map flat or nested (`system.*`) payload shapes onto the CandidateObject fields.
    Unrecognized top-level keys are carried through untouched.
    """
    system = payload.get("system") if isinstance(payload.get("system"), dict) else {}

    description = _first(payload.get("description"), system.get("description"))
    if isinstance(description, str):
        description = {"value": description}
    if not isinstance(description, dict):
        description = {}
    description = {
        "value": str(description.get("value") or ""),
        "gm": str(description.get("gm") or ""),
    }

    traits_field = _first(payload.get("traits"), system.get("traits"))
    traits = _unwrap_value(traits_field) or []
    if isinstance(traits, str):
        traits = [t.strip() for t in traits.split(",")]
    elif not isinstance(traits, list):
        traits = []
    rarity = _first(
        payload.get("rarity"),
        traits_field.get("rarity") if isinstance(traits_field, dict) else None,
    )

    action_type = _unwrap_value(_first(payload.get("action_type"), payload.get("actionType"), system.get("actionType")))
    actions = _unwrap_value(_first(payload.get("actions"), system.get("actions")))
    level = _unwrap_value(_first(payload.get("level"), system.get("level")))

    frequency = _first(payload.get("frequency"), system.get("frequency"))
    if isinstance(frequency, dict):
        frequency = {
            "max": _coerce_int(frequency.get("max"), default=1),
            "per": str(frequency.get("per") or "day"),
        }
    else:
        frequency = None

    rules = _first(payload.get("rules"), system.get("rules"))
    if not isinstance(rules, list):
        rules = []

    normalized = {
        key: value
        for key, value in payload.items()
        if key not in {"system", "actionType"} and not key.startswith("_")
    }
    normalized.update(
        {
            "name": str(payload.get("name") or "").strip(),
            "description": description,
            "level": _coerce_int(level, default=1),
            "category": _unwrap_value(_first(payload.get("category"), system.get("category"))),
            "action_type": str(action_type or "passive"),
            "actions": _coerce_int(actions, default=None),
            "traits": [str(t) for t in traits if t],
            "rarity": str(rarity or "common"),
            "frequency": frequency,
            "prerequisites": _normalize_prerequisites(
                _first(payload.get("prerequisites"), system.get("prerequisites"))
            ),
            "rules": [rule for rule in rules if isinstance(rule, dict)],
        }
    )
    return normalized


def _coerce_int(value: Any, *, default: int | None) -> int | None:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return default


def build_candidate(payload: dict, *, min_description_length: int | None = None) -> CandidateObject:
    minimum = settings.DESCRIPTION_MIN_LENGTH if min_description_length is None else min_description_length
    normalized = normalize_payload(payload)
    if not normalized["name"]:
        raise ParseFailure("Payload is missing a name")
    description = normalized["description"]["value"].strip()
    if len(description) < minimum:
        raise ParseFailure(
            f"Description too short ({len(description)} < {minimum} characters)"
        )
    try:
        return CandidateObject.model_validate(normalized)
    except ValidationError as e:
        raise ParseFailure(f"Payload does not match the content schema: {e}") from e


def parse_candidate_response(raw: Any, *, min_description_length: int | None = None) -> ParsedPayload:
    strategy, payload = extract_payload(raw)
    candidate = build_candidate(payload, min_description_length=min_description_length)
    return ParsedPayload(strategy=strategy, candidate=candidate)
