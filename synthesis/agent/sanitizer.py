import logging
import re

from synthesis.agent.artifacts import CandidateObject, Diagnostic, Frequency
from synthesis.agent.content_schema import ContentSchema

logger = logging.getLogger(__name__)

BOOKKEEPING_FIELDS = frozenset({"pipeline_attempts", "raw_stage_payload", "stage", "strategy"})

_EMPTY_PARAGRAPH_RE = re.compile(r"<p>\s*(?:&nbsp;|<br\s*/?>)?\s*</p>", re.IGNORECASE)
_LEADING_HR_RE = re.compile(r"^\s*<hr\s*/?>\s*", re.IGNORECASE)
_TRAILING_HR_RE = re.compile(r"\s*<hr\s*/?>\s*$", re.IGNORECASE)
_DOUBLE_HR_RE = re.compile(r"(<hr\s*/?>\s*){2,}", re.IGNORECASE)


def _paragraph_marker(pattern: str) -> str:
    return rf"<p(?:\s[^>]*)?>\s*{pattern}"


def _line_marker(pattern: str) -> str:
    return rf"^[^\S\n]*{pattern}"


def has_precondition(text: str, schema: ContentSchema) -> bool:
    text = text or ""
    for pattern in schema.precondition_patterns:
        if re.search(_paragraph_marker(pattern), text, re.IGNORECASE):
            return True
        if re.search(_line_marker(pattern), text, re.IGNORECASE | re.MULTILINE):
            return True
    return False


def strip_precondition(text: str, schema: ContentSchema) -> str:
    """Remove paragraphs and lines that open with a precondition marker, then tidy the separators left behind."""
    cleaned = text
    for pattern in schema.precondition_patterns:
        cleaned = re.sub(rf"{_paragraph_marker(pattern)}[\s\S]*?</p>", "", cleaned, flags=re.IGNORECASE)
        cleaned = re.sub(rf"{_line_marker(pattern)}.*$\n?", "", cleaned, flags=re.IGNORECASE | re.MULTILINE)
    cleaned = _EMPTY_PARAGRAPH_RE.sub("", cleaned)
    cleaned = _DOUBLE_HR_RE.sub("<hr />", cleaned)
    cleaned = _LEADING_HR_RE.sub("", cleaned)
    cleaned = _TRAILING_HR_RE.sub("", cleaned)
    return cleaned.strip()


def _coerce(
    value: str | None,
    allowed: tuple[str, ...],
    default: str,
    field: str,
    diagnostics: list[Diagnostic],
    aliases: dict[str, str] | None = None,
) -> str:
    normalized = (value or "").strip()
    if normalized in allowed:
        return normalized
    lowered = normalized.lower()
    if lowered in allowed:
        return lowered
    replacement = (aliases or {}).get(lowered, default)
    if normalized:
        message = f"Invalid {field} {value!r} replaced with {replacement!r}"
    else:
        message = f"Missing {field} set to {replacement!r}"
    diagnostics.append(Diagnostic(code="enum_coerced", field=field, message=message))
    logger.info("Coerced %s from %r to %r.", field, value, replacement)
    return replacement


def _clean_traits(
    traits: list[str],
    schema: ContentSchema,
    required: list[str],
    diagnostics: list[Diagnostic],
) -> list[str]:
    kept: list[str] = []
    dropped: list[str] = []
    for trait in traits:
        normalized = str(trait).strip().lower()
        if not normalized or normalized in kept:
            continue
        if normalized in schema.trait_vocabulary:
            kept.append(normalized)
        else:
            dropped.append(normalized)
    if dropped:
        logger.info("Dropped unrecognized traits: %s", ", ".join(dropped))
        diagnostics.append(
            Diagnostic(code="traits_dropped", field="traits", message=f"Dropped traits: {', '.join(dropped)}")
        )
    for trait in list(required) + list(schema.mandated_traits):
        normalized = trait.strip().lower()
        if normalized and normalized not in kept:
            kept.append(normalized)
    return kept


def sanitize_candidate(
    candidate: CandidateObject,
    schema: ContentSchema,
    *,
    required_traits: list[str] | None = None,
    category: str | None = None,
) -> tuple[CandidateObject, list[Diagnostic]]:
    """
    Coerce closed-set fields, repair the trigger invariant, clean traits and drop
    bookkeeping fields. Problems become diagnostics, never exceptions.
    """
    diagnostics: list[Diagnostic] = []
    data = candidate.model_dump()
    for key in list(data):
        if key in BOOKKEEPING_FIELDS or key.startswith("_"):
            data.pop(key)

    action_type = _coerce(
        data.get("action_type"), schema.action_types, schema.default_action_type, "action_type", diagnostics
    )
    data["action_type"] = action_type
    data["rarity"] = _coerce(data.get("rarity"), schema.rarities, schema.default_rarity, "rarity", diagnostics)

    data["category"] = _coerce(
        schema.fixed_category or category or data.get("category"),
        schema.categories,
        schema.default_category,
        "category",
        diagnostics,
        aliases=schema.category_aliases,
    )

    frequency = data.get("frequency")
    if frequency:
        per = _coerce(
            frequency.get("per"),
            schema.frequency_periods,
            schema.default_frequency_period,
            "frequency.per",
            diagnostics,
        )
        data["frequency"] = Frequency(max=max(1, frequency.get("max") or 1), per=per).model_dump()

    if action_type == "action":
        actions = data.get("actions")
        if not isinstance(actions, int) or not 1 <= actions <= 3:
            diagnostics.append(
                Diagnostic(code="actions_defaulted", field="actions", message=f"Invalid action count {actions!r} set to 1")
            )
            data["actions"] = 1
    elif data.get("actions") is not None:
        data["actions"] = None

    description = data["description"]["value"]
    if has_precondition(description, schema):
        if action_type not in schema.precondition_permitting:
            data["description"]["value"] = strip_precondition(description, schema)
            logger.warning(
                "Removed trigger text from %s because action type %s does not allow one.",
                data.get("name"),
                action_type,
            )
            diagnostics.append(
                Diagnostic(
                    code="trigger_repaired",
                    field="description",
                    message=f"Trigger text removed: action type {action_type!r} does not permit a trigger",
                )
            )
    elif action_type in schema.precondition_requiring:
        diagnostics.append(
            Diagnostic(
                code="trigger_missing",
                field="description",
                message=f"Action type {action_type!r} normally declares a trigger but none was found",
            )
        )
    elif action_type in schema.precondition_expected:
        diagnostics.append(
            Diagnostic(
                code="trigger_missing",
                field="description",
                message=f"Action type {action_type!r} has no trigger; check it is not meant to respond to an event",
            )
        )

    data["traits"] = _clean_traits(data.get("traits") or [], schema, required_traits or [], diagnostics)
    data["prerequisites"] = [p.strip() for p in data.get("prerequisites") or [] if p and p.strip()]

    return CandidateObject.model_validate(data), diagnostics
