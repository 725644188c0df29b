from synthesis.agent.artifacts import (
    NON_VESSEL_ROLES,
    Material,
    MaterialRole,
    RequirementBounds,
    ValidationResult,
)

RARE_TIER = 2
MAX_RARE_MATERIALS = 3

ROLE_LABELS = {
    MaterialRole.VESSEL: "Vessel",
    MaterialRole.CATALYST: "Catalyst",
    MaterialRole.TEMPLATE: "Template",
    MaterialRole.MODIFIER: "Modifier",
}


def _partition(materials: list[Material]) -> dict[MaterialRole, list[Material]]:
    breakdown: dict[MaterialRole, list[Material]] = {role: [] for role in MaterialRole}
    for material in materials:
        breakdown[material.role].append(material)
    return breakdown


def _vessel_bounds(vessel: Material | None) -> RequirementBounds:
    if vessel is None:
        return RequirementBounds()
    return vessel.role_metadata.requirement_bounds


def validate_materials(materials: list[Material], vessel: Material | None = None) -> ValidationResult:
    """
    Check a material set against the quantity bounds its Vessel declares.

    `materials` may or may not include the Vessel; when `vessel` is given and not
    already present it is counted as well. Inputs are never mutated, and the
    result depends only on the inputs.
    """
    pool = list(materials)
    if vessel is not None and all(m.id != vessel.id for m in pool):
        pool.insert(0, vessel)

    breakdown = _partition(pool)
    errors: list[str] = []
    warnings: list[str] = []
    suggestions: list[str] = []

    vessels = breakdown[MaterialRole.VESSEL]
    if not vessels:
        errors.append("A Vessel is required: add exactly one Vessel material")
    elif len(vessels) > 1:
        names = ", ".join(v.display_name for v in vessels)
        errors.append(f"Only one Vessel may be used per synthesis, found {len(vessels)}: {names}")

    anchor = vessels[0] if vessels else None
    bounds = _vessel_bounds(anchor)

    for role in NON_VESSEL_ROLES:
        bound = bounds.for_role(role)
        count = len(breakdown[role])
        label = ROLE_LABELS[role]
        if count < bound.min:
            errors.append(f"{label} minimum not met: need at least {bound.min}, found {count}")
        elif bound.max is not None and count > bound.max:
            warnings.append(f"{label} count {count} exceeds the recommended maximum of {bound.max}")

    vessel_identity = anchor.role_metadata.identity if anchor is not None else None
    if vessel_identity:
        for catalyst in breakdown[MaterialRole.CATALYST]:
            identity = catalyst.role_metadata.identity
            if identity and identity.strip().lower() != vessel_identity.strip().lower():
                warnings.append(
                    f"Catalyst {catalyst.display_name} is aligned with {identity}, "
                    f"but the Vessel is aligned with {vessel_identity}"
                )
                suggestions.append(f"Use a Catalyst aligned with {vessel_identity} for a coherent theme")

    rare_count = sum(1 for m in pool if m.rarity_tier >= RARE_TIER)
    if rare_count > MAX_RARE_MATERIALS:
        warnings.append(
            f"{rare_count} rare or unique materials may produce an unbalanced result"
        )

    if not breakdown[MaterialRole.MODIFIER]:
        suggestions.append("Add a Modifier to give the result distinctive flavor")
    if not breakdown[MaterialRole.TEMPLATE]:
        suggestions.append("Consider adding a Template as a structural reference")

    return ValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        suggestions=suggestions,
        breakdown_by_role=breakdown,
    )
