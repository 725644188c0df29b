from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from synthesis.agent.artifacts import ValidationResult


class SynthesisError(Exception):
    """Base class for errors that end a synthesis request without a result."""


class ClassificationError(SynthesisError):
    def __init__(self, item_id: str, display_name: str | None = None):
        self.item_id = item_id
        self.display_name = display_name
        label = f"{display_name} ({item_id})" if display_name else item_id
        super().__init__(f"Material {label} cannot be assigned a role")


class RequirementError(SynthesisError):
    def __init__(self, validation: ValidationResult):
        self.validation = validation
        super().__init__("; ".join(validation.errors) or "Material requirements not met")


class GenerationFailed(SynthesisError):
    def __init__(self, stage: str, reason: str, attempts: int = 1):
        self.stage = stage
        self.reason = reason
        self.attempts = attempts
        super().__init__(f"{stage} stage failed after {attempts} attempt(s): {reason}")


class QuotaExceeded(SynthesisError):
    def __init__(self, identity: str, amount: int):
        self.identity = identity
        self.amount = amount
        super().__init__(f"Identity {identity} has insufficient quota for {amount} point(s)")


class GenerativeServiceError(Exception):
    """Transport-level failure talking to the generative service."""
