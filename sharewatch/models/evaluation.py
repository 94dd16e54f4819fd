"""Evaluation output models."""

from typing import Any

from pydantic import BaseModel, Field

from sharewatch.models.rule import Action, Operator


class ConditionEvidence(BaseModel):
    """A condition's outcome rendered for audit and explainability."""

    field: str = Field(..., description="Condition field")
    operator: Operator = Field(..., description="Condition operator")
    threshold: Any = Field(default=None, description="Configured threshold value")
    actual: Any = Field(default=None, description="Observed value, None on failure")
    matched: bool = Field(..., description="Whether the condition matched")
    related_session_ids: list[str] | None = Field(
        default=None,
        description="Other sessions that contributed to the outcome",
    )
    details: dict[str, Any] | None = Field(default=None, description="Evaluator specifics")


class GroupEvidence(BaseModel):
    """Outcome of one OR-group and all of its conditions."""

    group_index: int = Field(..., ge=0)
    matched: bool
    conditions: list[ConditionEvidence] = Field(default_factory=list)


class EvaluationResult(BaseModel):
    """Result of evaluating one rule."""

    rule_id: str
    rule_name: str
    matched: bool
    matched_groups: list[int] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    evidence: list[GroupEvidence] | None = Field(
        default=None,
        description="Group evidence, only populated when the rule matched",
    )
