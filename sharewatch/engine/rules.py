"""Rule evaluation: OR within condition groups, AND across groups.

Both evaluation paths share one coroutine-based core. The asynchronous path
awaits evaluators that return awaitables, fanning out the conditions of a
single group concurrently; groups always run one after another so a failing
group stops the walk. The synchronous path drives the same core without an
event loop and treats any awaitable evaluator result as a configuration
error for that condition.
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Coroutine, Iterable, Mapping
from typing import Any, TypeVar

from sharewatch.core.config import get_settings
from sharewatch.core.logging import get_logger
from sharewatch.engine.evaluators import EVALUATOR_REGISTRY, get_evaluator
from sharewatch.engine.types import ConditionEvaluator, EvaluationContext, EvaluatorResult
from sharewatch.models.evaluation import ConditionEvidence, EvaluationResult, GroupEvidence
from sharewatch.models.rule import Condition, ConditionField, ConditionGroup, Rule, RuleConditions
from sharewatch.observability.metrics import (
    CONDITION_FAILURES,
    RULE_EVALUATION_LATENCY,
    RULES_EVALUATED,
    RULES_MATCHED,
)
from sharewatch.observability.tracing import TraceContext

logger = get_logger(__name__)

T = TypeVar("T")

# Fields whose value can change when only a session's transcode decision
# changes mid-stream. Source resolution and bitrate are fixed by the media.
TRANSCODE_CONDITION_FIELDS: frozenset[ConditionField] = frozenset({
    ConditionField.IS_TRANSCODING,
    ConditionField.IS_TRANSCODE_DOWNGRADE,
    ConditionField.OUTPUT_RESOLUTION,
})


class PendingEvaluationError(RuntimeError):
    """Evaluation suspended while being driven synchronously."""


def has_transcode_conditions(rule: Rule) -> bool:
    """Check if any condition of the rule depends on transcode state.

    Used to pick the rules to re-evaluate when a session switches between
    direct play and transcoding.
    """
    if rule.conditions is None:
        return False
    return any(
        ConditionField.lookup(condition.field) in TRANSCODE_CONDITION_FIELDS
        for group in rule.conditions.groups
        for condition in group.conditions
    )


def _run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine that is expected to finish without suspending."""
    try:
        coro.send(None)
    except StopIteration as stop:
        return stop.value
    coro.close()
    raise PendingEvaluationError("Rule evaluation suspended on the synchronous path")


def _discard(pending: Awaitable[Any]) -> None:
    """Release an awaitable that will never be awaited."""
    if inspect.iscoroutine(pending):
        pending.close()
    elif isinstance(pending, asyncio.Future):
        pending.cancel()


def _failed_evidence(condition: Condition, reason: str) -> ConditionEvidence:
    if get_settings().metrics_enabled:
        CONDITION_FAILURES.labels(reason=reason).inc()
    return ConditionEvidence(
        field=condition.field_name,
        operator=condition.operator,
        threshold=condition.value,
        actual=None,
        matched=False,
    )


def _to_evidence(condition: Condition, result: EvaluatorResult) -> ConditionEvidence:
    """Convert an evaluator result to condition evidence."""
    return ConditionEvidence(
        field=condition.field_name,
        operator=condition.operator,
        threshold=condition.value,
        actual=result.actual,
        matched=bool(result.matched),
        related_session_ids=list(result.related_session_ids) if result.related_session_ids else None,
        details=dict(result.details) if result.details else None,
    )


class RuleEngine:
    """Evaluates rules against an evaluation context."""

    def __init__(self, registry: Mapping[ConditionField, ConditionEvaluator] = EVALUATOR_REGISTRY):
        """Initialize engine.

        Args:
            registry: Field evaluators, the built-in registry by default
        """
        self._registry = registry

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    def _start_condition(
        self, context: EvaluationContext, condition: Condition
    ) -> ConditionEvidence | Awaitable[EvaluatorResult]:
        """Run an evaluator, returning evidence or its pending result."""
        evaluator = get_evaluator(condition.field, self._registry)
        if evaluator is None:
            logger.warning(
                "No evaluator found for condition field",
                field=condition.field_name,
                rule_id=context.rule_id,
            )
            return _failed_evidence(condition, "unknown_field")

        try:
            result = evaluator(context, condition)
        except Exception as e:
            logger.error(
                "Error evaluating condition",
                field=condition.field_name,
                rule_id=context.rule_id,
                error=str(e),
                exc_info=True,
            )
            return _failed_evidence(condition, "error")

        if inspect.isawaitable(result):
            return result
        return self._convert(context, condition, result)

    def _convert(
        self, context: EvaluationContext, condition: Condition, result: Any
    ) -> ConditionEvidence:
        """Turn an evaluator result into evidence, failing closed on a malformed one."""
        try:
            return _to_evidence(condition, result)
        except Exception as e:
            logger.error(
                "Invalid evaluator result",
                field=condition.field_name,
                rule_id=context.rule_id,
                error=str(e),
                exc_info=True,
            )
            return _failed_evidence(condition, "error")

    async def _settle_condition(
        self,
        context: EvaluationContext,
        condition: Condition,
        pending: Awaitable[EvaluatorResult],
    ) -> ConditionEvidence:
        try:
            result = await pending
        except Exception as e:
            logger.error(
                "Error evaluating condition",
                field=condition.field_name,
                rule_id=context.rule_id,
                error=str(e),
                exc_info=True,
            )
            return _failed_evidence(condition, "error")
        return self._convert(context, condition, result)

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    async def _evaluate_group(
        self,
        context: EvaluationContext,
        group: ConditionGroup,
        allow_pending: bool,
    ) -> tuple[bool, list[ConditionEvidence]]:
        """Evaluate every condition of a group, then OR the outcomes.

        No short-circuit: all conditions run so evidence is complete.
        """
        if not group.conditions:
            return True, []

        started = [self._start_condition(context, condition) for condition in group.conditions]
        pending = [i for i, item in enumerate(started) if not isinstance(item, ConditionEvidence)]

        if pending and allow_pending:
            settled = await asyncio.gather(*(
                self._settle_condition(context, group.conditions[i], started[i])
                for i in pending
            ))
            for i, evidence in zip(pending, settled):
                started[i] = evidence
        else:
            for i in pending:
                condition = group.conditions[i]
                _discard(started[i])
                logger.warning(
                    "Async evaluator called synchronously",
                    field=condition.field_name,
                    rule_id=context.rule_id,
                )
                started[i] = _failed_evidence(condition, "pending")

        conditions: list[ConditionEvidence] = started  # type: ignore[assignment]
        return any(c.matched for c in conditions), conditions

    async def _evaluate_groups(
        self,
        context: EvaluationContext,
        conditions: RuleConditions,
        allow_pending: bool,
    ) -> tuple[list[int] | None, list[GroupEvidence]]:
        """Walk groups in order, stopping at the first group that fails.

        Returns:
            Tuple of (matched group indexes or None on failure, evidence of
            every evaluated group)
        """
        matched_groups: list[int] = []
        evidence: list[GroupEvidence] = []

        for index, group in enumerate(conditions.groups):
            matched, condition_evidence = await self._evaluate_group(context, group, allow_pending)
            evidence.append(
                GroupEvidence(group_index=index, matched=matched, conditions=condition_evidence)
            )
            if not matched:
                return None, evidence
            matched_groups.append(index)

        return matched_groups, evidence

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    async def _evaluate(self, context: EvaluationContext, allow_pending: bool) -> EvaluationResult:
        rule = context.rule
        if rule is None:
            raise ValueError("EvaluationContext has no rule attached")

        if rule.conditions is None:
            return EvaluationResult(rule_id=rule.id, rule_name=rule.name, matched=False)

        matched_groups, evidence = await self._evaluate_groups(
            context, rule.conditions, allow_pending
        )
        matched = matched_groups is not None

        return EvaluationResult(
            rule_id=rule.id,
            rule_name=rule.name,
            matched=matched,
            matched_groups=matched_groups or [],
            actions=list(rule.actions) if matched else [],
            evidence=evidence if matched else None,
        )

    def _record(self, result: EvaluationResult, mode: str, started_at: float) -> None:
        logger.debug(
            "Rule evaluated",
            rule_id=result.rule_id,
            matched=result.matched,
            matched_groups=result.matched_groups,
            mode=mode,
        )
        if not get_settings().metrics_enabled:
            return
        RULES_EVALUATED.labels(mode=mode).inc()
        RULE_EVALUATION_LATENCY.labels(mode=mode).observe(time.perf_counter() - started_at)
        if result.matched:
            RULES_MATCHED.labels(rule_id=result.rule_id).inc()

    def evaluate_rule(self, context: EvaluationContext) -> EvaluationResult:
        """Evaluate the context's rule synchronously.

        Evaluators returning awaitables fail closed instead of blocking.

        Args:
            context: Evaluation context with a rule attached

        Returns:
            Evaluation result, with evidence only when the rule matched
        """
        started_at = time.perf_counter()
        try:
            result = _run_sync(self._evaluate(context, allow_pending=False))
        except PendingEvaluationError as e:
            rule = context.rule
            logger.error("Synchronous rule evaluation suspended", rule_id=context.rule_id, error=str(e))
            result = EvaluationResult(rule_id=rule.id, rule_name=rule.name, matched=False)
        self._record(result, "sync", started_at)
        return result

    async def evaluate_rule_async(self, context: EvaluationContext) -> EvaluationResult:
        """Evaluate the context's rule, awaiting asynchronous evaluators.

        Args:
            context: Evaluation context with a rule attached

        Returns:
            Evaluation result, with evidence only when the rule matched
        """
        started_at = time.perf_counter()
        result = await self._evaluate(context, allow_pending=True)
        self._record(result, "async", started_at)
        return result

    # ------------------------------------------------------------------
    # Rule sets
    # ------------------------------------------------------------------

    def _applicable(self, base_context: EvaluationContext, rules: Iterable[Rule]) -> list[Rule]:
        """Active rules that are global or scoped to the context's server."""
        return [
            rule for rule in rules
            if rule.is_active and rule.applies_to_server(base_context.server.id)
        ]

    def evaluate_rules(self, base_context: EvaluationContext, rules: Iterable[Rule]) -> list[EvaluationResult]:
        """Evaluate many rules synchronously and return the matches.

        Args:
            base_context: Context shared by all rules; its rule is ignored
            rules: Candidate rules

        Returns:
            Results of the rules that matched, in input order
        """
        results: list[EvaluationResult] = []
        with TraceContext():
            for rule in self._applicable(base_context, rules):
                try:
                    result = self.evaluate_rule(base_context.with_rule(rule))
                except Exception as e:
                    logger.error("Error evaluating rule", rule_id=rule.id, error=str(e), exc_info=True)
                    continue
                if result.matched:
                    results.append(result)
        return results

    async def evaluate_rules_async(
        self, base_context: EvaluationContext, rules: Iterable[Rule]
    ) -> list[EvaluationResult]:
        """Asynchronous counterpart of :meth:`evaluate_rules`.

        Rules are evaluated one after another.
        """
        results: list[EvaluationResult] = []
        with TraceContext():
            for rule in self._applicable(base_context, rules):
                try:
                    result = await self.evaluate_rule_async(base_context.with_rule(rule))
                except Exception as e:
                    logger.error("Error evaluating rule", rule_id=rule.id, error=str(e), exc_info=True)
                    continue
                if result.matched:
                    results.append(result)
        return results


# Singleton instance
_engine: RuleEngine | None = None


def get_rule_engine() -> RuleEngine:
    """Get rule engine singleton."""
    global _engine
    if _engine is None:
        _engine = RuleEngine()
    return _engine


def evaluate_rule(context: EvaluationContext) -> EvaluationResult:
    """Evaluate one rule synchronously using the singleton engine."""
    return get_rule_engine().evaluate_rule(context)


async def evaluate_rule_async(context: EvaluationContext) -> EvaluationResult:
    """Evaluate one rule asynchronously using the singleton engine."""
    return await get_rule_engine().evaluate_rule_async(context)


def evaluate_rules(base_context: EvaluationContext, rules: Iterable[Rule]) -> list[EvaluationResult]:
    """Evaluate a rule set synchronously using the singleton engine."""
    return get_rule_engine().evaluate_rules(base_context, rules)


async def evaluate_rules_async(
    base_context: EvaluationContext, rules: Iterable[Rule]
) -> list[EvaluationResult]:
    """Evaluate a rule set asynchronously using the singleton engine."""
    return await get_rule_engine().evaluate_rules_async(base_context, rules)
