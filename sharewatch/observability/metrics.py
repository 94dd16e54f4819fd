"""Prometheus metrics definitions."""

from prometheus_client import Counter, Histogram

# Rule metrics
RULES_EVALUATED = Counter(
    "sharewatch_rules_evaluated_total",
    "Total number of rule evaluations",
    ["mode"],
)

RULES_MATCHED = Counter(
    "sharewatch_rules_matched_total",
    "Total number of rule matches",
    ["rule_id"],
)

RULE_EVALUATION_LATENCY = Histogram(
    "sharewatch_rule_evaluation_seconds",
    "Rule evaluation latency in seconds",
    ["mode"],
    buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1),
)

# Condition metrics
CONDITION_FAILURES = Counter(
    "sharewatch_condition_failures_total",
    "Conditions that failed closed",
    ["reason"],
)
