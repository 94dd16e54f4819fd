"""Condition and rule evaluation engine."""
