"""Domain models shared by the rule engine and its callers."""
