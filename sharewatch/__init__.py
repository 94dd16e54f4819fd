"""Account-sharing and anomalous-usage rule evaluation for media servers."""

__version__ = "0.1.0"
