"""mnemo — long-term memory for agents, partitioned per project."""

__version__ = "2.0.0"
