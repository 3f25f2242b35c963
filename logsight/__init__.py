"""Logsight: log-to-insight analysis pipeline backed by remote LLMs."""

__version__ = "1.0.0"
