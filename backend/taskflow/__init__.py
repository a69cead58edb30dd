"""TaskFlow: task lifecycle and workspace authorization service."""

__version__ = "0.1.0"
