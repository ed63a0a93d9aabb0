"""nodepilot - remote node telemetry and container orchestration over SSH."""

__version__ = "1.0.0"
