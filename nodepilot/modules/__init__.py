"""
nodepilot modules.

Each subpackage is a black box with a narrow interface:
remote (sessions and commands), telemetry, deploy, diagnostics, images,
storage and api (shared models).
"""
