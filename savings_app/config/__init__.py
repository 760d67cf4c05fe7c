"""
Configuration module.

Frozen dataclass defaults, YAML overrides and validation for the engine's
settings and for owner-supplied plan configurations.
"""
