"""Domain layer — derivation, rule payloads, and session models.

This layer depends only on stdlib and pydantic.
It must never import from services, infrastructure, commands, or config.
"""
