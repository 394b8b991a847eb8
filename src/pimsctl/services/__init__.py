"""Service layer — resolver, reconciler, taggers, and session operations.

Services may import from domain, infrastructure, and plugins.
They must never import from commands or output.
"""
