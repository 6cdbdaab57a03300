"""Domain layer: config model, resolution, and validation algorithms.

This layer depends only on stdlib and pydantic.
It must never import from services, infrastructure, commands, or config.
"""
