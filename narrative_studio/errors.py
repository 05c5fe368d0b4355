from __future__ import annotations


class GenerationFailure(RuntimeError):
    """Raised by the gateway when the generation service gives no usable result."""


class DecompositionFailure(GenerationFailure):
    pass


class RenderFailure(GenerationFailure):
    pass


class InvalidTransition(RuntimeError):
    """An entity was asked to move between two states that are not connected."""
