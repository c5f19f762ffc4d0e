"""Generation service client."""

from glowbot.core.generation.client import GenerationService, HttpGenerationService

__all__ = ["GenerationService", "HttpGenerationService"]
