"""API clients for external services."""

from ezanim.clients.anthropic_client import AnthropicClient
from ezanim.clients.elevenlabs_client import ElevenLabsClient

__all__ = ["AnthropicClient", "ElevenLabsClient"]
