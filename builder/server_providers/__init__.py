from .providers import RuntimeArtifact, get_provider, register_provider
from . import vanilla, neoforge, forge, fabric  # noqa: F401  (registers providers)

__all__ = ["RuntimeArtifact", "get_provider", "register_provider"]
