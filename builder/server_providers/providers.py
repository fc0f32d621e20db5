from dataclasses import dataclass
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)

_PROVIDERS: Dict[str, object] = {}


@dataclass(frozen=True)
class RuntimeArtifact:
    """A server runtime download.

    kind:
      - "jar":       runnable server jar, placed as server.jar
      - "installer": installer jar, run with --installServer then removed
      - "launcher":  runnable launcher jar that bootstraps the loader on first start
    """
    url: str
    filename: str
    kind: str
    sha1: Optional[str] = None


def register_provider(provider) -> None:
    _PROVIDERS[provider.name] = provider


def get_provider(name: str):
    try:
        return _PROVIDERS[name.lower()]
    except KeyError:
        raise ValueError(f"Unsupported server type: {name} (known: {', '.join(sorted(_PROVIDERS))})")
