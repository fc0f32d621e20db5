"""
Mod Classifier
==============
Turns a mod descriptor plus its enabled/disabled state into per-platform
support levels, and resolves where launchers can download the binary from.

Truth table (enabled mods):
    side=both    -> client required,    server required
    side=client  -> client required,    server unsupported
    side=server  -> client unsupported, server required
A disabled mod ships as `optional` wherever it would have been `required`.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Optional, Protocol

from mod_index import DownloadMode, ModDescriptor, ModSide

logger = logging.getLogger(__name__)


class Support(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    UNSUPPORTED = "unsupported"


class Platform(str, Enum):
    CLIENT = "client"
    SERVER = "server"


class ResolutionStatus(str, Enum):
    DIRECT = "direct"           # descriptor carries a URL
    RESOLVED = "resolved"       # exactly one registry match by content hash
    NOT_FOUND = "not_found"     # registry returned no match (or lookup failed)
    AMBIGUOUS = "ambiguous"     # registry returned more than one match
    NO_SOURCE = "no_source"     # descriptor has no usable download mode


@dataclass(frozen=True)
class DownloadResolution:
    status: ResolutionStatus
    url: Optional[str] = None
    candidates: int = 0
    error: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.url is not None

    def reason(self) -> str:
        if self.status == ResolutionStatus.NOT_FOUND:
            return f"lookup error: {self.error}" if self.error else "no registry match for content hash"
        if self.status == ResolutionStatus.AMBIGUOUS:
            return f"{self.candidates} registry matches for content hash"
        if self.status == ResolutionStatus.NO_SOURCE:
            return "no download source in index"
        return self.status.value


UNRESOLVED = DownloadResolution(ResolutionStatus.NO_SOURCE)


@dataclass(frozen=True)
class ModClassification:
    descriptor: ModDescriptor
    client: Support
    server: Support
    enabled: bool
    resolution: DownloadResolution = field(default=UNRESOLVED)

    @property
    def filename(self) -> str:
        return self.descriptor.filename

    def support(self, platform: Platform) -> Support:
        return self.client if platform == Platform.CLIENT else self.server

    def with_support(self, platform: Platform, support: Support) -> "ModClassification":
        if platform == Platform.CLIENT:
            return replace(self, client=support)
        return replace(self, server=support)

    @property
    def shipped(self) -> bool:
        return self.client != Support.UNSUPPORTED or self.server != Support.UNSUPPORTED


class HashLookup(Protocol):
    def lookup_by_hash(self, file_hash: str, algorithm: str = "sha1") -> list: ...


def support_for(platform: Platform, side: ModSide, disabled: bool) -> Support:
    if side == ModSide.BOTH or side.value == platform.value:
        return Support.OPTIONAL if disabled else Support.REQUIRED
    return Support.UNSUPPORTED


def classify(descriptor: ModDescriptor, is_disabled: bool, include_all: bool = False) -> ModClassification:
    """Pure: no I/O. `include_all` ships every mod to the client regardless of side."""
    if include_all:
        client = Support.OPTIONAL if is_disabled else Support.REQUIRED
    else:
        client = support_for(Platform.CLIENT, descriptor.side, is_disabled)
    server = support_for(Platform.SERVER, descriptor.side, is_disabled)
    return ModClassification(descriptor=descriptor, client=client, server=server, enabled=not is_disabled)


def resolve_download(descriptor: ModDescriptor, lookup: Optional[HashLookup]) -> DownloadResolution:
    if descriptor.download_mode == DownloadMode.DIRECT_URL and descriptor.url:
        return DownloadResolution(ResolutionStatus.DIRECT, url=descriptor.url, candidates=1)

    if descriptor.download_mode == DownloadMode.HASH_LOOKUP:
        if lookup is None:
            return DownloadResolution(ResolutionStatus.NOT_FOUND, error="hash lookup disabled")
        sha1 = descriptor.disk_hashes()["sha1"]
        try:
            candidates = lookup.lookup_by_hash(sha1, "sha1")
        except Exception as e:
            logger.warning(f"Hash lookup failed for {descriptor.filename}: {e}")
            return DownloadResolution(ResolutionStatus.NOT_FOUND, error=str(e))
        if len(candidates) == 1:
            return DownloadResolution(ResolutionStatus.RESOLVED, url=candidates[0].url, candidates=1)
        if not candidates:
            return DownloadResolution(ResolutionStatus.NOT_FOUND)
        return DownloadResolution(ResolutionStatus.AMBIGUOUS, candidates=len(candidates))

    return DownloadResolution(ResolutionStatus.NO_SOURCE)


def classify_mods(
    descriptors: Iterable[ModDescriptor],
    lookup: Optional[HashLookup] = None,
    include_all: bool = False,
    resolve: bool = True,
) -> list[ModClassification]:
    """Classify and (optionally) resolve downloads, sequentially, in filename order."""
    results = []
    for descriptor in sorted(descriptors, key=lambda d: d.filename):
        c = classify(descriptor, descriptor.disabled, include_all=include_all)
        if resolve:
            c = replace(c, resolution=resolve_download(descriptor, lookup))
            if not c.resolution.resolved:
                logger.info(f"{descriptor.filename}: {c.resolution.reason()}, routed to overrides")
        results.append(c)
    return results
