"""Artifact store access: listings, filters and cached downloads."""

from relay.stores.filters import parse_filter_options, string_to_regexp
from relay.stores.model import Artifact, FilterOptions, RevisionInfo
from relay.stores.store import ArtifactStore, ArtifactStoreClient
from relay.stores.zeus import ZeusClient

__all__ = [
    "Artifact",
    "ArtifactStore",
    "ArtifactStoreClient",
    "FilterOptions",
    "RevisionInfo",
    "ZeusClient",
    "parse_filter_options",
    "string_to_regexp",
]
