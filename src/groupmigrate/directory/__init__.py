"""Identity directory clients."""

from .base import DirectoryClient
from .graph import GraphDirectoryClient

__all__ = [
    "DirectoryClient",
    "GraphDirectoryClient",
]
