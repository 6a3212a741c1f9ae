"""
Data Loader

Supplies byte streams for the document itself and for external buffer and
image URIs. Streams must be seekable so GLB chunks can be located.
"""

from pathlib import Path
from typing import BinaryIO, Optional
from urllib.parse import unquote


class DataLoader:
    """Capability interface: load_stream(uri) -> seekable binary stream."""

    def load_stream(self, uri: str) -> BinaryIO:
        raise NotImplementedError


class FileLoader(DataLoader):
    """
    Loads URIs relative to a root directory on the local file system.
    """

    def __init__(self, root_dir: Optional[Path] = None):
        """
        Initialize loader.

        Args:
            root_dir: Directory relative URIs resolve against (default: cwd)
        """
        self.root_dir = Path(root_dir) if root_dir is not None else Path.cwd()

    def resolve(self, uri: str) -> Path:
        # glTF URIs are percent-encoded
        path = Path(unquote(uri))
        if not path.is_absolute():
            path = self.root_dir / path
        return path

    def load_stream(self, uri: str) -> BinaryIO:
        path = self.resolve(uri)
        if not path.exists():
            raise FileNotFoundError(f"Referenced file not found: {path}")
        return path.open("rb")
