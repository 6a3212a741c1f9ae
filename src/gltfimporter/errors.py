"""
Import Errors

Exception types raised while importing a glTF document.
"""


class GltfImportError(Exception):
    """Base class for all importer failures."""


class DocumentIntegrityError(GltfImportError):
    """An index points outside its array, or a required element is missing."""


class TruncatedAssetError(GltfImportError):
    """A stream ended before the number of bytes the document declares."""


class UnsupportedTopologyError(GltfImportError):
    """A primitive uses a draw mode the host cannot represent."""


class PrecedenceError(GltfImportError):
    """A build step ran before the step it depends on."""


class ConcurrentImportError(GltfImportError):
    """A top-level call was made while another one is still running."""


class DisjointSkinJointsError(GltfImportError):
    """A skin's joints have no common ancestor to use as root bone."""


class LowMemoryError(GltfImportError, MemoryError):
    """Available system memory dropped below the configured threshold."""


class ImportCancelledError(GltfImportError):
    """The import was stopped at a checkpoint by a cancel request."""
