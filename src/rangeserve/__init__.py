from .errors import ConfigurationError, RangeServeError, TransferError
from .metadata import DirectEntry, FileDescriptor, FileMetadataResolver, LinkIndirection, MetadataSource
from .ranges import RangeWindow
from .responder import Disposition, FileRequestSpec, RangeFileResponder, ResponsePlan
from .transfer import ChunkedFileTransfer, FileTransfer

__all__ = [
    "ChunkedFileTransfer",
    "ConfigurationError",
    "DirectEntry",
    "Disposition",
    "FileDescriptor",
    "FileMetadataResolver",
    "FileRequestSpec",
    "FileTransfer",
    "LinkIndirection",
    "MetadataSource",
    "RangeFileResponder",
    "RangeServeError",
    "RangeWindow",
    "ResponsePlan",
    "TransferError",
    "__version__",
]
__version__ = "0.1.0"
