"""Distribution client — compiles the .proto tree and uploads it to the validator.

Usage:
    python -m app.distributor                      # one upload
    python -m app.distributor --loop --interval 10 # keep the server in sync
"""

from app.distributor.client import DescriptorUploader, ServerUnavailable, UploadReceipt, UploadRejected
from app.distributor.protoc import CompilationError, ProtocCompiler
from app.distributor.runner import DistributionRunner, IntervalTicker
from app.distributor.sources import find_proto_sources, source_signature

__all__ = [
    "CompilationError",
    "DescriptorUploader",
    "DistributionRunner",
    "IntervalTicker",
    "ProtocCompiler",
    "ServerUnavailable",
    "UploadReceipt",
    "UploadRejected",
    "find_proto_sources",
    "source_signature",
]
