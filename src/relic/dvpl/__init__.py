"""
Reading and writing DVPL containers; LZ4 compressed files with a 20 byte checksummed footer.
"""
from relic.dvpl.definitions import (
    PayloadType,
    ProcessMode,
    CompressionChoice,
    FallbackPolicy,
)
from relic.dvpl.serialization import Footer, FooterSerializer
from relic.dvpl.codec import pack, unpack, read_footer, PackResult, UnpackResult

__version__ = "1.0.0"

__all__ = [
    "PayloadType",
    "ProcessMode",
    "CompressionChoice",
    "FallbackPolicy",
    "Footer",
    "FooterSerializer",
    "pack",
    "unpack",
    "read_footer",
    "PackResult",
    "UnpackResult",
    "__version__",
]
