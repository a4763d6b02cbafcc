"""Text normalization and signatures."""

from spancanvas.text.normalize import normalize, normalize_or_raw, utf16_offset_to_index
from spancanvas.text.signature import is_signature_match, signature

__all__ = [
    "is_signature_match",
    "normalize",
    "normalize_or_raw",
    "signature",
    "utf16_offset_to_index",
]
