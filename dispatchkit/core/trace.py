import re
import secrets
from typing import Optional

_TRACEPARENT_RE = re.compile(
    r"^(?P<version>[0-9a-f]{2})-(?P<trace_id>[0-9a-f]{32})-(?P<parent_id>[0-9a-f]{16})-(?P<flags>[0-9a-f]{2})$"
)
_INVALID_TRACE_ID = "0" * 32
_INVALID_PARENT_ID = "0" * 16


class TraceParent:
    """
    W3C Trace Context header:
    version-traceid-parentid-flags (e.g. 00-<32 hex>-<16 hex>-01)
    """

    def __init__(self, trace_id: str, parent_id: Optional[str] = None, sampled: bool = True):
        self.trace_id = trace_id
        self.parent_id = parent_id
        self.sampled = sampled

    @classmethod
    def generate(cls) -> "TraceParent":
        """Generate a new trace with a random 16-byte trace id."""
        return cls(trace_id=secrets.token_hex(16), parent_id=None, sampled=True)

    @classmethod
    def parse(cls, header: str) -> "TraceParent":
        """Parse a traceparent header string."""
        match = _TRACEPARENT_RE.match(header.strip().lower())
        if not match:
            raise ValueError(f"Malformed traceparent header: {header!r}")
        if match.group("version") == "ff":
            raise ValueError("Unsupported traceparent version ff")

        trace_id = match.group("trace_id")
        parent_id = match.group("parent_id")
        if trace_id == _INVALID_TRACE_ID or parent_id == _INVALID_PARENT_ID:
            raise ValueError(f"All-zero ids are not allowed: {header!r}")

        sampled = bool(int(match.group("flags"), 16) & 0x01)
        return cls(trace_id=trace_id, parent_id=parent_id, sampled=sampled)

    def header_for(self, span_id: str) -> str:
        """Generate the header propagated to downstream calls made from span_id."""
        flags = "01" if self.sampled else "00"
        return f"00-{self.trace_id}-{span_id}-{flags}"

    def __str__(self) -> str:
        return self.header_for(self.parent_id or _INVALID_PARENT_ID)
