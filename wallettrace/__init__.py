"""wallettrace — bounded wallet transfer tracing and heuristic risk scoring."""

from wallettrace.models import TraceOptions, WalletTraceReport
from wallettrace.tracer import WalletTracer, trace_wallet

__version__ = "0.1.0"

__all__ = [
    "TraceOptions",
    "WalletTraceReport",
    "WalletTracer",
    "__version__",
    "trace_wallet",
]
