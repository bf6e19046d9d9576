"""
Connection robustness helpers for device transports.

- RetryPolicy: bounded resend loop used by the telnet/HTTP executor
- ChecksumFailureWindow: decaying checksum failure counter with runaway latch
"""

from .failure_window import ChecksumFailureWindow
from .retry_policy import RetryAttempt, RetryOutcome, RetryPolicy, RetryResult

__all__ = [
    'ChecksumFailureWindow',
    'RetryAttempt',
    'RetryOutcome',
    'RetryPolicy',
    'RetryResult',
]
