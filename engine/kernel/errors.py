"""
ZenB Kernel: Exceptions

The reducer, guard and estimator never raise. The only failure that reaches
a caller of the kernel is a malformed breathing pattern.
"""


class KernelError(Exception):
    """Base class for kernel failures."""
    pass


class MalformedPatternError(KernelError):
    """Pattern has no phase with a non-zero duration."""

    def __init__(self, pattern_id: str) -> None:
        super().__init__(f"MALFORMED_PATTERN: {pattern_id!r} has no non-zero phase")
        self.pattern_id = pattern_id
