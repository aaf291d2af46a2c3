from __future__ import annotations


class ScanError(Exception):
    """
    Base class for per-frame pipeline failures.

    These never terminate a scanning session: the pipeline catches them, logs
    them and reports them through `FrameResult.error`.
    """


class UnsupportedBatchSize(ScanError, ValueError):
    """Model output is not a single-image (batch == 1) rank-3 tensor."""


class InferenceFailure(ScanError, RuntimeError):
    """The inference engine raised while running a frame."""


class SessionUnavailable(ScanError, RuntimeError):
    """The inference engine has not been loaded (yet, or ever)."""
