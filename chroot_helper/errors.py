from __future__ import annotations


class FatalError(RuntimeError):
    """The session cannot continue; teardown runs and the process exits 1."""
