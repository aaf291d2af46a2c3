"""
Inference engines for scan_kit.

Backends are kept in a separate module so core functionality (pre/post-processing,
scheduling) stays lightweight and can be used without installing inference runtimes.
Every backend exposes `input_name` and `async run(feeds) -> {output_name: RawTensor}`.
"""

from __future__ import annotations

__all__ = []
