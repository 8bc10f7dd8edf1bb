"""Intensive property tests for hostfuzz.

This package contains:
- test_decode_property: totality and determinism of instruction decoding
- test_sandbox_property: isolation of arbitrary buffers run against the sandbox

Python 3.13+.
"""
