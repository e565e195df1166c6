# tests/property/__init__.py
"""Property-based tests for blobsink.

Property-based testing validates invariants that must hold for ALL inputs,
not just the specific examples we think of.

Test categories:
- core/: Template rendering purity
- engine/: Grouper state machine, pipeline round trips
"""
