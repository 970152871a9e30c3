"""Sync layer — run lock, principles mirror and settings merge.

This package provides the primitives for:
- Run coordination: at most one pipeline run at a time, with stale-lock reclaim
- Mirroring: a shallow local copy of the principles repository, kept fresh
- Settings merge: additive union of shared permissions into local settings
"""
