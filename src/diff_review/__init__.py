"""Diff Review - multi-round annotation of code diffs with anchored findings."""

__version__ = "0.1.0"
