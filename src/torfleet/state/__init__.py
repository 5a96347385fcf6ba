"""State/store layer.

This package is the single source of truth for how incoming data from the
pull sync, the push endpoint and manual edits is merged into per-vehicle
state and bounded history.
"""
