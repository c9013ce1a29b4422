"""Repository quantification pipeline.

This package provides:
- Quantifier configuration (TOML) and bulk repository lists (YAML)
- Git access for first-parent history, diffs and time-to-merge
- A batched, concurrent commit walker with an append-only CSV sink

Every batch is flushed to disk before the next one starts, so an
interrupted run keeps all rows written up to the last completed batch.
"""
