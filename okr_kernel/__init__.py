"""
OKR Period Kernel

The fiscal period lifecycle and historical record of an OKR tool:
- Year / half / quarter hierarchy per company
- Guarded status transitions with an append-only close log
- Forced closure with persisted incomplete-items evidence
- Immutable per-organization period snapshots and company summaries
- Objective continuity across periods
"""

__version__ = "0.1.0"
