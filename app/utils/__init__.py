"""Utility helpers for the Luminav backend.

Submodules:
- aws: S3 client wrapper (uploads, presigned GETs, batch deletes, object URLs)
"""

__all__: list[str] = []
