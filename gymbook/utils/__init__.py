"""Utility helpers."""

from .masking import mask_connection_target, mask_database_url, mask_email

__all__ = ["mask_connection_target", "mask_database_url", "mask_email"]
