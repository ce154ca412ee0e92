"""Landmark Atlas — Entity Resolution (normalization, matching, merge, reconcile)."""
