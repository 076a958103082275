"""Catalog module for HaiTale.

This module describes the mods that can be recommended:
- Immutable catalog entry model with license classification
- Catalog provider protocol consumed by the recommender
- File-backed provider for JSON and YAML catalogs
"""
