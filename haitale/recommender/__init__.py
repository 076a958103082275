"""Recommender module for HaiTale.

This module turns a free-text world description into ranked mod recommendations:
- Keyword and category based relevance scoring
- Candidate pre-filtering before any AI call
- Defensive parsing of model output
- Orchestration with rule-based fallback
"""
