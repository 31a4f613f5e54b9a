"""Utility helpers for covtree."""
