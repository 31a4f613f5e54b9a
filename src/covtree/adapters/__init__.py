"""Adapters between covtree and external coverage tools."""
