"""covtree — Clover XML coverage reports with a pass/fail digest."""

__version__ = "0.3.0"
