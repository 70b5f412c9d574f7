"""Asher: local encrypted aggregator for scraped financial transactions."""

from __future__ import annotations

__version__ = "0.1.0"
