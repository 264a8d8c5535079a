"""Oxide rack machine driver: provision, inspect, and tear down one instance."""

from __future__ import annotations

__version__ = '0.1.0'
