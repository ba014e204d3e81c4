"""
Crawler that ingests academic bulletin board notices and pushes alerts to subscribers.
"""
from __future__ import annotations

__version__ = "1.0.0"
