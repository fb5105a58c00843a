"""
Printer-facing polling protocols layered over the queue engine.
"""

from . import cloudprnt, server_direct

__all__ = ["cloudprnt", "server_direct"]
