"""
Web module for Receipt Queue.

Exposes blueprints for:
- Submission API: api_bp
- Queue administration: admin_bp
- Printer polling (Server Direct Print, CloudPRNT): printers_bp
- Health endpoint: health_bp
"""

from .admin import admin_bp
from .api import api_bp
from .health import health_bp
from .printers import printers_bp

__all__ = ["admin_bp", "api_bp", "health_bp", "printers_bp"]
