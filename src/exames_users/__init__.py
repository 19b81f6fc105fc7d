"""
Exames Users Service.

User profile and LGPD consent management: domain aggregates, repositories,
use cases, configuration and the FastAPI adapter.
"""

__version__ = "1.0.0"
