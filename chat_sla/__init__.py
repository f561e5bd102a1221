"""
Chat SLA Analytics
==================

Service-level analytics for customer-service chat conversations.
"""

__version__ = "1.0.0"
