"""
Shared Infrastructure
=====================

Logging setup and SLA event logging.
"""
