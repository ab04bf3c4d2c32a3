"""
Deskflow
========

Helpdesk SLA engine and automation rule engine sharing one in-process
event bus.
"""

__version__ = "1.0.0"
