"""
SLA Module
==========

Bounded Context for Service Level Agreement tracking on conversations.

Responsibilities:
- Compute deadlines in business time (business hours, holidays)
- Apply policies to conversations and track first response, next response
  and resolution targets
- Mark targets met from conversation events
- Detect breaches periodically and publish them on the event bus
- Hot-reload the per-team SLA directory via watchdog
"""

__version__ = "1.0.0"
