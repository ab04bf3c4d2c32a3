"""
Shared Kernel Module
====================

Shared infrastructure and domain elements used by both bounded contexts
(SLA and Automation).

Architecture Pattern: Modular Monolith
- Each module (sla, automation) is a bounded context
- Shared kernel holds the domain events and the event bus they travel on

DO NOT add SLA or rule logic to the shared kernel.
"""

__version__ = "1.0.0"
