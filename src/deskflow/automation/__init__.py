"""
Automation Module
=================

Bounded Context for event-triggered automation rules.

Responsibilities:
- Store rules (subscription, condition tree, ordered actions, priority)
- Evaluate subscribed rules against each domain event in priority order
- Dispatch actions to the conversation services
- Append an evaluation log row per (rule, event)
- Stop rule-induced event loops at a configured cascade depth
"""

__version__ = "1.0.0"
