"""
Notifications Module
====================

Bounded Context for telling people what happened to their tickets.

Responsibilities:
- Fire-and-forget notify() for request and sweep paths
- At-least-once delivery with bounded retries and exponential backoff
- In-app notification storage and Slack webhook delivery
"""

__version__ = "1.0.0"
