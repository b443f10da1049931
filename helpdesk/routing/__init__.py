"""
Routing Module
==============

Bounded Context for getting each ticket to the right staff member.

Responsibilities:
- Map (hostel block, category) pairs to staff with preference levels
- Measure per-staff workload at decision time
- Pick the assignee by workload score within role-tier capacity
- Emergency fallback to the least-loaded staff member
"""

__version__ = "1.0.0"
