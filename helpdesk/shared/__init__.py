"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded contexts
(routing, SLA lifecycle, escalation, notifications).

Architecture Pattern: Modular Monolith
- Each module is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add routing or escalation business logic to the shared kernel.
"""

__version__ = "1.0.0"
