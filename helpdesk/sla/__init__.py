"""
SLA Module
==========

Bounded Context for resolution deadlines and the ticket lifecycle.

Responsibilities:
- Compute estimated resolution and breach deadlines once at intake
- Enforce the status transition table and stamp lifecycle timestamps
- Intake flow with synchronous assignment
- Resolution verification: confirm, reject (reopen) and auto-close
- SLA adherence reporting
"""

__version__ = "1.0.0"
