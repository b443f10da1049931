"""
Hostel Helpdesk Routing
=======================

Ticket routing and escalation core for the hostel maintenance helpdesk.

Modules:
- routing: Staff mapping registry, workload tracking and assignment
- sla: SLA deadlines and the ticket status lifecycle
- escalation: Multi-tier, time-triggered escalation sweep
- notifications: Fire-and-forget notification dispatch
"""

__version__ = "1.0.0"
