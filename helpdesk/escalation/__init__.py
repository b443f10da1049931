"""
Escalation Module
=================

Bounded Context for promoting stalled tickets up the staff hierarchy.

Responsibilities:
- Derive each ticket's current escalation level
- Decide whether (and why) a ticket needs escalating
- Record escalations, reassign to the next level and notify everyone involved
- Periodic sweep and manual escalation
"""

__version__ = "1.0.0"
