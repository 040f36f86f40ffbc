"""
Helpdesk SLA
============

SLA and escalation engine for facility-management helpdesk tickets.
"""

__version__ = "1.0.0"
