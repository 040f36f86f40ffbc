"""
Shared Kernel Module
====================

Generic infrastructure used by the escalation module and the HTTP app:
logging, the clock port and API middleware.

DO NOT add SLA or escalation business logic to the shared kernel.
"""

__version__ = "1.0.0"
