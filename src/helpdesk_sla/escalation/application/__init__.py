"""
Escalation Application Layer
============================

Services and ports wiring the escalation domain to its collaborators.
"""

from helpdesk_sla.escalation.application.services import (
    EscalationService,
    IEscalationNotifier,
    IRuleProvider,
    ITicketStore,
    SLAService,
)

__all__ = [
    "EscalationService",
    "IEscalationNotifier",
    "IRuleProvider",
    "ITicketStore",
    "SLAService",
]
