"""
Escalation Module
=================

Bounded context for helpdesk SLA tracking and escalation.

Responsibilities:
- Match tickets against the escalation rule table (three-tier fallback)
- Resolve per-level response/resolution targets
- Compute breach flags, remaining time and SLA health
- Escalate tickets automatically (time-driven) and manually
- Notify Slack when an escalation is applied
- Serve rule catalogue lookups for ticket forms
"""
