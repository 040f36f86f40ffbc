"""
Escalation External Integrations
=================================

Adapters between the escalation engine and the outside world:
- Rule file watcher (watchdog) feeding the rule repository
- HTTP rule endpoint (httpx)
- Slack webhook notifications for applied escalations
- APScheduler ticker driving the automatic evaluator
"""

import asyncio
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from helpdesk_sla.config import Priority
from helpdesk_sla.core import ApplicationException, ExternalServiceException
from helpdesk_sla.escalation.application import IEscalationNotifier
from helpdesk_sla.escalation.domain import EscalationDecision
from helpdesk_sla.escalation.infrastructure.repositories import (
    EscalationRuleRepository, YAMLRuleSource, parse_rule_payload
)
from helpdesk_sla.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Rule sources ==========

class RuleFileHandler(FileSystemEventHandler):
    """Watchdog event handler for rule file changes."""

    def __init__(self, manager: "RuleFileManager", path: Path):
        self.manager = manager
        self.path = path
        super().__init__()

    def _matches(self, event) -> bool:
        if event.is_directory:
            return False
        paths = [getattr(event, "src_path", None), getattr(event, "dest_path", None)]
        return any(p and Path(p).resolve() == self.path.resolve() for p in paths)

    def on_modified(self, event):
        if self._matches(event):
            logger.info("Escalation rule file changed", extra={"path": str(self.path)})
            self.manager.reload()

    on_created = on_modified
    on_moved = on_modified


class RuleFileManager:
    """
    Loads the rule file into a repository and hot-reloads it on change.

    A failed reload keeps the previous snapshot in place.
    """

    def __init__(self, repository: EscalationRuleRepository, path: Path):
        self.repository = repository
        self.path = Path(path)
        self._source = YAMLRuleSource(self.path)
        self._reload_lock = threading.Lock()
        self._observer = None

    def load(self) -> int:
        """
        Initial load; returns the number of rules kept.

        Raises:
            ConfigurationException: If the file is missing or malformed
        """
        count = self.repository.replace_records(self._source.load())
        logger.info("Escalation rules loaded", extra={"path": str(self.path), "rule_count": count})
        return count

    def reload(self) -> bool:
        """Re-read the file; returns False and keeps the old rules on failure."""
        with self._reload_lock:
            try:
                records = self._source.load()
            except ApplicationException as e:
                logger.error(
                    "Failed to reload escalation rules, keeping previous set",
                    extra={"path": str(self.path), "error": e.message}
                )
                return False

            count = self.repository.replace_records(records)
            logger.info("Escalation rules reloaded", extra={"rule_count": count})
            return True

    def start_watching(self) -> None:
        """
        Start watching the rule file's directory.

        Watching is skipped when the directory does not exist or the
        platform offers no file notifications (some containers).
        """
        if not self.path.parent.exists():
            logger.info("Rule directory missing, skipping file watch", extra={"path": str(self.path)})
            return

        try:
            self._observer = Observer()
            self._observer.schedule(RuleFileHandler(self, self.path), str(self.path.parent), recursive=False)
            self._observer.start()
            logger.info("Watching escalation rule file", extra={"path": str(self.path)})
        except OSError as e:
            logger.warning("File watching not available, using static rules", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None


class HTTPRuleSource:
    """Fetches rule records from an endpoint returning {"rules": [...]}."""

    def __init__(self, url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def load(self) -> List[Mapping[str, Any]]:
        """
        Raises:
            ExternalServiceException: If the endpoint fails or returns non-JSON
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalServiceException(
                "rule-endpoint",
                f"Failed to fetch escalation rules: {e}",
                details={"url": self.url}
            )

        return parse_rule_payload(data, source=self.url)


# ========== Slack notifications ==========

class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops calling a failing dependency for a while.

    States:
    - CLOSED: requests pass through
    - OPEN: after `failure_threshold` failures, requests are rejected
    - HALF_OPEN: after `recovery_timeout` seconds, one trial request passes
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._opened_at = None
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            logger.warning(
                "Circuit breaker opened",
                extra={"failure_count": self._failure_count, "recovery_timeout": self.recovery_timeout}
            )


class SlackEscalationNotifier(IEscalationNotifier):
    """
    Posts a Block Kit message to a Slack webhook for every applied escalation.

    Failures are logged and reported as False; they never reach the
    escalation flow.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        channel: str = "#helpdesk-escalations",
        timeout: float = 5.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.webhook_url = webhook_url
        self.channel = channel
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._http_client

    def build_message(self, decision: EscalationDecision) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        payload = decision.to_dict()
        ticket = decision.after
        header = "Ticket escalated" if decision.trigger == "auto" else "Ticket escalated manually"

        try:
            priority_text = Priority.parse(payload["to_priority"]).label
        except ValueError:
            priority_text = str(payload["to_priority"])

        return {
            "channel": self.channel,
            "text": f"{header}: {payload['ticket_id']} {payload['from_level']} -> {payload['to_level']}",
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": header}
                },
                {
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*Ticket:*\n{payload['ticket_id']}"},
                        {"type": "mrkdwn", "text": f"*Level:*\n{payload['from_level']} -> {payload['to_level']}"},
                        {"type": "mrkdwn", "text": f"*Priority:*\n{priority_text}"},
                        {"type": "mrkdwn", "text": f"*Category:*\n{ticket.category} / {ticket.subcategory}"},
                    ]
                },
                {
                    "type": "context",
                    "elements": [{"type": "mrkdwn", "text": ticket.description or "-"}]
                }
            ]
        }

    async def notify(self, decision: EscalationDecision) -> bool:
        """
        Send the escalation message.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.webhook_url:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return False

        if not self.circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping Slack notification",
                extra={"ticket_id": decision.ticket_id}
            )
            return False

        message = self.build_message(decision)

        for attempt in range(self.max_retries):
            try:
                response = await self._get_client().post(self.webhook_url, json=message)
                if response.status_code == 200:
                    self.circuit_breaker.record_success()
                    logger.info("Slack notification sent", extra={"ticket_id": decision.ticket_id})
                    return True
                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Slack notification failed",
                    extra={"error": str(e), "attempt": attempt + 1, "ticket_id": decision.ticket_id}
                )

            if attempt < self.max_retries - 1:
                await asyncio.sleep(self.backoff_base * 2 ** attempt)

        self.circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


# ========== Ticker ==========

class EscalationScheduler:
    """
    APScheduler wrapper that runs the automatic evaluator on an interval.

    One tick at a time: a slow tick delays the next instead of overlapping.
    """

    def __init__(self, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    def start(self, job_func) -> None:
        if self.is_running:
            logger.warning("Escalation scheduler already running")
            return
        if self.interval_seconds <= 0:
            logger.info("Escalation ticker disabled")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="auto_escalation",
            name="Automatic Escalation Tick",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        logger.info("Escalation scheduler started", extra={"interval_seconds": self.interval_seconds})

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Escalation scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None
