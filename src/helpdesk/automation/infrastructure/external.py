"""
Automation Rule Configuration
=============================

YAML-backed automation rules with hot-reload via watchdog.

A missing file yields the built-in default rule set. A file that fails to
parse or validate on reload keeps the previous rules in place.
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from helpdesk.automation.application import IRuleProvider, RuleSetSchema
from helpdesk.automation.domain import (
    AssignmentRule,
    EscalationRule,
    PrioritizationRule,
    RuleSet,
)
from helpdesk.config import Category, Priority, TicketStatus
from helpdesk.core import ConfigurationException
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


DEFAULT_RULES = RuleSet(
    prioritization=(
        PrioritizationRule(name="Urgent Keyword", keyword="urgent", priority=Priority.HIGH),
        PrioritizationRule(name="Outage Keywords", keyword="outage", priority=Priority.CRITICAL),
        PrioritizationRule(name="Down Keywords", keyword="down", priority=Priority.CRITICAL),
    ),
    assignment=(
        AssignmentRule(name="Hardware Assignment", category=Category.HARDWARE, role="HardwareEngineer"),
        AssignmentRule(name="Production Change Assignment", category=Category.PRODUCTION_CHANGE, role="Engineer"),
    ),
    escalation=(
        EscalationRule(
            name="Critical Approved Escalation",
            priority=Priority.CRITICAL,
            status=TicketStatus.APPROVED,
            hours=2,
            escalate_to_role="Manager",
        ),
        EscalationRule(
            name="High Approved Escalation",
            priority=Priority.HIGH,
            status=TicketStatus.APPROVED,
            hours=8,
            escalate_to_role="Manager",
        ),
        EscalationRule(
            name="Critical InProgress Escalation",
            priority=Priority.CRITICAL,
            status=TicketStatus.IN_PROGRESS,
            hours=24,
            escalate_to_role="Director",
        ),
    ),
)


def parse_rules(data: dict) -> RuleSet:
    """Validate a decoded YAML document into a RuleSet."""
    try:
        return RuleSetSchema(**data).to_domain()
    except ValidationError as e:
        raise ConfigurationException("Invalid automation rules", {"errors": e.errors(include_url=False, include_context=False)}) from e


class RulesFileHandler(FileSystemEventHandler):
    """Watchdog event handler for rule file changes."""

    def __init__(self, manager: "RuleSetManager", rules_path: Path):
        self.manager = manager
        self.rules_path = rules_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.rules_path.resolve():
            logger.info("Automation rules file changed", extra={"path": event.src_path})
            self.manager.reload()

    on_created = on_modified


class RuleSetManager(IRuleProvider):
    """
    Thread-safe rule holder with hot-reload support.

    The watchdog observer thread swaps in a new immutable RuleSet; readers
    always see a complete snapshot.
    """

    def __init__(self, rules: Optional[RuleSet] = None):
        self._rules: RuleSet = rules or DEFAULT_RULES
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> RuleSet:
        """Initial load. Invalid content raises ConfigurationException."""
        self._path = Path(path)
        rules = self._load_from_file(self._path)
        with self._lock:
            self._rules = rules
        logger.info(
            "Automation rules loaded",
            extra={
                "path": str(self._path),
                "prioritization_rules": len(rules.prioritization),
                "assignment_rules": len(rules.assignment),
                "escalation_rules": len(rules.escalation),
            }
        )
        return rules

    def _load_from_file(self, path: Path) -> RuleSet:
        if not path.exists():
            logger.warning("Automation rules file not found, using defaults", extra={"path": str(path)})
            return DEFAULT_RULES

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationException("Automation rules file must contain a mapping", {"path": str(path)})
        return parse_rules(data)

    def reload(self) -> bool:
        """Reload rules from file, keeping the current ones on failure."""
        if self._path is None:
            return False

        try:
            rules = self._load_from_file(self._path)
        except (ConfigurationException, yaml.YAMLError, OSError) as e:
            logger.error("Failed to reload automation rules", extra={"path": str(self._path), "error": str(e)})
            return False

        with self._lock:
            self._rules = rules
        logger.info("Automation rules reloaded successfully")
        return True

    def get_rules(self) -> RuleSet:
        with self._lock:
            return self._rules

    def start_watching(self) -> None:
        """
        Start watching the rules file's directory for changes.

        Skipped when the directory does not exist or inotify is unavailable.
        """
        if self._path is None:
            raise RuntimeError("Rules not loaded. Call load() first.")

        if not self._path.parent.exists():
            logger.info("Rules directory doesn't exist, skipping file watch", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            handler = RulesFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching automation rules", extra={"path": str(self._path)})
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
