"""
Routing Policy Loader
=====================

Loads the routing policy from YAML and keeps it current:
- PyYAML parsing, pydantic validation
- watchdog file observer for hot-reload

A reload builds a complete new RoutingPolicy and swaps it in under a lock;
readers always see one whole snapshot.
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from helpdesk.config.policy import IPolicyProvider, RoutingPolicy
from helpdesk.core import ConfigurationException
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class PolicyFileHandler(FileSystemEventHandler):
    """Watchdog event handler for routing policy file changes."""

    def __init__(self, manager: "PolicyConfigManager", policy_path: Path):
        self.manager = manager
        self.policy_path = policy_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.policy_path.resolve():
            logger.info("Routing policy file changed", extra={"path": str(event.src_path)})
            self.manager.reload()


class PolicyConfigManager(IPolicyProvider):
    """
    Thread-safe routing policy provider with hot-reload support.

    Uses watchdog to monitor the policy file and reload it without
    restarting the service.
    """

    def __init__(self):
        self._policy: Optional[RoutingPolicy] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> RoutingPolicy:
        """
        Initial policy load.

        Raises:
            ConfigurationException: If the file exists but is invalid
        """
        self._path = Path(path)
        policy = self._load_from_file(self._path)
        with self._lock:
            self._policy = policy
        return policy

    @staticmethod
    def _load_from_file(path: Path) -> RoutingPolicy:
        """Load and validate the YAML policy file."""
        if not path.exists():
            logger.warning(
                "Routing policy file not found, using defaults",
                extra={"path": str(path)}
            )
            return RoutingPolicy()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return RoutingPolicy(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid routing policy file {path}: {e}",
                {"path": str(path)}
            ) from e

    def reload(self) -> bool:
        """Reload the policy; keeps the previous snapshot on failure."""
        if self._path is None:
            return False

        try:
            new_policy = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error("Failed to reload routing policy", extra={"error": e.message})
            return False

        with self._lock:
            self._policy = new_policy
        logger.info("Routing policy reloaded successfully")
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file for changes.

        Skips watching if the file doesn't exist or inotify is unavailable.
        """
        if self._path is None:
            raise RuntimeError("Policy not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Policy file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = PolicyFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching policy file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static policy", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching the policy file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_policy(self) -> RoutingPolicy:
        """Get the current policy snapshot."""
        with self._lock:
            policy = self._policy
        if policy is None:
            raise RuntimeError("Routing policy not loaded")
        return policy
