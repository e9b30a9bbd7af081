"""Error taxonomy shared by the clients, graph edits and CLIs.

Local errors come from this process (bad config, bad graph edits) and are
always permanent. Remote errors come from a vendor API and carry a
``transient`` flag so callers can tell a flaky network from a rejected
request. Nothing in this package retries; the flag is informational.
"""
from __future__ import annotations

from typing import Any

MAX_BODY_CHARS = 500


class AutomationError(Exception):
    """Base class for every handled failure."""

    transient = False


# ──────────────────────────────────────────────────
# Local
# ──────────────────────────────────────────────────
class ConfigError(AutomationError):
    """A required setting is missing or invalid."""


class AuthRequiredError(ConfigError):
    """No usable OAuth tokens; the interactive authorization step must run first."""


class GraphError(AutomationError):
    """A workflow graph edit could not be applied."""


class NodeNotFoundError(GraphError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Node not found: {name}")
        self.name = name


class DuplicateNodeError(GraphError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Node name already in use: {name}")
        self.name = name


class DanglingConnectionError(GraphError):
    def __init__(self, refs: list[tuple[str, str]]) -> None:
        listed = ", ".join(f"{src} -> {dst}" for src, dst in refs)
        super().__init__(f"Connections reference missing nodes: {listed}")
        self.refs = refs


# ──────────────────────────────────────────────────
# Remote
# ──────────────────────────────────────────────────
class RemoteError(AutomationError):
    """A vendor API call failed."""

    def __init__(self, service: str, status: int | None, body: str = "") -> None:
        self.service = service
        self.status = status
        self.body = body or ""
        where = f"HTTP {status}" if status is not None else "connection failed"
        super().__init__(f"{service} API error ({where}): {self.body[:MAX_BODY_CHARS]}")


class TransientRemoteError(RemoteError):
    """Network failure, timeout, rate limit or server-side error."""

    transient = True


class PermanentRemoteError(RemoteError):
    """The remote side rejected the request; repeating it will not help."""


def remote_error_for(service: str, status: int | None, body: str = "") -> RemoteError:
    """Pick the remote error class for an HTTP status (``None`` = no response)."""
    if status is None or status == 429 or status >= 500:
        return TransientRemoteError(service, status, body)
    return PermanentRemoteError(service, status, body)


# ──────────────────────────────────────────────────
# Polling
# ──────────────────────────────────────────────────
class PollTimeoutError(AutomationError):
    """A bounded poll loop ran out of attempts."""

    transient = True

    def __init__(self, attempts: int, last: Any = None, what: str = "condition") -> None:
        super().__init__(f"Timed out waiting for {what} after {attempts} attempts")
        self.attempts = attempts
        self.last = last
