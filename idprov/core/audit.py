"""Signed JSONL trail of provisioning events.

Each line is one event. With a signing key configured, every event carries
an HMAC-SHA256 over its canonical JSON form, so edits to the file show up in
:meth:`AuditTrail.verify`.

``compensation_failure`` events name credential records that a failed
rollback left behind; :meth:`AuditTrail.orphans` lists them for operators.

Run ``python -m idprov.core.audit`` to check the signatures of the
configured trail.
"""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Iterator, Literal, Optional

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_LOG_DIR = ".runtime/audit"
AUDIT_LOG_FILENAME = "provisioning-events.jsonl"

EventType = Literal[
    "register", "register_failed",
    "compensation", "compensation_failure",
    "attribute_sync", "attribute_sync_failed",
]


def _canonical(event: dict[str, Any]) -> bytes:
    return json.dumps(event, sort_keys=True, separators=(",", ":")).encode("utf-8")


class AuditTrail:
    """Append-only provisioning event log.

    Args:
        log_dir: Directory of the trail (``AUDIT_LOG_DIR`` or
            ``.runtime/audit`` when omitted)
        signing_key: HMAC key (``AUDIT_LOG_SIGNING_KEY`` when omitted);
            empty means events are written unsigned
    """

    def __init__(self, log_dir: str | Path | None = None, signing_key: str | None = None):
        self.log_dir = Path(log_dir or os.environ.get("AUDIT_LOG_DIR", DEFAULT_AUDIT_LOG_DIR))
        self.log_file = self.log_dir / AUDIT_LOG_FILENAME
        if signing_key is None:
            signing_key = os.environ.get("AUDIT_LOG_SIGNING_KEY", "")
        self._key = signing_key.strip().encode("utf-8")

    def _signature(self, event: dict[str, Any]) -> str:
        if not self._key:
            return ""
        return hmac.new(self._key, _canonical(event), hashlib.sha256).hexdigest()

    # ─────────────────────────────────────────────────────────────────────
    # Writing
    # ─────────────────────────────────────────────────────────────────────

    def log_event(
        self,
        event_type: EventType,
        username: str,
        *,
        operator: str = "system",
        details: dict[str, Any] | None = None,
        success: bool = True,
    ) -> None:
        """Append one event.

        The directory is created 0700 and the file kept at 0600.

        Raises:
            OSError: If the trail cannot be written
            TypeError: If ``details`` is not JSON serializable
        """
        record = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "event_type": event_type,
            "username": username,
            "operator": operator,
            "success": success,
            "details": details or {},
        }
        signature = self._signature(record)
        if signature:
            record["signature"] = signature
        line = json.dumps(record, ensure_ascii=False)

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.chmod(0o700)
        with self.log_file.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")
        self.log_file.chmod(0o600)

    def safe_log_event(self, event_type: EventType, username: str, **kwargs: Any) -> bool:
        """Like :meth:`log_event`, but a write failure is logged instead of raised.

        Returns:
            True if the event was written
        """
        try:
            self.log_event(event_type, username, **kwargs)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("[audit] Could not record %s for '%s': %s", event_type, username, exc)
            return False
        return True

    # ─────────────────────────────────────────────────────────────────────
    # Reading
    # ─────────────────────────────────────────────────────────────────────

    def events(self) -> Iterator[Optional[dict[str, Any]]]:
        """Yield each non-blank line parsed, or None for a line that is not JSON."""
        if not self.log_file.exists():
            return
        with self.log_file.open("r", encoding="utf-8") as fh:
            for line in fh:
                if not line.strip():
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    yield None

    def verify(self) -> tuple[int, int]:
        """Count events and the events whose signature checks out.

        Returns:
            Tuple of (total_events, valid_signatures)
        """
        total = valid = 0
        for event in self.events():
            total += 1
            if not isinstance(event, dict):
                continue
            stored = event.pop("signature", "")
            if stored and hmac.compare_digest(stored, self._signature(event)):
                valid += 1
        return total, valid

    def orphans(self) -> list[dict[str, Any]]:
        """Credential records left behind by failed compensations.

        A later successful ``register`` of the same username clears the entry.
        """
        pending: dict[str, dict[str, Any]] = {}
        for event in self.events():
            if not isinstance(event, dict):
                continue
            username = event.get("username", "")
            if event.get("event_type") == "compensation_failure":
                pending[username] = event
            elif event.get("event_type") == "register" and event.get("success"):
                pending.pop(username, None)
        return list(pending.values())


if __name__ == "__main__":
    total, valid = AuditTrail().verify()
    print(f"Audit log: {valid}/{total} events with valid signatures")
    sys.exit(0 if total == valid else 1)
