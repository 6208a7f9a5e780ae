from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger("audit")


@dataclass
class AuditEvent:
    """Structured representation of an audit event.

    Intentionally keeps payload minimal and avoids PHI: IDs, types and
    high-level actions only, never report text, notes or file contents.
    """

    timestamp: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    outcome: str = "success"
    subject: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


class AuditService:
    def log_event(
        self,
        *,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        outcome: str = "success",
        subject: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a structured audit event.

        - `action`: high-level verb, e.g., "approve", "upload", "sign_in".
        - `resource_type`: coarse type, e.g., "report", "analysis", "session".
        - `resource_id`: stable identifier when available.
        - `outcome`: "success" or "failure"; failures are logged at WARNING.
        - `subject`: optional identifier for the caller. If omitted, it is taken
          from the current request's auth context.
        - `extra`: optional small dict of non-PHI metadata (counts, flags).
        """

        if subject is None:
            from labreview.security import get_current_subject

            subject = get_current_subject()

        event = AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            outcome=outcome,
            subject=subject,
            extra=extra,
        )

        level = logging.INFO if outcome == "success" else logging.WARNING
        try:
            logger.log(level, json.dumps(asdict(event)))
        except TypeError:
            # Something in extra is not JSON serializable.
            safe_event = asdict(event)
            safe_event["extra"] = None
            logger.log(level, json.dumps(safe_event))
