"""
Reading audit logs written by FileAuditSink.

Each line of an audit log is one JSON record; blank lines are skipped.
Records are validated back into their audit event models, so downstream
tools work with the same types the pipeline emitted.
"""

import json
from collections.abc import Iterator
from pathlib import Path

from pydantic import ValidationError

from toolguard.errors import AuditLogFormatError
from toolguard.schema import AuditEvent, parse_audit_event


def iter_audit_log(path: str | Path) -> Iterator[AuditEvent]:
    """
    Yield events from a JSON Lines audit log, in file order.

    Args:
        path: Path to the audit log

    Raises:
        FileNotFoundError: If the file doesn't exist
        AuditLogFormatError: If a line isn't a valid audit record
    """
    path = Path(path)
    with path.open(encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
                if not isinstance(record, dict):
                    msg = "record is not a JSON object"
                    raise ValueError(msg)
                yield parse_audit_event(record)
            except (ValueError, ValidationError) as e:
                raise AuditLogFormatError(
                    sink="FileAuditSink",
                    path=str(path),
                    line_number=line_number,
                    underlying_error=str(e),
                ) from e


def read_audit_log(path: str | Path, request_id: str | None = None) -> list[AuditEvent]:
    """
    Read a whole audit log, optionally keeping one request's events.

    Args:
        path: Path to the audit log
        request_id: If given, only events for this request are returned

    Returns:
        Events in file order
    """
    events = list(iter_audit_log(path))
    if request_id is not None:
        events = [e for e in events if e.request_id == request_id]
    return events
