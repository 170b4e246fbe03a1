"""
Audit module for toolguard.

The guard pipeline reports every step of every tool call as an audit
event. This module provides the sinks that consume those events, a reader
for JSON Lines audit logs, and reports over recorded events.

Key concepts:
    - AuditSink: Consumer of one event at a time (sync or async)
    - FileAuditSink: Append-only JSON Lines log, one record per line
    - read_audit_log(): Parse a log back into typed events
"""

from toolguard.audit.reader import iter_audit_log, read_audit_log
from toolguard.audit.report import (
    build_report_dict,
    render_console_report,
    summarize_events,
)
from toolguard.audit.sinks import (
    AuditSink,
    ConsoleAuditSink,
    FileAuditSink,
    InMemoryAuditSink,
    MultiAuditSink,
    serialize_event,
)

__all__ = [
    "AuditSink",
    "ConsoleAuditSink",
    "FileAuditSink",
    "InMemoryAuditSink",
    "MultiAuditSink",
    "build_report_dict",
    "iter_audit_log",
    "read_audit_log",
    "render_console_report",
    "serialize_event",
    "summarize_events",
]
