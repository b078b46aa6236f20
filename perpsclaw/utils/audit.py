"""Structured per-tick audit trail."""
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional

import structlog

from perpsclaw.core.interfaces import AuditSink
from perpsclaw.core.models import TickRecord

logger = structlog.get_logger(__name__)


class StructlogAuditSink(AuditSink):
    """
    Emits every tick record as an ``audit.tick`` log event.

    The last ``history_size`` records per agent stay in memory for status
    reporting. Nothing is written to disk beyond the configured log handlers.
    """

    def __init__(self, history_size: int = 100):
        self.history_size = history_size
        self._recent: Dict[str, Deque[TickRecord]] = defaultdict(
            lambda: deque(maxlen=self.history_size)
        )

    def record(self, record: TickRecord) -> None:
        self._recent[record.agent].append(record)
        logger.info("audit.tick", **record.to_log_dict())

    def recent(self, agent: Optional[str] = None, limit: int = 10) -> List[TickRecord]:
        """Newest-last records for one agent, or across all agents by time."""
        if agent is not None:
            records = list(self._recent.get(agent, ()))
        else:
            records = sorted(
                (r for tail in self._recent.values() for r in tail),
                key=lambda r: r.timestamp,
            )
        if limit <= 0:
            return []
        return records[-limit:]

    def executed(self, agent: str) -> List[TickRecord]:
        """Retained records that led to an order."""
        return [r for r in self._recent.get(agent, ()) if r.executed]
