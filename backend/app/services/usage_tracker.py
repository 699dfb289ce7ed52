"""Records assistant usage per exchange and aggregates it for reporting."""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from app.models.usage import AiUsageLog

logger = logging.getLogger(__name__)


@dataclass
class UsageSummary:
    user_id: str
    total_requests: int
    total_input_tokens: int
    total_output_tokens: int
    last_active: datetime | None


@dataclass
class DailyUsage:
    day: date
    requests: int
    input_tokens: int
    output_tokens: int
    tool_calls: int
    avg_duration_ms: int


class UsageTracker:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def log(
        self,
        user_id: str,
        input_tokens: int,
        output_tokens: int,
        tool_call_count: int,
        duration_ms: int,
        model: str | None,
    ) -> None:
        entry = AiUsageLog(
            user_id=user_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            tool_call_count=tool_call_count,
            duration_ms=duration_ms,
            model=model,
        )
        await asyncio.to_thread(self._add, entry)

    async def summary(self, start: datetime, end: datetime) -> list[UsageSummary]:
        """Per-user totals in [start, end], busiest users first."""
        rows = await asyncio.to_thread(self._fetch, None, start, end)
        by_user: dict[str, UsageSummary] = {}
        for row in rows:
            s = by_user.setdefault(row.user_id, UsageSummary(row.user_id, 0, 0, 0, None))
            s.total_requests += 1
            s.total_input_tokens += row.input_tokens
            s.total_output_tokens += row.output_tokens
            if s.last_active is None or row.requested_at > s.last_active:
                s.last_active = row.requested_at
        return sorted(by_user.values(), key=lambda s: s.total_requests, reverse=True)

    async def daily_usage(self, user_id: str, start: datetime, end: datetime) -> list[DailyUsage]:
        """Per-day totals for one user in [start, end], newest day first."""
        rows = await asyncio.to_thread(self._fetch, user_id, start, end)
        by_day: dict[date, list[AiUsageLog]] = defaultdict(list)
        for row in rows:
            by_day[row.requested_at.date()].append(row)
        return [
            DailyUsage(
                day=day,
                requests=len(logs),
                input_tokens=sum(l.input_tokens for l in logs),
                output_tokens=sum(l.output_tokens for l in logs),
                tool_calls=sum(l.tool_call_count for l in logs),
                avg_duration_ms=int(sum(l.duration_ms for l in logs) / len(logs)),
            )
            for day, logs in sorted(by_day.items(), reverse=True)
        ]

    def _add(self, entry: AiUsageLog) -> None:
        with Session(self.engine) as session:
            session.add(entry)
            session.commit()

    def _fetch(self, user_id: str | None, start: datetime, end: datetime) -> list[AiUsageLog]:
        with Session(self.engine) as session:
            query = select(AiUsageLog).where(
                AiUsageLog.requested_at >= start, AiUsageLog.requested_at <= end
            )
            if user_id is not None:
                query = query.where(AiUsageLog.user_id == user_id)
            return list(session.exec(query).all())
