import asyncio
from collections import Counter
from typing import Sequence

from learning_agent.config import settings
from learning_agent.models import Alert, CorrectionReport, Quality, new_id, utcnow

# Emitted for every report regardless of which issues were found.
RECOMMENDATIONS = (
    "Consider citing more recent sources for statistical claims",
    "Add visual aids to support complex explanations",
    "Include diverse perspectives on controversial topics",
)


def rate_quality(total_issues: int) -> Quality:
    """Map an issue count to an overall quality rating.

    ``poor`` is part of the rating scale but is never assigned; any count
    above five rates ``fair``.
    """
    if total_issues <= 2:
        return "excellent"
    if total_issues <= 5:
        return "good"
    return "fair"


def summarize(session_id: str, alerts: Sequence[Alert]) -> CorrectionReport:
    """Build a report from a frozen alert sequence. Pure function."""
    counts = Counter(alert.type for alert in alerts)
    return CorrectionReport(
        id=new_id(),
        session_id=session_id,
        total_issues=len(alerts),
        issues_by_type=dict(counts),
        recommendations=list(RECOMMENDATIONS),
        overall_quality=rate_quality(len(alerts)),
        generated_at=utcnow(),
        corrections=[
            {
                "alertId": alert.id,
                "type": alert.type,
                "severity": alert.severity,
                "content": alert.content,
                "suggestedCorrection": alert.suggested_correction,
            }
            for alert in alerts
        ],
    )


class CorrectionReportBuilder:
    """Simulates an analysis backend: waits, then summarizes the alerts."""

    def __init__(self, delay: float | None = None) -> None:
        self.delay = settings.report_delay_seconds if delay is None else delay

    async def build(self, session_id: str, alerts: Sequence[Alert]) -> CorrectionReport:
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        return summarize(session_id, tuple(alerts))
