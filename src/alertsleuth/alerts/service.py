"""
alerts/service.py — Alert lifecycle: insert, read, list, resolve, merge
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from alertsleuth.alerts.summarizer import AlertSummarizer
from alertsleuth.exceptions import AlertMergeError
from alertsleuth.observability.logger import get_logger
from alertsleuth.storage.models import Alert, AlertConclusion
from alertsleuth.storage.repository import Repository


class AlertService:

    def __init__(self, repository: Repository, summarizer: Optional[AlertSummarizer] = None, logger=None):
        self._repo = repository
        self._summarizer = summarizer
        self._log = logger or get_logger(__name__)

    def insert(self, data: Any) -> Alert:
        """Summarise raw alert data and store it as a new alert."""
        if self._summarizer is None:
            raise ValueError("AlertService.insert needs a summarizer")
        summary = self._summarizer.summarize(data)
        alert = Alert(
            title=summary.title,
            description=summary.description,
            data=data,
            attributes=summary.attributes,
        )
        self._repo.put_alert(alert)
        self._log.info("alert.inserted", alert_id=alert.id, title=alert.title)
        return alert

    def get(self, alert_id: str) -> Alert:
        return self._repo.get_alert(alert_id)

    def list(
        self,
        include_resolved: bool = False,
        include_merged: bool = False,
        offset: int = 0,
        limit: int = 0,
    ) -> list[Alert]:
        """Newest first. Merged alerts are hidden unless include_merged is set."""
        alerts = self._repo.list_alerts(offset=offset, limit=limit, include_resolved=include_resolved)
        if include_merged:
            return alerts
        return [a for a in alerts if not a.is_merged]

    def resolve(
        self,
        alert_id: str,
        conclusion: AlertConclusion | str = AlertConclusion.UNAFFECTED,
        note: str = "",
    ) -> Alert:
        """
        Mark an alert resolved. Resolving again overwrites the previous
        conclusion and note. Raises ValueError for an unknown conclusion.
        """
        conclusion = AlertConclusion(conclusion)
        alert = self._repo.get_alert(alert_id)
        alert.resolved_at = datetime.now(timezone.utc)
        alert.conclusion = conclusion.value
        alert.note = note
        self._repo.put_alert(alert)
        self._log.info("alert.resolved", alert_id=alert_id, conclusion=conclusion.value)
        return alert

    def merge(self, source_id: str, target_id: str) -> Alert:
        """
        Record that source duplicates target. Both alerts must exist; only
        the source changes. Merging an already merged alert re-points it.
        """
        if source_id == target_id:
            raise AlertMergeError(f"cannot merge alert '{source_id}' into itself")
        source = self._repo.get_alert(source_id)
        self._repo.get_alert(target_id)

        source.merged_to = target_id
        self._repo.put_alert(source)
        self._log.info("alert.merged", alert_id=source_id, merged_to=target_id)
        return source

    def unmerge(self, alert_id: str) -> Alert:
        alert = self._repo.get_alert(alert_id)
        previous, alert.merged_to = alert.merged_to, ""
        self._repo.put_alert(alert)
        self._log.info("alert.unmerged", alert_id=alert_id, previous=previous or None)
        return alert
