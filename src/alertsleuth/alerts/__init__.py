"""
alerts/ — Alert ingestion (LLM summary) and lifecycle.
"""

from alertsleuth.alerts.service import AlertService
from alertsleuth.alerts.summarizer import AlertSummarizer, AlertSummary

__all__ = ["AlertService", "AlertSummarizer", "AlertSummary"]
