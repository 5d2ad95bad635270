"""
Multi-Perspective Detection
===========================

Independent AI analyses of correspondence, folded into one report per
record, with recurrence tracking per institution and automatic incident
and alert creation.

Architecture:
- Perspectives: five fixed lenses (collaboration, consentement, documents,
  delais, comportement)
- Classifier: one perspective, one record, one Verdict (or none)
- Aggregator: concurrent fan-out, filtering, severity and article roll-up
- Recurrence Tracker: per (institution, violation type) counters
- Decisions: pure verdicts -> incident / alert actions
- Orchestrator: batch driver

Usage:
    from app.services.detection import AnalysisOrchestrator

    orchestrator = AnalysisOrchestrator(db)
    report = await orchestrator.run_batch(batch_size=10, min_confidence=50)
    print(report.to_dict()["total_incidents"])
"""

from .verdict import Severity, Verdict, max_severity
from .perspectives import DEFAULT_PERSPECTIVES, Perspective
from .classifier import (
    ChatCompletionBackend,
    ClassificationBackend,
    PerspectiveClassifier,
    extract_json_object,
    get_classification_backend,
)
from .aggregator import AggregateResult, DetectionAggregator
from .recurrence import AGGRAVATING_RECURRENCE_NOTE, RecurrenceResult, RecurrenceTracker
from .decisions import CreateAlert, CreateIncident, decide, institution_of
from .orchestrator import AnalysisOrchestrator, BatchReport, run_analysis_batch

__all__ = [
    "Severity",
    "Verdict",
    "max_severity",
    "DEFAULT_PERSPECTIVES",
    "Perspective",
    "ChatCompletionBackend",
    "ClassificationBackend",
    "PerspectiveClassifier",
    "extract_json_object",
    "get_classification_backend",
    "AggregateResult",
    "DetectionAggregator",
    "AGGRAVATING_RECURRENCE_NOTE",
    "RecurrenceResult",
    "RecurrenceTracker",
    "CreateAlert",
    "CreateIncident",
    "decide",
    "institution_of",
    "AnalysisOrchestrator",
    "BatchReport",
    "run_analysis_batch",
]
