"""Emergencies, reports and alerts: models, remote store, views and mutations."""

from incidentportal.incidents.models import (
    Incident,
    IncidentKind,
    alert_severity,
    build_alert_payload,
    build_create_payload,
)
from incidentportal.incidents.mutations import MutationController, MutationOutcome
from incidentportal.incidents.store import IncidentStore
from incidentportal.incidents.view import FilterState, PageView, derive_view

__all__ = [
    "FilterState",
    "Incident",
    "IncidentKind",
    "IncidentStore",
    "MutationController",
    "MutationOutcome",
    "PageView",
    "alert_severity",
    "build_alert_payload",
    "build_create_payload",
    "derive_view",
]
