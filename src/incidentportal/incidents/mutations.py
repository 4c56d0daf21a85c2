"""Role-gated mutations on incidents.

Access rules:
- The privileged role (admin) may toggle status, edit and delete any incident
- Authors may edit the text and location of their own emergencies and reports
- Alerts are managed by admins only, and have a level instead of a status
- Nobody else may mutate anything

Every rejected action is a local no-op (no network call) and produces a
notification. A failed network call leaves the collection unchanged, since
the store only applies server-confirmed state.
"""

import inspect
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from incidentportal.core.normalize import coerce_float
from incidentportal.core.notify import NotificationCenter, Severity
from incidentportal.core.session import KeyValueStore, Session, can_mutate, load_session
from incidentportal.errors import PermissionDeniedError, PortalError, TransportError
from incidentportal.incidents.models import Incident
from incidentportal.incidents.store import IncidentStore

logger = logging.getLogger(__name__)

ConfirmGate = Callable[[Incident], Awaitable[bool] | bool]

REASON_PERMISSION = "permission"
REASON_IN_FLIGHT = "in_flight"
REASON_NOT_FOUND = "not_found"
REASON_CANCELLED = "cancelled"
REASON_VALIDATION = "validation"
REASON_FAILED = "failed"


@dataclass(frozen=True)
class MutationOutcome:
    """Result of a mutation attempt."""

    ok: bool
    reason: str | None = None
    incident: Incident | None = None


class MutationController:
    """Applies status toggles, edits and deletes with role and in-flight checks.

    Only one mutation runs at a time per controller; a second request while
    one is pending is rejected immediately.
    """

    def __init__(
        self,
        store: IncidentStore,
        session: Session,
        notifier: NotificationCenter | None = None,
    ) -> None:
        self.store = store
        self.session = session
        self.notifier = notifier or NotificationCenter()
        self._in_flight = False
        self._counts: Counter[str] = Counter()
        self.refresh_counts()

    @property
    def in_flight(self) -> bool:
        """True while a mutation request is pending."""
        return self._in_flight

    @property
    def summary_counts(self) -> dict[str, int]:
        """Cached number of incidents per status label."""
        return {label: n for label, n in self._counts.items() if n > 0}

    def refresh_counts(self) -> dict[str, int]:
        """Recompute the per-status counts from the store (e.g. after a reload)."""
        self._counts = Counter(i.status_label for i in self.store.incidents)
        return self.summary_counts

    def refresh_session(self, kv: KeyValueStore) -> Session:
        """Re-read the session from storage; call when the profile may have changed."""
        self.session = load_session(kv)
        return self.session

    def can_mutate(self, record: Incident, *, allow_author: bool = True) -> bool:
        """Check whether the current session may change ``record``."""
        return can_mutate(self.session, record.author.id, allow_author=allow_author)

    def _reject(self, reason: str, message: str) -> MutationOutcome:
        severity = Severity.ERROR if reason == REASON_PERMISSION else Severity.WARNING
        self.notifier.publish(message, severity)
        return MutationOutcome(ok=False, reason=reason)

    async def _run(self, action: str, incident_id: int, call: Awaitable[Any]) -> bool:
        """Await a store call with the in-flight flag set; report failures."""
        self._in_flight = True
        try:
            await call
        except PermissionDeniedError as e:
            logger.warning("Server refused %s on %d: %s", action, incident_id, e)
            self.notifier.publish(f"Not allowed to {action} #{incident_id}", Severity.ERROR)
            return False
        except TransportError as e:
            logger.warning("Could not reach server for %s on %d: %s", action, incident_id, e)
            self.notifier.publish(f"Connection error, #{incident_id} unchanged", Severity.ERROR)
            return False
        except PortalError as e:
            logger.warning("Failed to %s %d: %s", action, incident_id, e)
            self.notifier.publish(f"Could not {action} #{incident_id}", Severity.ERROR)
            return False
        finally:
            self._in_flight = False
        return True

    def _precheck(self, incident_id: int, action: str, *, allow_author: bool):
        """Shared guard: in-flight, existence and role. Returns the record or an outcome."""
        if self._in_flight:
            return self._reject(REASON_IN_FLIGHT, "Another change is still being saved")

        record = self.store.get(incident_id)
        if not self.session.is_privileged and (
            record is None or not self.can_mutate(record, allow_author=allow_author)
        ):
            return self._reject(REASON_PERMISSION, f"You don't have permission to {action}")
        if record is None:
            return self._reject(REASON_NOT_FOUND, f"#{incident_id} no longer exists")
        return record

    async def toggle_status(self, incident_id: int) -> MutationOutcome:
        """Flip an emergency's attended flag or advance a report's workflow state."""
        checked = self._precheck(incident_id, "change the status", allow_author=False)
        if isinstance(checked, MutationOutcome):
            return checked
        if not checked.kind.has_status_workflow:
            return self._reject(REASON_VALIDATION, f"{checked.kind.collection} have no status")

        old_label = checked.status_label
        new_status = checked.next_status()
        if not await self._run(
            "update", incident_id, self.store.update_field(incident_id, {"status": new_status})
        ):
            return MutationOutcome(ok=False, reason=REASON_FAILED)

        updated = self.store.get(incident_id)
        if updated is not None:
            self._counts[old_label] -= 1
            self._counts[updated.status_label] += 1
            self.notifier.publish(f"#{incident_id} marked {updated.status_label}", Severity.SUCCESS)
        return MutationOutcome(ok=True, incident=updated)

    async def edit(self, incident_id: int, patch: dict[str, Any]) -> MutationOutcome:
        """Update editable fields of an incident (admin, or its author where allowed).

        The fields an edit may touch depend on the kind: see
        ``IncidentKind.editable_fields``. Emergencies keep a constant category.
        """
        allow_author = self.store.kind.authors_may_edit
        checked = self._precheck(incident_id, "edit this incident", allow_author=allow_author)
        if isinstance(checked, MutationOutcome):
            return checked

        unknown = set(patch) - checked.kind.editable_fields
        if unknown or not patch:
            return self._reject(REASON_VALIDATION, f"Cannot edit: {sorted(unknown) or 'nothing'}")
        for required in ("description", "title", "level"):
            if required in patch and not str(patch[required] or "").strip():
                return self._reject(REASON_VALIDATION, f"{required.title()} cannot be empty")
        patch = dict(patch)
        for axis in ("lat", "lng"):
            if axis not in patch:
                continue
            patch[axis] = coerce_float(patch[axis])
            if patch[axis] is None:
                return self._reject(REASON_VALIDATION, f"{axis} must be a number")

        if not await self._run("edit", incident_id, self.store.update_field(incident_id, patch)):
            return MutationOutcome(ok=False, reason=REASON_FAILED)

        if "level" in patch:
            self.refresh_counts()
        self.notifier.publish(f"#{incident_id} saved", Severity.SUCCESS)
        return MutationOutcome(ok=True, incident=self.store.get(incident_id))

    async def delete(self, incident_id: int, confirm: ConfirmGate) -> MutationOutcome:
        """Delete an incident after an explicit yes/no confirmation (admin only)."""
        checked = self._precheck(incident_id, "delete this incident", allow_author=False)
        if isinstance(checked, MutationOutcome):
            return checked

        # Hold the guard while the user is deciding
        self._in_flight = True
        try:
            answer = confirm(checked)
            if inspect.isawaitable(answer):
                answer = await answer
        finally:
            self._in_flight = False
        if not answer:
            logger.debug("Delete of %d cancelled by user", incident_id)
            return MutationOutcome(ok=False, reason=REASON_CANCELLED)

        if not await self._run("delete", incident_id, self.store.remove(incident_id)):
            return MutationOutcome(ok=False, reason=REASON_FAILED)

        self._counts[checked.status_label] -= 1
        self.notifier.publish(f"#{incident_id} deleted", Severity.SUCCESS)
        return MutationOutcome(ok=True, incident=checked)
