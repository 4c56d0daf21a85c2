"""In-memory incident collection backed by the remote portal API.

The store is the single source of truth for the rest of the core. It only
changes after the server confirms a request; there are no optimistic
updates. The collection is an immutable tuple that is replaced wholesale on
every change, so derived views never see a partially applied mutation.
"""

import base64
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from incidentportal.api.client import PortalClient
from incidentportal.core.normalize import unwrap_collection
from incidentportal.errors import PortalError, RemoteError
from incidentportal.incidents.models import Incident, IncidentKind

logger = logging.getLogger(__name__)


def _sort_key(incident: Incident) -> tuple[int, float]:
    created = incident.created_at.timestamp() if incident.created_at else float("-inf")
    return incident.id, created


def sort_incidents(incidents: Iterable[Incident]) -> tuple[Incident, ...]:
    """Sort descending by id, then by creation time (most recent first)."""
    return tuple(sorted(incidents, key=_sort_key, reverse=True))


class IncidentStore:
    """Fetches, caches and mutates incidents of one kind.

    Usage::

        async with PortalClient() as client:
            store = IncidentStore(client, IncidentKind.REPORT)
            await store.load_all()
            await store.update_field(12, {"status": "resuelto"})
    """

    def __init__(self, client: PortalClient, kind: IncidentKind) -> None:
        self.client = client
        self.kind = kind
        self._incidents: tuple[Incident, ...] = ()
        self.error: str | None = None
        self.loaded_at: datetime | None = None

    @property
    def incidents(self) -> tuple[Incident, ...]:
        """Current collection, sorted most recent first."""
        return self._incidents

    @property
    def load_failed(self) -> bool:
        """True when the last ``load_all`` could not reach the backend."""
        return self.error is not None

    def __len__(self) -> int:
        return len(self._incidents)

    def get(self, incident_id: int) -> Incident | None:
        """Look up an incident by id."""
        return next((i for i in self._incidents if i.id == incident_id), None)

    def _replace(self, incidents: Iterable[Incident]) -> None:
        self._incidents = sort_incidents(incidents)

    async def load_all(self) -> tuple[Incident, ...]:
        """Fetch the full collection and replace the in-memory copy.

        Never raises: on failure the collection becomes empty and ``error``
        holds the reason.
        """
        try:
            data = await self.client.get_json(self.kind.list_path)
        except PortalError as e:
            logger.warning("Failed to load %s: %s", self.kind.collection, e)
            self._incidents = ()
            self.error = str(e)
            return self._incidents

        by_id: dict[int, Incident] = {}
        skipped = 0
        for raw in unwrap_collection(data) or []:
            incident = Incident.from_api(raw, self.kind) if isinstance(raw, dict) else None
            if incident is None:
                skipped += 1
                continue
            by_id[incident.id] = incident

        if skipped:
            logger.warning("Skipped %d %s without a usable id", skipped, self.kind.collection)

        self._replace(by_id.values())
        self.error = None
        self.loaded_at = datetime.now()
        logger.info("Loaded %d %s", len(self._incidents), self.kind.collection)
        return self._incidents

    async def create(self, payload: dict[str, Any]) -> Incident:
        """Create a new incident and add it to the collection.

        Args:
            payload: Backend request body, without an id

        Returns:
            The created incident as confirmed by the server

        Raises:
            PortalError: Any failure; the collection is left unchanged
        """
        body = {k: v for k, v in payload.items() if k not in ("id", self.kind.id_field)}
        data = await self.client.post_json(self.kind.create_path, body)

        incident = Incident.from_api(data, self.kind) if isinstance(data, dict) else None
        if incident is None:
            path = self.kind.create_path
            raise RemoteError(f"Create on {path} returned no usable record", 200)

        self._replace([*(i for i in self._incidents if i.id != incident.id), incident])
        logger.info("Created %s %d", self.kind.value, incident.id)
        return incident

    async def update_field(self, incident_id: int, patch: dict[str, Any]) -> None:
        """Send a partial update and merge it into the local record.

        The merge is a no-op if the record vanished locally meanwhile (e.g.
        a concurrent delete).

        Raises:
            PortalError: Any failure; the collection is left unchanged
        """
        method = self.client.settings.update_method
        await self.client.send_json(
            method,
            f"{self.kind.path}/{incident_id}",
            Incident.to_api_patch(self.kind, patch),
        )

        current = self.get(incident_id)
        if current is None:
            logger.info("Updated %s %d, no longer held locally", self.kind.value, incident_id)
            return

        merged = {k: v for k, v in patch.items() if k in Incident.model_fields}
        updated = current.model_copy(update=merged)
        self._incidents = tuple(updated if i.id == incident_id else i for i in self._incidents)
        logger.info("Updated %s %d: %s", self.kind.value, incident_id, sorted(patch))

    async def remove(self, incident_id: int) -> None:
        """Delete an incident. Removing an id that is already gone is not an error.

        Raises:
            PortalError: Any failure other than a 404; the collection is left unchanged
        """
        try:
            await self.client.delete(f"{self.kind.path}/{incident_id}")
        except RemoteError as e:
            if e.status_code != 404:
                raise
            logger.info("%s %d already absent remotely", self.kind.value, incident_id)

        self._incidents = tuple(i for i in self._incidents if i.id != incident_id)
        logger.info("Deleted %s %d", self.kind.value, incident_id)

    async def resolve_attachment(self, incident: Incident) -> str | None:
        """Turn an incident's photo reference into something displayable.

        Prefers a direct URL; otherwise fetches the binary by id and returns
        it as a ``data:`` URI.

        Returns:
            URL or data URI, or None when there is no photo or it can't be fetched
        """
        attachment = incident.attachment
        if attachment is None:
            return None
        if attachment.url:
            return attachment.url
        if not attachment.photo_id:
            return None

        try:
            content, content_type = await self.client.get_bytes(f"/api/fotos/{attachment.photo_id}")
        except PortalError as e:
            logger.warning("Failed to fetch photo %s: %s", attachment.photo_id, e)
            return None

        encoded = base64.b64encode(content).decode("ascii")
        return f"data:{content_type};base64,{encoded}"
