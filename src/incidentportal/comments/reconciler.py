"""Comment threads over an inconsistent comment API.

Deployments disagree on where comments live: some expose a nested collection
per incident, some accept a query parameter (under several spellings), some
only offer the global list. ``CommentReconciler`` walks an ordered list of
endpoint templates, takes the first one that answers, and then keeps only the
comments whose parent relation resolves to the requested incident of the
requested kind.

Absence of comments and failure to reach any endpoint look the same to the
caller: an empty thread.
"""

import logging
from collections.abc import Sequence
from typing import Any

from incidentportal.api.client import PortalClient
from incidentportal.comments.models import (
    PARENT_QUERY_PARAMS,
    Comment,
    belongs_to,
    is_unparented,
)
from incidentportal.core.normalize import coerce_int, unwrap_collection
from incidentportal.core.session import Session, can_mutate
from incidentportal.errors import (
    InputValidationError,
    PermissionDeniedError,
    PortalError,
    UnauthenticatedError,
)
from incidentportal.incidents.models import IncidentKind

logger = logging.getLogger(__name__)

COMMENTS_PATH = "/api/comentarios"


class CommentReconciler:
    """Loads, adds, edits and deletes comments for incidents of one kind.

    Usage::

        async with PortalClient() as client:
            comments = CommentReconciler(client, session, IncidentKind.REPORT)
            thread = await comments.load_thread(12)
            await comments.add(12, "Still flooded this morning")
    """

    def __init__(
        self,
        client: PortalClient,
        session: Session,
        parent_kind: IncidentKind = IncidentKind.REPORT,
        endpoint_templates: Sequence[str] | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            client: Open portal client
            session: Current caller
            parent_kind: Kind of incident the comments attach to
            endpoint_templates: Ordered read endpoints with ``{collection}``,
                ``{parent_id}``, ``{id_field}`` and ``{param}`` placeholders
                (defaults to settings)
        """
        self.client = client
        self.session = session
        self.parent_kind = parent_kind
        if endpoint_templates is None:
            endpoint_templates = client.settings.comment_endpoints
        self.endpoint_templates = tuple(endpoint_templates)
        self._threads: dict[str, tuple[Comment, ...]] = {}

    def candidates(self, parent_id: int | str) -> list[tuple[str, bool]]:
        """Expand the endpoint templates for one parent, in the order they are tried.

        Returns:
            List of (url, whether the url is scoped to this parent)
        """
        kind = self.parent_kind
        expanded = []
        for template in self.endpoint_templates:
            scoped = "{parent_id}" in template
            params = PARENT_QUERY_PARAMS[kind] if "{param}" in template else (None,)
            for param in params:
                url = template.format(
                    collection=kind.collection,
                    parent_id=parent_id,
                    id_field=kind.id_field,
                    param=param,
                )
                expanded.append((url, scoped))
        return expanded

    def candidate_urls(self, parent_id: int | str) -> list[str]:
        """Candidate read urls for one parent, in the order they are tried."""
        return [url for url, _ in self.candidates(parent_id)]

    def thread(self, parent_id: int | str) -> tuple[Comment, ...]:
        """Last loaded thread for a parent (empty if never loaded)."""
        return self._threads.get(str(parent_id), ())

    async def _first_answer(self, parent_id: int | str) -> tuple[Any, bool]:
        """Try the candidate endpoints in order.

        Returns:
            Tuple of (decoded answer or None if nothing answered, whether the
            answering endpoint is scoped to this parent)
        """
        for url, scoped in self.candidates(parent_id):
            try:
                data = await self.client.get_json(url)
            except PortalError as e:
                logger.debug("Comment endpoint %s unavailable: %s", url, e)
                continue
            logger.debug("Comments for %s served by %s", parent_id, url)
            return (data if data is not None else []), scoped
        return None, False

    async def load_thread(self, parent_id: int | str) -> tuple[Comment, ...]:
        """Fetch the comments of one incident.

        Returns:
            Comments belonging to ``parent_id``, in server order. Empty when no
            endpoint answers or nothing matches.
        """
        data, scoped = await self._first_answer(parent_id)
        if data is None:
            logger.warning("No comment endpoint answered for %s %s", self.parent_kind, parent_id)
            items: list = []
        else:
            items = unwrap_collection(data)
            if items is None:
                items = [data]

        kind = self.parent_kind
        thread = tuple(
            self._attach(raw, parent_id, scoped)
            for raw in items
            if belongs_to(raw, parent_id, kind) or (scoped and is_unparented(raw))
        )
        dropped = len(items) - len(thread)
        if dropped:
            logger.debug("Dropped %d comments not belonging to %s", dropped, parent_id)

        self._threads[str(parent_id)] = thread
        return thread

    def _attach(self, raw: dict, parent_id: int | str, scoped: bool) -> Comment:
        """Build a Comment; a scoped endpoint supplies the parent when the payload lacks it."""
        comment = Comment.from_api(raw, self.parent_kind)
        if scoped and comment.parent_incident_id is None:
            comment = comment.model_copy(update={"parent_incident_id": coerce_int(parent_id)})
        return comment

    def _create_payload(self, parent_id: int | str, body: str) -> dict:
        try:
            parent: int | str = int(parent_id)
        except (TypeError, ValueError):
            parent = parent_id
        payload: dict[str, Any] = {
            "mensaje": body,
            "usuario": {"usuarioId": self.session.user_id},
        }
        payload[self.parent_kind.value] = {self.parent_kind.id_field: parent}
        return payload

    async def add(self, parent_id: int | str, body: str) -> tuple[Comment, ...]:
        """Post a new comment, then reload the thread.

        The creation response is not trusted to have the listing shape, so the
        returned thread always comes from ``load_thread``.

        Raises:
            UnauthenticatedError: No current user id
            InputValidationError: Empty body
            PortalError: The create request failed
        """
        if not self.session.is_authenticated:
            raise UnauthenticatedError("Log in to comment")
        if not body or not body.strip():
            raise InputValidationError("Comment cannot be empty")

        await self.client.post_json(COMMENTS_PATH, self._create_payload(parent_id, body.strip()))
        logger.info("Added comment to %s %s", self.parent_kind.value, parent_id)
        return await self.load_thread(parent_id)

    def can_mutate(self, comment: Comment) -> bool:
        """Admins may change any comment, users only their own."""
        return can_mutate(self.session, comment.author.id, allow_author=True)

    def _require(self, comment: Comment) -> int:
        if not self.can_mutate(comment):
            raise PermissionDeniedError("You can only change your own comments")
        if comment.id is None:
            raise InputValidationError("Comment has no id")
        return comment.id

    async def edit(self, comment: Comment, body: str) -> tuple[Comment, ...]:
        """Replace a comment's text and reload its thread.

        Raises:
            PermissionDeniedError: Not the author and not an admin
            InputValidationError: Empty body or comment without id
            PortalError: The update request failed
        """
        comment_id = self._require(comment)
        if not body or not body.strip():
            raise InputValidationError("Comment cannot be empty")

        await self.client.send_json(
            self.client.settings.update_method,
            f"{COMMENTS_PATH}/{comment_id}",
            {"mensaje": body.strip()},
        )
        logger.info("Edited comment %d", comment_id)
        return await self._reload(comment)

    async def delete(self, comment: Comment) -> tuple[Comment, ...]:
        """Delete a comment and reload its thread.

        Raises:
            PermissionDeniedError: Not the author and not an admin
            PortalError: The delete request failed
        """
        comment_id = self._require(comment)
        await self.client.delete(f"{COMMENTS_PATH}/{comment_id}")
        logger.info("Deleted comment %d", comment_id)
        return await self._reload(comment)

    async def _reload(self, comment: Comment) -> tuple[Comment, ...]:
        if comment.parent_incident_id is None or comment.parent_kind is not self.parent_kind:
            return ()
        return await self.load_thread(comment.parent_incident_id)
