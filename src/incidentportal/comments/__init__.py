"""Comment threads attached to incidents."""

from incidentportal.comments.models import Comment
from incidentportal.comments.reconciler import CommentReconciler

__all__ = ["Comment", "CommentReconciler"]
