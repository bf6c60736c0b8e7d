"""Sequential multi-step approval engine.

Core components
---------------

- ``templates``: line-code-aware template chain resolution.
- ``approvers``: template entry to concrete head-of-unit resolution.
- ``chain``: deduplicated chain construction with initial statuses.
- ``duplicates``: suppression of repeated decisions within a window.
- ``decisions``: the per-step and aggregate state machine.
- ``transaction``: serializable unit of work with bounded retry.
- ``bypass``: administrative partial/full overrides.
- ``reassignment``: approver change requests.
- ``notifications``: post-commit, best-effort fan-out.
- ``service``: the ``ApprovalService`` facade tying them together.
"""

from .notifications import LoggingNotifier, Notification, NotificationDispatcher, NotificationEvent, Notifier
from .service import ApprovalService
from .transaction import RetryPolicy, TransactionRunner

__all__ = [
    "ApprovalService",
    "LoggingNotifier",
    "Notification",
    "NotificationDispatcher",
    "NotificationEvent",
    "Notifier",
    "RetryPolicy",
    "TransactionRunner",
]
