"""Outbound dispatch queue module."""

from fixdispatch.dispatch.backoff import BACKOFF_SCHEDULE, MAX_ATTEMPTS, compute_backoff
from fixdispatch.dispatch.client import (
    DeliveryResult,
    DispatchClient,
    DispatchConfigError,
    build_envelope,
    serialize_payload,
    sign_payload,
)
from fixdispatch.dispatch.store import (
    InvalidTransitionError,
    compute_payload_hash,
    count_by_status,
    create_item,
    get_due_items,
    get_item,
    list_items,
    mark_failed,
    mark_in_flight,
    mark_sent,
    update_item,
)
from fixdispatch.dispatch.worker import DispatchWorker, ItemResult, process_item

__all__ = [
    "BACKOFF_SCHEDULE",
    "MAX_ATTEMPTS",
    "DeliveryResult",
    "DispatchClient",
    "DispatchConfigError",
    "DispatchWorker",
    "InvalidTransitionError",
    "ItemResult",
    "build_envelope",
    "compute_backoff",
    "compute_payload_hash",
    "count_by_status",
    "create_item",
    "get_due_items",
    "get_item",
    "list_items",
    "mark_failed",
    "mark_in_flight",
    "mark_sent",
    "process_item",
    "serialize_payload",
    "sign_payload",
    "update_item",
]
