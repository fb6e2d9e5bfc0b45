"""
Audit Trail

One structured log record per outcome of an engine operation. Audit
logging is best-effort: a failing handler must never change what the
caller sees.
"""

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from order_engine.core.config import get_logger
from order_engine.core.errors import EngineError
from order_engine.core.identity import Caller

logger = get_logger("order_engine.audit")
fallback_logger = get_logger(__name__)

SUCCESS = "success"
FAILURE = "failure"


def record(
    operation: str,
    outcome: str,
    caller_id: Optional[str],
    resource_id: Optional[str] = None,
    reason: Optional[str] = None,
    **fields: Any,
) -> None:
    """
    Write an audit record.

    Args:
        operation: Operation name (e.g. "processPayment")
        outcome: SUCCESS or FAILURE
        caller_id: Id of the caller, None when anonymous
        resource_id: Primary resource the operation touched
        reason: Failure reason, if any
        **fields: Additional context (amounts, statuses, ...)
    """
    entry = {
        "operation": operation,
        "outcome": outcome,
        "caller_id": caller_id,
        "resource_id": resource_id,
        "reason": reason,
        **fields,
    }
    try:
        if outcome == FAILURE:
            logger.warning(
                f"AUDIT {operation} failed: caller={caller_id} "
                f"resource={resource_id} reason={reason}",
                extra={"audit": entry},
            )
        else:
            logger.info(
                f"AUDIT {operation} succeeded: caller={caller_id} resource={resource_id}",
                extra={"audit": entry},
            )
    except Exception:
        # A broken handler never changes the outcome of the audited operation
        try:
            fallback_logger.debug(f"Audit record for {operation} was dropped", exc_info=True)
        except Exception:
            pass


@contextmanager
def track(
    operation: str,
    caller: Optional[Caller],
    resource_id: Optional[str] = None,
    **fields: Any,
) -> Iterator[dict]:
    """
    Audit the block it wraps: one success record, or one failure record
    carrying the error reason before the error propagates unchanged.

    The yielded dict may be updated inside the block (e.g. with the id of a
    newly created resource) and is logged with the outcome.

    Example:
        >>> with track("createOrder", caller) as entry:
        ...     order = await create()
        ...     entry["resource_id"] = order.id
    """
    entry: dict = {"resource_id": resource_id, **fields}
    caller_id = caller.id if caller is not None else None
    try:
        yield entry
    except EngineError as e:
        rid = entry.pop("resource_id", None)
        record(operation, FAILURE, caller_id, rid, reason=e.reason, kind=e.kind.value, **entry)
        raise
    except Exception as e:
        rid = entry.pop("resource_id", None)
        record(operation, FAILURE, caller_id, rid, reason=repr(e), kind="INTERNAL", **entry)
        raise
    else:
        rid = entry.pop("resource_id", None)
        record(operation, SUCCESS, caller_id, rid, **entry)
