"""
Replay of queued webhook events.

Events forwarded through a queue were verified when they were enqueued,
so records are handed to the dispatcher without a signature check.
Record batches follow the queue's envelope: {"Records": [{"body": "<event json>"}]}.
"""

import json
import logging

from renewal_billing.billing.errors import BillingError

logger = logging.getLogger(__name__)


class ReplayError(BillingError):
    code = "REPLAY_FAILED"

    def __init__(self, message, processed, result=None):
        super().__init__(message, processed=processed)
        self.processed = processed
        self.result = result


def _event_from_record(record, index):
    body = record.get("body") if isinstance(record, dict) else None
    if isinstance(body, dict):
        return body
    if not isinstance(body, str):
        raise ReplayError(f"Record {index} has no body", processed=index)
    try:
        event = json.loads(body)
    except ValueError as e:
        raise ReplayError(f"Record {index} body is not JSON: {e}", processed=index)
    if not isinstance(event, dict):
        raise ReplayError(f"Record {index} body is not a JSON object", processed=index)
    return event


def replay_records(dispatcher, batch) -> int:
    """
    Dispatch every record of a batch in order and return how many succeeded.

    The first record the dispatcher does not acknowledge stops the batch so
    the queue can redeliver from there.
    """
    records = batch.get("Records") if isinstance(batch, dict) else batch
    if not isinstance(records, list):
        raise ReplayError("Batch has no Records list", processed=0)

    processed = 0
    for index, record in enumerate(records):
        event = _event_from_record(record, index)
        result = dispatcher.dispatch(event)
        if not result.ok:
            logger.error(
                "Replay stopped at record %d",
                index,
                extra={"event_id": event.get("id"), "status_code": result.status_code},
            )
            raise ReplayError(
                f"Record {index} ({event.get('id')}) failed with {result.status_code}: {result.body.get('message')}",
                processed=processed,
                result=result,
            )
        processed += 1

    logger.info("Replayed %d queued events", processed)
    return processed
