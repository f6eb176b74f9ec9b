from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.adapters.aws import dynamodb_client
from src.app.ports.output import IPositionStore
from src.domain.models import CurrentPosition

RESET_MARKER_ID = "__tracking_reset__"


def _to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


@dataclass(slots=True)
class DynamoDbPositionStore(IPositionStore):
    """Stores the latest position on the unit's item in DynamoDB.

    `clear_all` is a single put of a reset watermark item; positions captured
    before the watermark read back as absent. One write, so readers never see
    a partially cleared fleet. `set` is a transaction conditioned on the
    watermark, so a fix captured before the reset is refused instead of stored.

    Env vars:
      - DDB_POSITIONS_TABLE (default: campus-bus-units)
      - ENDPOINT_URL (preferred for LocalStack)
      - AWS_REGION
    """

    table_name: str | None = None

    def _table(self) -> str:
        return (
            self.table_name or os.getenv("DDB_POSITIONS_TABLE") or "campus-bus-units"
        )

    async def get(self, unit_id: str) -> CurrentPosition | None:
        return await asyncio.to_thread(self._get_sync, unit_id)

    async def set(self, unit_id: str, position: CurrentPosition) -> bool:
        return await asyncio.to_thread(self._set_sync, unit_id, position)

    async def clear_all(self) -> None:
        await asyncio.to_thread(self._clear_all_sync)

    def _get_sync(self, unit_id: str) -> CurrentPosition | None:
        ddb = dynamodb_client()
        table = self._table()
        resp = ddb.batch_get_item(
            RequestItems={
                table: {
                    "Keys": [
                        {"unit_id": {"S": unit_id}},
                        {"unit_id": {"S": RESET_MARKER_ID}},
                    ],
                    "ConsistentRead": True,
                }
            }
        )
        items: dict[str, dict[str, Any]] = {
            item["unit_id"]["S"]: item
            for item in resp.get("Responses", {}).get(table, [])
        }

        item = items.get(unit_id)
        if not item or "captured_at_ms" not in item:
            return None

        captured_ms = int(item["captured_at_ms"]["N"])
        marker = items.get(RESET_MARKER_ID)
        if marker is not None and captured_ms < int(marker["reset_at_ms"]["N"]):
            return None

        return CurrentPosition(
            latitude=float(item["latitude"]["N"]),
            longitude=float(item["longitude"]["N"]),
            captured_at=datetime.fromisoformat(item["captured_at"]["S"]),
        )

    def _set_sync(self, unit_id: str, position: CurrentPosition) -> bool:
        ddb = dynamodb_client()
        table = self._table()
        captured_ms = str(_to_ms(position.captured_at))
        try:
            # One transaction: the write only lands if no reset happened after capture.
            ddb.transact_write_items(
                TransactItems=[
                    {
                        "ConditionCheck": {
                            "TableName": table,
                            "Key": {"unit_id": {"S": RESET_MARKER_ID}},
                            "ConditionExpression": (
                                "attribute_not_exists(reset_at_ms) OR reset_at_ms <= :ms"
                            ),
                            "ExpressionAttributeValues": {":ms": {"N": captured_ms}},
                        }
                    },
                    {
                        # Update (not put) so unit attributes owned by fleet management survive.
                        "Update": {
                            "TableName": table,
                            "Key": {"unit_id": {"S": unit_id}},
                            "UpdateExpression": (
                                "SET latitude = :lat, longitude = :lon, "
                                "captured_at = :ts, captured_at_ms = :ms"
                            ),
                            "ExpressionAttributeValues": {
                                ":lat": {"N": repr(position.latitude)},
                                ":lon": {"N": repr(position.longitude)},
                                ":ts": {"S": position.captured_at.isoformat()},
                                ":ms": {"N": captured_ms},
                            },
                        }
                    },
                ]
            )
        except ddb.exceptions.TransactionCanceledException as exc:
            reasons = exc.response.get("CancellationReasons") or []
            if reasons and reasons[0].get("Code") == "ConditionalCheckFailed":
                return False
            raise
        return True

    def _clear_all_sync(self) -> None:
        ddb = dynamodb_client()
        ddb.put_item(
            TableName=self._table(),
            Item={
                "unit_id": {"S": RESET_MARKER_ID},
                "reset_at_ms": {"N": str(int(time.time() * 1000))},
            },
        )
