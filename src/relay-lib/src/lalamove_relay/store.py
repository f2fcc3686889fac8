"""
lalamove_relay.store — DynamoDB persistence of fetched order details.

Tables:
    lalamove-orders        PK: ORDER#{orderId}  SK: METADATA
    lalamove-order-stops   PK: ORDER#{orderId}  SK: STOP#{stopSequence:03d}

Every write is an UpdateItem with a SET expression, i.e. an upsert, so
re-delivering the same queue message converges on the same items.

The header write and each stop write are separate calls with no
transaction: a failure part-way through leaves earlier stops written. The
error is raised as PersistenceError and nothing is rolled back.

StopSequence is the stop's zero-based position in OrderDetails.stops at
fetch time, not a provider identifier. If the provider ever reorders stops
between fetches, re-persisting will overwrite the wrong stop items.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from lalamove_relay.config import Settings
from lalamove_relay.exceptions import PersistenceError
from lalamove_relay.models import OrderDetails, Stop

logger = Logger(service="order-store")


def _now_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def order_key(order_id: str) -> dict[str, str]:
    return {"PK": f"ORDER#{order_id}", "SK": "METADATA"}


def stop_key(order_id: str, stop_sequence: int) -> dict[str, str]:
    return {"PK": f"ORDER#{order_id}", "SK": f"STOP#{stop_sequence:03d}"}


def _decimal_or_none(value: str | None) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        logger.warning("Non-numeric amount left unset", extra={"value": value})
        return None


def _build_update_expression(
    attributes: dict[str, Any],
) -> tuple[str, dict[str, str], dict[str, Any]]:
    names: dict[str, str] = {}
    values: dict[str, Any] = {}
    set_parts: list[str] = []
    for idx, (field, value) in enumerate(attributes.items(), start=1):
        name_key = f"#n{idx}"
        value_key = f":v{idx}"
        names[name_key] = field
        values[value_key] = value
        set_parts.append(f"{name_key} = {value_key}")
    return "SET " + ", ".join(set_parts), names, values


def order_attributes(details: OrderDetails, updated_at: str) -> dict[str, Any]:
    return {
        "order_id": details.order_id,
        "status": details.status,
        "driver_id": details.driver_id,
        "share_link": details.share_link,
        "total_amount": _decimal_or_none(details.price_breakdown.total),
        "currency": details.price_breakdown.currency,
        "distance": _decimal_or_none(details.distance.value),
        "distance_unit": details.distance.unit,
        "updated_at": updated_at,
    }


def stop_attributes(
    order_id: str, stop_sequence: int, stop: Stop, updated_at: str
) -> dict[str, Any]:
    pod = stop.pod
    return {
        "order_id": order_id,
        "stop_sequence": stop_sequence,
        "delivery_status": stop.delivery_status,
        "delivered_at": pod.delivered_at if pod else None,
        "pod_image": pod.image if pod else None,
        "updated_at": updated_at,
    }


class OrderStore:
    """
    Upserts OrderDetails onto the order-header and per-stop tables.

    `clock` returns the ISO 8601 UTC string written to updated_at; tests
    pin it to make repeated writes comparable.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        dynamodb_resource: Any = None,
        clock: Callable[[], str] = _now_iso,
    ) -> None:
        self._orders_table = settings.orders_table
        self._stops_table = settings.order_stops_table
        self._dynamodb: Any = dynamodb_resource or boto3.resource(
            "dynamodb", region_name=settings.region
        )
        self._clock = clock

    def _upsert(self, table_name: str, key: dict[str, str], attributes: dict[str, Any]) -> None:
        expression, names, values = _build_update_expression(attributes)
        try:
            self._dynamodb.Table(table_name).update_item(
                Key=key,
                UpdateExpression=expression,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.exception(
                "Failed to upsert order item", extra={"table": table_name, "key": key}
            )
            raise PersistenceError(f"Failed to write {key['SK']} for {key['PK']}") from exc

    def save_order_details(self, details: OrderDetails) -> int:
        """Write the header item then one item per stop, in stop order.

        Returns the number of stop items written.
        """
        updated_at = self._clock()
        self._upsert(
            self._orders_table,
            order_key(details.order_id),
            order_attributes(details, updated_at),
        )
        for stop_sequence, stop in enumerate(details.stops):
            self._upsert(
                self._stops_table,
                stop_key(details.order_id, stop_sequence),
                stop_attributes(details.order_id, stop_sequence, stop, updated_at),
            )
        logger.info(
            "Updated order in database",
            extra={"order_id": details.order_id, "stops": len(details.stops)},
        )
        return len(details.stops)
