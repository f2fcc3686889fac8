"""
lalamove_relay.models — Webhook, order-detail and queue message schemas.

Every model is a frozen dataclass built from decoded JSON. Each processing
stage produces a new value from the previous one; nothing is mutated in place.

Shapes defined here:
    WebhookEnvelope           — inbound ORDER_STATUS_CHANGED webhook body
    OrderDetails / Stop       — GET /v3/orders/{orderId} response snapshot
    QueuedProcessingMessage   — SQS body for the queue topology
    FetchResult               — tagged outcome of an order-detail fetch
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from lalamove_relay.exceptions import MalformedInput, UpstreamError, UpstreamTimeout

# Envelope keys that must be present before signature validation is attempted
_ENVELOPE_REQUIRED_KEYS = ("apiKey", "timestamp", "signature", "data")


# ---------------------------------------------------------------------------
# Enums: event types, order and stop statuses, fetch outcomes
# ---------------------------------------------------------------------------


class WebhookEventType(StrEnum):
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"


class OrderStatus(StrEnum):
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class StopStatus(StrEnum):
    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class FetchOutcome(StrEnum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    UPSTREAM_ERROR = "upstream_error"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value})


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


# ---------------------------------------------------------------------------
# Inbound webhook
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WebhookOrder:
    """The `data.order` block of an ORDER_STATUS_CHANGED webhook."""

    order_id: str
    status: str
    market: str | None = None
    driver_id: str | None = None
    previous_status: str | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> WebhookOrder:
        order_id = raw.get("orderId")
        status = raw.get("status")
        if order_id is None or status is None:
            raise MalformedInput("Invalid webhook body")
        return cls(
            order_id=str(order_id),
            status=str(status),
            market=_opt_str(raw.get("market")),
            driver_id=_opt_str(raw.get("driverId")),
            previous_status=_opt_str(raw.get("previousStatus")),
        )

    @property
    def is_completed(self) -> bool:
        return self.status == OrderStatus.COMPLETED

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class WebhookEnvelope:
    """Inbound webhook body.

    `data` is kept exactly as decoded (key order included) because the
    provider signs its compact JSON serialization. `timestamp` is kept as
    received (unix seconds) for the same reason. `raw` is the whole decoded
    body and is what gets forwarded to the processing queue.
    """

    api_key: str
    timestamp: Any
    signature: str
    event_type: str
    data: Mapping[str, Any]
    raw: Mapping[str, Any] = field(repr=False)
    updated_at: str | None = None
    order: WebhookOrder | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> WebhookEnvelope:
        if not isinstance(raw, Mapping):
            raise MalformedInput("Invalid webhook body")
        missing = [key for key in _ENVELOPE_REQUIRED_KEYS if key not in raw]
        if missing or not isinstance(raw["data"], Mapping):
            raise MalformedInput("Invalid webhook body")

        data = raw["data"]
        order: WebhookOrder | None = None
        if isinstance(data.get("order"), Mapping):
            order = WebhookOrder.from_dict(data["order"])

        return cls(
            api_key=str(raw["apiKey"]),
            timestamp=raw["timestamp"],
            signature=str(raw["signature"]),
            event_type=str(raw.get("eventType", "")),
            data=data,
            raw=raw,
            updated_at=_opt_str(data.get("updatedAt")),
            order=order,
        )

    @property
    def is_order_status_change(self) -> bool:
        return self.event_type == WebhookEventType.ORDER_STATUS_CHANGED and self.order is not None


# ---------------------------------------------------------------------------
# Order details (GET /v3/orders/{orderId})
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PriceBreakdown:
    """Decimal amounts as strings, exactly as the provider sends them."""

    total: str
    currency: str
    base: str | None = None
    special_requests: str | None = None
    priority_fee: str | None = None
    multi_stop_surcharge: str | None = None
    total_exclude_priority_fee: str | None = None

    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> PriceBreakdown:
        return cls(
            total=str(raw["total"]),
            currency=str(raw["currency"]),
            base=_opt_str(raw.get("base")),
            special_requests=_opt_str(raw.get("specialRequests")),
            priority_fee=_opt_str(raw.get("priorityFee")),
            multi_stop_surcharge=_opt_str(raw.get("multiStopSurcharge")),
            total_exclude_priority_fee=_opt_str(raw.get("totalExcludePriorityFee")),
        )


@dataclass(frozen=True)
class Distance:
    value: str
    unit: str

    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> Distance:
        return cls(value=str(raw["value"]), unit=str(raw.get("unit", "")))


@dataclass(frozen=True)
class Coordinates:
    lat: str
    lng: str


@dataclass(frozen=True)
class ProofOfDelivery:
    status: str
    image: str | None = None
    delivered_at: str | None = None  # ISO 8601 as sent by the provider


@dataclass(frozen=True)
class DeliveryCode:
    value: str | None
    status: str | None


@dataclass(frozen=True)
class Stop:
    """One delivery waypoint. Its position in OrderDetails.stops is its sequence."""

    coordinates: Coordinates
    address: str
    name: str | None = None
    phone: str | None = None
    pod: ProofOfDelivery | None = None
    delivery_code: DeliveryCode | None = None

    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> Stop:
        coordinates = _mapping(raw.get("coordinates"))
        pod_raw = raw.get("POD")
        code_raw = raw.get("delivery_code")

        pod = None
        if isinstance(pod_raw, Mapping):
            pod = ProofOfDelivery(
                status=str(pod_raw.get("status") or StopStatus.PENDING),
                image=_opt_str(pod_raw.get("image")) or None,
                delivered_at=_opt_str(pod_raw.get("deliveredAt")) or None,
            )

        delivery_code = None
        if isinstance(code_raw, Mapping):
            delivery_code = DeliveryCode(
                value=_opt_str(code_raw.get("value")),
                status=_opt_str(code_raw.get("status")),
            )

        return cls(
            coordinates=Coordinates(
                lat=str(coordinates.get("lat", "")),
                lng=str(coordinates.get("lng", "")),
            ),
            address=str(raw.get("address", "")),
            name=_opt_str(raw.get("name")),
            phone=_opt_str(raw.get("phone")),
            pod=pod,
            delivery_code=delivery_code,
        )

    @property
    def delivery_status(self) -> str:
        if self.pod is None or not self.pod.status:
            return StopStatus.PENDING.value
        return self.pod.status


@dataclass(frozen=True)
class OrderDetails:
    """Read-only snapshot of a provider order.

    `stops` keeps the provider's order: the index of a stop is persisted as
    its StopSequence.
    """

    order_id: str
    status: str
    price_breakdown: PriceBreakdown
    distance: Distance
    stops: tuple[Stop, ...]
    quotation_id: str | None = None
    driver_id: str | None = None
    share_link: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, payload: Any) -> OrderDetails:
        """Build from the full response body (`{"data": {...}}`).

        Raises ValueError when the body does not have the expected shape.
        """
        if not isinstance(payload, Mapping) or not isinstance(payload.get("data"), Mapping):
            raise ValueError("Order details response has no data object")
        data = payload["data"]
        try:
            stops_raw = data.get("stops") or []
            if not isinstance(stops_raw, list):
                raise ValueError("stops must be a list")
            return cls(
                order_id=str(data["orderId"]),
                status=str(data["status"]),
                price_breakdown=PriceBreakdown.from_api(data["priceBreakdown"]),
                distance=Distance.from_api(data["distance"]),
                stops=tuple(Stop.from_api(_mapping(stop)) for stop in stops_raw),
                quotation_id=_opt_str(data.get("quotationId")),
                driver_id=_opt_str(data.get("driverId")),
                share_link=_opt_str(data.get("shareLink")),
                metadata=dict(_mapping(data.get("metadata"))),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Order details response is incomplete: {exc}") from exc


@dataclass(frozen=True)
class FetchResult:
    """Tagged result of LalamoveClient.get_order_details."""

    outcome: FetchOutcome
    order_id: str
    details: OrderDetails | None = None
    status_code: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == FetchOutcome.SUCCESS and self.details is not None

    def raise_for_outcome(self) -> OrderDetails:
        """Return the details, or raise the matching UpstreamError subclass."""
        if self.outcome == FetchOutcome.SUCCESS and self.details is not None:
            return self.details
        message = f"Failed to fetch order details for order {self.order_id}"
        if self.error:
            message = f"{message}: {self.error}"
        if self.outcome == FetchOutcome.TIMEOUT:
            raise UpstreamTimeout(message, order_id=self.order_id)
        raise UpstreamError(message, order_id=self.order_id, status_code=self.status_code)


# ---------------------------------------------------------------------------
# Queue message, one per completed-order event
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QueuedProcessingMessage:
    """SQS message wrapping a validated webhook.

    orderId, status and eventType are echoed as String message attributes
    for routing/filtering by the queue layer.
    """

    order_id: str
    status: str
    event_type: str
    timestamp: int  # enqueue time, unix epoch milliseconds
    webhook_data: Mapping[str, Any]

    @classmethod
    def from_envelope(cls, envelope: WebhookEnvelope, *, now_ms: int) -> QueuedProcessingMessage:
        if envelope.order is None:
            raise ValueError("Only order webhooks can be queued")
        return cls(
            order_id=envelope.order.order_id,
            status=envelope.order.status,
            event_type=envelope.event_type,
            timestamp=now_ms,
            webhook_data=envelope.raw,
        )

    @classmethod
    def from_json(cls, body: str) -> QueuedProcessingMessage:
        try:
            raw = json.loads(body)
        except (json.JSONDecodeError, TypeError) as exc:
            raise MalformedInput("Queue message body is not valid JSON") from exc
        if not isinstance(raw, Mapping) or not isinstance(raw.get("webhookData"), Mapping):
            raise MalformedInput("Queue message body has no webhookData")
        envelope = WebhookEnvelope.from_dict(raw["webhookData"])
        order = envelope.order
        try:
            timestamp = int(raw.get("timestamp") or 0)
        except (TypeError, ValueError) as exc:
            raise MalformedInput("Queue message timestamp is not an integer") from exc
        return cls(
            order_id=str(raw.get("orderId") or (order.order_id if order else "")),
            status=str(raw.get("status") or (order.status if order else "")),
            event_type=str(raw.get("eventType") or envelope.event_type),
            timestamp=timestamp,
            webhook_data=raw["webhookData"],
        )

    @property
    def envelope(self) -> WebhookEnvelope:
        return WebhookEnvelope.from_dict(self.webhook_data)

    def to_json(self) -> str:
        return json.dumps(
            {
                "orderId": self.order_id,
                "status": self.status,
                "eventType": self.event_type,
                "timestamp": self.timestamp,
                "webhookData": self.webhook_data,
            },
            separators=(",", ":"),
            ensure_ascii=False,
        )

    def message_attributes(self) -> dict[str, dict[str, str]]:
        return {
            "orderId": {"DataType": "String", "StringValue": self.order_id},
            "status": {"DataType": "String", "StringValue": self.status},
            "eventType": {"DataType": "String", "StringValue": self.event_type},
        }
