"""Tests for Delivery settlement."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from hireflow_notifications.envelope import Delivery, Settlement
from hireflow_notifications.exceptions import DeliveryAlreadySettledError


@pytest.mark.asyncio
async def test_ack(make_delivery) -> None:
    on_ack = AsyncMock()
    delivery = make_delivery(on_ack=on_ack)
    assert not delivery.is_settled
    await delivery.ack()
    on_ack.assert_awaited_once()
    assert delivery.settlement is Settlement.ACK


@pytest.mark.asyncio
async def test_requeue_and_dead_letter_reject_with_flag(make_delivery) -> None:
    requeued = make_delivery(on_reject=AsyncMock())
    await requeued.requeue()
    requeued._on_reject.assert_awaited_once_with(True)

    dead = make_delivery(on_reject=AsyncMock())
    await dead.dead_letter()
    dead._on_reject.assert_awaited_once_with(False)
    assert dead.settlement is Settlement.DEAD_LETTER


@pytest.mark.asyncio
async def test_second_terminal_action_raises(make_delivery) -> None:
    on_reject = AsyncMock()
    delivery = make_delivery(on_reject=on_reject)
    await delivery.ack()
    with pytest.raises(DeliveryAlreadySettledError) as exc_info:
        await delivery.dead_letter()
    assert exc_info.value.settled_with == "ack"
    on_reject.assert_not_awaited()


@pytest.mark.asyncio
async def test_settled_even_when_broker_call_fails(make_delivery) -> None:
    delivery = make_delivery(on_ack=AsyncMock(side_effect=ConnectionError("down")))
    with pytest.raises(ConnectionError):
        await delivery.ack()
    assert delivery.settlement is Settlement.ACK
    with pytest.raises(DeliveryAlreadySettledError):
        await delivery.requeue()


@pytest.mark.asyncio
async def test_from_incoming_maps_aio_pika_message() -> None:
    message = MagicMock()
    message.body = b"{}"
    message.headers = {"correlation_id": b"c-1"}
    message.message_id = ""
    message.correlation_id = "c-prop"
    message.exchange = "ex"
    message.routing_key = "notifications.commands"
    message.consumer_tag = "notifications-abc"
    message.delivery_tag = 42
    message.redelivered = True
    message.ack = AsyncMock()
    message.reject = AsyncMock()

    delivery = Delivery.from_incoming(message)

    assert delivery.body == b"{}"
    assert delivery.headers.get("correlation_id") == "c-1"
    assert delivery.properties.message_id is None
    assert delivery.properties.correlation_id == "c-prop"
    assert delivery.properties.delivery_tag == 42
    assert delivery.properties.redelivered is True
    await delivery.requeue()
    message.reject.assert_awaited_once_with(requeue=True)
    message.ack.assert_not_awaited()
