"""
Tests for notification delivery and chat notifications.
"""

import pytest

from chat.hub import ChatHub
from chat.notification_templates import PREVIEW_LENGTH, message_preview
from common.models import Notification, NotificationType
from conftest import COACH, U1, U2, connect


@pytest.mark.asyncio
async def test_notify_reaches_all_devices(hub: ChatHub):
    _, phone = await connect(hub, U1)
    _, laptop = await connect(hub, U1)
    _, other = await connect(hub, U2)

    delivered = await hub.notifications.notify(
        "u1", "success", "Payment received", "Thanks!", {"invoiceId": "inv-1"}
    )

    assert delivered == 2
    expected = {
        "type": "success",
        "title": "Payment received",
        "message": "Thanks!",
        "data": {"invoiceId": "inv-1"},
    }
    assert phone.data("notification") == [expected]
    assert laptop.data("notification") == [expected]
    assert other.data("notification") == []


@pytest.mark.asyncio
async def test_notify_offline_user_is_dropped(hub: ChatHub):
    """No live connection means nothing is delivered and nothing is queued."""
    assert await hub.notifications.notify("ghost", "info", "Hi", "there") == 0

    _, ws = await connect(hub, U1.model_copy(update={"id": "ghost"}))
    assert ws.data("notification") == []


@pytest.mark.asyncio
async def test_notify_rejects_unknown_type(hub: ChatHub):
    with pytest.raises(ValueError):
        await hub.notifications.notify("u1", "urgent", "Hi", "there")


@pytest.mark.asyncio
async def test_notify_room_and_many(hub: ChatHub):
    c1, ws1 = await connect(hub, U1)
    _, ws2 = await connect(hub, U2)
    await hub.rooms.join(c1, "batch:42")
    notification = Notification(type=NotificationType.INFO, title="Class moved", message="5pm")

    assert await hub.notifications.notify_room("batch:42", notification) == 1
    assert await hub.notifications.notify_many(["u1", "u2", "u2"], notification) == 2

    assert len(ws1.data("notification")) == 2
    assert len(ws2.data("notification")) == 1


def test_message_preview():
    assert message_preview("short") == "short"
    long_text = "x" * (PREVIEW_LENGTH + 20)
    assert message_preview(long_text) == "x" * PREVIEW_LENGTH + "..."


@pytest.mark.asyncio
async def test_new_message_template_truncates_preview(hub: ChatHub):
    _, ws = await connect(hub, COACH)

    await hub.chat_notifications.new_message("coach1", "batch:42", "Priya", "y" * 150)

    notification = ws.data("notification")[0]
    assert notification["title"] == "Message from Priya"
    assert notification["message"] == "y" * PREVIEW_LENGTH + "..."
    assert notification["data"] == {"event": "new_message", "roomId": "batch:42"}


@pytest.mark.asyncio
async def test_direct_message_notifies_participant_outside_room(hub: ChatHub):
    c1, ws1 = await connect(hub, U1)
    _, ws2 = await connect(hub, U2)
    await hub.rooms.join(c1, "dm:u1:u2")

    await hub.messages.send(c1, "dm:u1:u2", "are you coming today?")

    assert ws2.data("new_message") == []
    assert ws2.data("notification") == [
        {
            "type": "info",
            "title": "Message from parent1@example.com",
            "message": "are you coming today?",
            "data": {"event": "new_message", "roomId": "dm:u1:u2"},
        }
    ]
    assert ws1.data("notification") == []


@pytest.mark.asyncio
async def test_joined_participant_gets_message_not_notification(hub: ChatHub):
    c1, _ = await connect(hub, U1)
    c2, ws2 = await connect(hub, U2)
    await hub.rooms.join(c1, "dm:u1:u2")
    await hub.rooms.join(c2, "dm:u1:u2")

    await hub.messages.send(c1, "dm:u1:u2", "hello")

    assert len(ws2.data("new_message")) == 1
    assert ws2.data("notification") == []


@pytest.mark.asyncio
async def test_batch_messages_send_no_notifications(hub: ChatHub):
    c1, _ = await connect(hub, U1)
    _, ws2 = await connect(hub, U2)
    await hub.rooms.join(c1, "batch:42")

    await hub.messages.send(c1, "batch:42", "hello")

    assert ws2.data("notification") == []
