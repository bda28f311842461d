from __future__ import annotations

import pytest

from parley.realtime import events


pytestmark = pytest.mark.anyio("asyncio")


async def _register(router, *pairs: tuple[str, str]) -> None:
    for handle, username in pairs:
        assert await router.dispatch(handle, events.REGISTER, {"username": username})


async def test_register_broadcasts_users_and_sends_groups_to_registrant(router, outbound) -> None:
    await router.dispatch("a", events.CREATE_GROUP, {"name": "early", "members": []})
    outbound.clear()

    await router.dispatch("b", events.REGISTER, {"username": "Bob"})

    assert sorted(outbound.recipients(events.USER_LIST)) == ["a", "b", "c", "d"]
    assert outbound.recipients(events.GROUP_LIST) == ["b"]
    (users,) = outbound.frames("a", events.USER_LIST)
    assert users == [{"id": "b", "username": "Bob", "joinedAt": "2024-01-01T00:00:01+00:00"}]
    (groups,) = outbound.frames("b", events.GROUP_LIST)
    assert [group["name"] for group in groups] == ["early"]


async def test_takeover_rebinds_handle_and_preserves_joined_at(router, outbound) -> None:
    await _register(router, ("a", "Alice"))
    joined_at = router.sessions.get("a").joined_at

    await _register(router, ("b", "alice"))

    assert len(router.sessions) == 1
    session = router.sessions.get("b")
    assert session.username == "Alice"
    assert session.joined_at == joined_at
    assert router.sessions.get("a") is None
    last_users = outbound.frames("c", events.USER_LIST)[-1]
    assert last_users == [session.to_public()]


async def test_private_message_delivered_once_to_sender_and_target(router, outbound) -> None:
    await _register(router, ("a", "Alice"), ("b", "Bob"))
    outbound.clear()

    assert await router.dispatch("a", events.PRIVATE_MESSAGE, {"to": "b", "content": "hi"})

    assert sorted(outbound.recipients(events.PRIVATE_MESSAGE)) == ["a", "b"]
    (to_sender,) = outbound.frames("a", events.PRIVATE_MESSAGE)
    (to_target,) = outbound.frames("b", events.PRIVATE_MESSAGE)
    assert to_sender == to_target
    assert to_sender["from"] == "a"
    assert to_sender["to"] == "b"
    assert to_sender["content"] == "hi"
    assert to_sender["id"]


async def test_private_messages_get_fresh_ids(router, outbound) -> None:
    await _register(router, ("a", "Alice"), ("b", "Bob"))
    await router.dispatch("a", events.PRIVATE_MESSAGE, {"to": "b", "content": "one"})
    await router.dispatch("b", events.PRIVATE_MESSAGE, {"to": "a", "content": "two"})

    ids = {frame["id"] for frame in outbound.frames("a", events.PRIVATE_MESSAGE)}
    assert len(ids) == 2


async def test_self_private_message_is_dropped(router, outbound) -> None:
    await _register(router, ("a", "Alice"))
    outbound.clear()

    assert not await router.dispatch("a", events.PRIVATE_MESSAGE, {"to": "a", "content": "me"})

    assert outbound.sent == []
    assert router.conversations.history("a", "a") == []


@pytest.mark.parametrize(
    ("sender", "target"),
    [("a", "ghost"), ("ghost", "a")],
)
async def test_private_message_requires_both_sessions(router, outbound, sender, target) -> None:
    await _register(router, ("a", "Alice"))
    outbound.connect("ghost")
    outbound.clear()

    assert not await router.dispatch(sender, events.PRIVATE_MESSAGE, {"to": target, "content": "x"})

    assert outbound.sent == []
    assert router.conversations.history(sender, target) == []


async def test_private_history_is_idempotent(router, outbound) -> None:
    await _register(router, ("a", "Alice"), ("b", "Bob"))
    await router.dispatch("a", events.PRIVATE_MESSAGE, {"to": "b", "content": "hi"})
    await router.dispatch("b", events.PRIVATE_MESSAGE, {"to": "a", "content": "hello"})
    outbound.clear()

    await router.dispatch("b", events.GET_PRIVATE_HISTORY, {"with": "a"})
    await router.dispatch("b", events.GET_PRIVATE_HISTORY, {"with": "a"})

    first, second = outbound.frames("b", events.PRIVATE_HISTORY)
    assert first == second
    assert first["withId"] == "a"
    assert [message["content"] for message in first["messages"]] == ["hi", "hello"]
    assert outbound.recipients(events.PRIVATE_HISTORY) == ["b", "b"]


async def test_private_history_empty_without_conversation(router, outbound) -> None:
    assert await router.dispatch("c", events.GET_PRIVATE_HISTORY, {"with": "d"})
    assert outbound.frames("c", events.PRIVATE_HISTORY) == [{"withId": "d", "messages": []}]


async def test_create_group_broadcasts_roster_to_everyone(router, outbound) -> None:
    assert await router.dispatch(
        "a", events.CREATE_GROUP, {"name": "team", "members": ["b", "c", "a"]}
    )

    assert sorted(outbound.recipients(events.GROUP_LIST)) == ["a", "b", "c", "d"]
    (roster,) = outbound.frames("d", events.GROUP_LIST)
    (group,) = roster
    assert group["members"] == ["a", "b", "c"]
    assert group["name"] == "team"
    assert group["createdBy"] == "a"
    assert "messages" not in group


async def test_create_group_without_members_field(router) -> None:
    assert await router.dispatch("a", events.CREATE_GROUP, {"name": "solo"})
    (group,) = router.groups.snapshot()
    assert group["members"] == ["a"]


async def test_group_message_fans_out_to_all_members_including_sender(router, outbound) -> None:
    await router.dispatch("a", events.CREATE_GROUP, {"name": "team", "members": ["b", "c"]})
    group_id = router.groups.snapshot()[0]["id"]
    outbound.clear()

    assert await router.dispatch("b", events.GROUP_MESSAGE, {"groupId": group_id, "content": "yo"})

    assert sorted(outbound.recipients(events.GROUP_MESSAGE)) == ["a", "b", "c"]
    frame = outbound.frames("a", events.GROUP_MESSAGE)[0]
    assert frame["groupId"] == group_id
    assert frame["from"] == "b"
    assert frame["content"] == "yo"


async def test_group_message_from_non_member_is_dropped(router, outbound) -> None:
    await router.dispatch("a", events.CREATE_GROUP, {"name": "team", "members": ["b"]})
    group = router.groups.get(router.groups.snapshot()[0]["id"])
    outbound.clear()

    assert not await router.dispatch("d", events.GROUP_MESSAGE, {"groupId": group.id, "content": "x"})
    assert not await router.dispatch("a", events.GROUP_MESSAGE, {"groupId": "missing", "content": "x"})

    assert group.messages == []
    assert outbound.sent == []


async def test_group_history_only_for_members(router, outbound) -> None:
    await router.dispatch("a", events.CREATE_GROUP, {"name": "team", "members": ["b"]})
    group_id = router.groups.snapshot()[0]["id"]
    await router.dispatch("a", events.GROUP_MESSAGE, {"groupId": group_id, "content": "one"})
    await router.dispatch("b", events.GROUP_MESSAGE, {"groupId": group_id, "content": "two"})
    outbound.clear()

    assert not await router.dispatch("c", events.GET_GROUP_HISTORY, {"groupId": group_id})
    assert await router.dispatch("b", events.GET_GROUP_HISTORY, {"groupId": group_id})

    assert outbound.recipients(events.GROUP_HISTORY) == ["b"]
    (history,) = outbound.frames("b", events.GROUP_HISTORY)
    assert history["groupId"] == group_id
    assert [message["content"] for message in history["messages"]] == ["one", "two"]


async def test_typing_notifies_target(router, outbound) -> None:
    assert await router.dispatch("a", events.TYPING, {"to": "b", "isTyping": True})
    assert outbound.sent == [("b", events.USER_TYPING, {"from": "a", "isTyping": True})]


async def test_typing_to_self_reaches_nobody(router, outbound) -> None:
    assert not await router.dispatch("a", events.TYPING, {"to": "a", "isTyping": True})
    assert outbound.sent == []


async def test_group_typing_skips_sender(router, outbound) -> None:
    await router.dispatch("a", events.CREATE_GROUP, {"name": "team", "members": ["b", "c"]})
    group_id = router.groups.snapshot()[0]["id"]
    outbound.clear()

    assert await router.dispatch("b", events.GROUP_TYPING, {"groupId": group_id, "isTyping": False})

    assert sorted(outbound.recipients(events.USER_GROUP_TYPING)) == ["a", "c"]
    assert outbound.frames("a", events.USER_GROUP_TYPING) == [
        {"groupId": group_id, "from": "b", "isTyping": False}
    ]


async def test_group_typing_from_non_member_is_dropped(router, outbound) -> None:
    await router.dispatch("a", events.CREATE_GROUP, {"name": "team", "members": ["b"]})
    group_id = router.groups.snapshot()[0]["id"]
    outbound.clear()

    assert not await router.dispatch("d", events.GROUP_TYPING, {"groupId": group_id, "isTyping": True})
    assert outbound.sent == []


@pytest.mark.parametrize(
    ("event", "payload"),
    [
        (events.REGISTER, {}),
        (events.REGISTER, {"username": ""}),
        (events.PRIVATE_MESSAGE, {"to": "b"}),
        (events.GET_PRIVATE_HISTORY, {"withId": "b"}),
        (events.CREATE_GROUP, {"members": ["b"]}),
        (events.GROUP_MESSAGE, {"groupId": 1, "content": "x"}),
        (events.TYPING, {"to": "b"}),
        (events.TYPING, {"to": "b", "is_typing": True}),
        (events.GROUP_MESSAGE, {"group_id": "g", "content": "x"}),
        (events.GROUP_TYPING, None),
        ("unknown-event", {"to": "b"}),
        (events.DISCONNECT, {}),
    ],
)
async def test_malformed_events_are_silently_dropped(router, outbound, event, payload) -> None:
    await _register(router, ("a", "Alice"), ("b", "Bob"))
    outbound.clear()

    assert not await router.dispatch("a", event, payload)

    assert outbound.sent == []
    assert len(router.sessions) == 2
