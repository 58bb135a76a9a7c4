"""
Unit tests for the server-side sync protocol handlers.
"""

import pytest

from watchsync.exceptions import MalformedPayload
from watchsync.models.room import PlaybackStatus


async def join_all(protocol, emit, room_id, *sids):
    for sid in sids:
        await protocol.join(sid, room_id)
    emit.reset_mock()


class TestJoin:
    @pytest.mark.asyncio
    async def test_join_creates_room_with_default_state(self, protocol, registry):
        await protocol.join("A", "abc")

        room = registry.get_room("abc")
        assert room.members == {"A"}
        assert room.playback.status == PlaybackStatus.PAUSED
        assert room.playback.position == 0.0

    @pytest.mark.asyncio
    async def test_join_accepts_object_payload(self, protocol, registry):
        await protocol.join("A", {"roomId": "abc"})
        assert registry.get_room("abc").members == {"A"}

    @pytest.mark.asyncio
    async def test_join_broadcasts_system_notice_without_state(self, protocol, emit, sent):
        await protocol.join("A", "abc")
        emit.reset_mock()

        await protocol.join("B", "abc")

        events = sent()
        assert {to for _, _, to in events} == {"A", "B"}
        assert all(event == "chat_message" for event, _, _ in events)
        assert events[0][1]["type"] == "system"
        assert events[0][1]["userId"] == "B"

    @pytest.mark.asyncio
    async def test_join_rejects_empty_room_id(self, protocol, registry):
        with pytest.raises(MalformedPayload):
            await protocol.join("A", "")
        assert len(registry) == 0


class TestTransitions:
    @pytest.mark.asyncio
    async def test_play_updates_state_and_relays_to_others(self, protocol, registry, emit, sent, clock):
        await join_all(protocol, emit, "abc", "A", "B", "C")

        await protocol.play("A", {"roomId": "abc", "currentTime": 10})

        playback = registry.get_room("abc").playback
        assert playback.status == PlaybackStatus.PLAYING
        assert playback.position == 10.0
        assert playback.last_update == clock.now
        assert sent() == [("play", 10.0, "B"), ("play", 10.0, "C")]

    @pytest.mark.asyncio
    async def test_pause_relays_raw_position(self, protocol, registry, emit, sent):
        await join_all(protocol, emit, "abc", "A", "B")

        await protocol.pause("B", {"roomId": "abc", "currentTime": 42.5})

        assert registry.get_room("abc").playback.status == PlaybackStatus.PAUSED
        assert sent() == [("pause", 42.5, "A")]

    @pytest.mark.asyncio
    async def test_seek_keeps_status(self, protocol, registry, emit, clock):
        await join_all(protocol, emit, "abc", "A", "B")
        await protocol.play("A", {"roomId": "abc", "currentTime": 1})
        clock.advance(2)

        await protocol.seek("B", {"roomId": "abc", "currentTime": 30})

        playback = registry.get_room("abc").playback
        assert playback.status == PlaybackStatus.PLAYING
        assert playback.position == 30.0
        assert playback.last_update == clock.now

    @pytest.mark.asyncio
    async def test_sender_never_receives_its_own_relay(self, protocol, emit, sent):
        members = ["A", "B", "C", "D"]
        await join_all(protocol, emit, "abc", *members)

        for sender in members:
            for handler in (protocol.play, protocol.pause, protocol.seek):
                emit.reset_mock()
                await handler(sender, {"roomId": "abc", "currentTime": 5})
                recipients = [to for _, _, to in sent()]
                assert sender not in recipients
                assert sorted(recipients) == sorted(m for m in members if m != sender)

    @pytest.mark.asyncio
    async def test_relays_stay_inside_the_room(self, protocol, emit, sent):
        await join_all(protocol, emit, "abc", "A", "B")
        await join_all(protocol, emit, "xyz", "C")

        await protocol.play("A", {"roomId": "abc", "currentTime": 3})

        assert [to for _, _, to in sent()] == ["B"]

    @pytest.mark.asyncio
    async def test_pause_then_seek_from_another_member(self, protocol, registry, emit):
        await join_all(protocol, emit, "abc", "A", "B")

        await protocol.pause("A", {"roomId": "abc", "currentTime": 42})
        await protocol.seek("B", {"roomId": "abc", "currentTime": 50})

        playback = registry.get_room("abc").playback
        assert playback.status == PlaybackStatus.PAUSED
        assert playback.position == 50.0

    @pytest.mark.asyncio
    async def test_repeated_pause_does_not_accumulate_time(self, protocol, registry, emit, clock):
        await join_all(protocol, emit, "abc", "A")
        await protocol.play("A", {"roomId": "abc", "currentTime": 0})
        clock.advance(5)

        await protocol.pause("A", {"roomId": "abc", "currentTime": 20})
        first = registry.get_room("abc").playback.effective_position(clock.now)
        clock.advance(7)
        await protocol.pause("A", {"roomId": "abc", "currentTime": 20})
        clock.advance(3)
        second = registry.get_room("abc").playback.effective_position(clock.now)

        assert first == second == 20.0

    @pytest.mark.asyncio
    async def test_last_writer_wins(self, protocol, registry, emit):
        await join_all(protocol, emit, "abc", "A", "B")

        await protocol.play("A", {"roomId": "abc", "currentTime": 10})
        await protocol.pause("B", {"roomId": "abc", "currentTime": 11})
        await protocol.play("A", {"roomId": "abc", "currentTime": 12})

        playback = registry.get_room("abc").playback
        assert playback.status == PlaybackStatus.PLAYING
        assert playback.position == 12.0

    @pytest.mark.asyncio
    async def test_negative_position_is_clamped(self, protocol, registry, emit, sent):
        await join_all(protocol, emit, "abc", "A", "B")

        await protocol.seek("A", {"roomId": "abc", "currentTime": -3})

        assert registry.get_room("abc").playback.position == 0.0
        assert sent() == [("seek", 0.0, "B")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"roomId": "abc"},
        {"currentTime": 5},
        {"roomId": "abc", "currentTime": "soon"},
        {"roomId": "abc", "currentTime": float("nan")},
        {"roomId": "abc", "currentTime": float("inf")},
        "abc",
        None,
    ])
    async def test_malformed_payload_is_rejected_without_side_effects(self, protocol, registry, emit, payload):
        await join_all(protocol, emit, "abc", "A", "B")

        with pytest.raises(MalformedPayload) as exc:
            await protocol.play("A", payload)

        assert exc.value.event == "play"
        assert registry.get_room("abc").playback.status == PlaybackStatus.PAUSED
        emit.assert_not_awaited()


class TestSyncRequest:
    @pytest.mark.asyncio
    async def test_late_joiner_gets_drift_compensated_state(self, protocol, emit, sent, clock):
        await join_all(protocol, emit, "abc", "A", "B")
        await protocol.play("A", {"roomId": "abc", "currentTime": 10})
        clock.advance(3)
        emit.reset_mock()

        state = await protocol.sync_request("B", {"roomId": "abc"})

        assert state.current_time == pytest.approx(13.0)
        assert state.is_playing is True
        assert sent() == [("sync_state", {"currentTime": pytest.approx(13.0), "isPlaying": True, "fileName": None}, "B")]

    @pytest.mark.asyncio
    async def test_paused_room_reports_stored_position(self, protocol, emit, clock):
        await join_all(protocol, emit, "abc", "A")
        await protocol.pause("A", {"roomId": "abc", "currentTime": 8})
        clock.advance(100)

        state = await protocol.sync_request("A", {"roomId": "abc"})

        assert state.current_time == 8.0
        assert state.is_playing is False

    @pytest.mark.asyncio
    async def test_sync_state_includes_media_label(self, protocol, emit):
        await join_all(protocol, emit, "abc", "A")
        await protocol.file_loaded("A", {"roomId": "abc", "fileName": "movie.mkv"})

        state = await protocol.sync_request("A", {"roomId": "abc"})

        assert state.file_name == "movie.mkv"


class TestAuxiliaryEvents:
    @pytest.mark.asyncio
    async def test_file_loaded_sets_label_and_notifies_others(self, protocol, registry, emit, sent):
        await join_all(protocol, emit, "abc", "A", "B")

        await protocol.file_loaded("A", {"roomId": "abc", "fileName": "movie.mp4"})

        assert registry.get_room("abc").media_label == "movie.mp4"
        assert sent() == [("peer_file_loaded", "movie.mp4", "B")]

    @pytest.mark.asyncio
    async def test_time_update_is_silent(self, protocol, registry, emit, clock):
        await join_all(protocol, emit, "abc", "A", "B")
        await protocol.play("A", {"roomId": "abc", "currentTime": 0})
        emit.reset_mock()
        clock.advance(4)

        await protocol.time_update("A", {"roomId": "abc", "currentTime": 3.9})

        playback = registry.get_room("abc").playback
        assert playback.position == 3.9
        assert playback.last_update == clock.now
        assert playback.status == PlaybackStatus.PLAYING
        emit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_late_time_update_does_not_rewind_paused_room(self, protocol, registry, emit, clock):
        await join_all(protocol, emit, "abc", "A", "B")
        await protocol.play("A", {"roomId": "abc", "currentTime": 0})
        clock.advance(42)
        await protocol.pause("A", {"roomId": "abc", "currentTime": 42})
        paused_at = clock.now
        clock.advance(1)

        await protocol.time_update("B", {"roomId": "abc", "currentTime": 30})

        playback = registry.get_room("abc").playback
        assert playback.status == PlaybackStatus.PAUSED
        assert playback.position == 42.0
        assert playback.last_update == paused_at
        state = await protocol.sync_request("B", {"roomId": "abc"})
        assert state.current_time == 42.0

    @pytest.mark.asyncio
    async def test_chat_reaches_every_member_including_sender(self, protocol, emit, sent, clock):
        await join_all(protocol, emit, "abc", "A", "B")

        await protocol.send_chat("A", {"roomId": "abc", "text": "hi", "userId": "alice"})

        events = sent()
        assert [to for _, _, to in events] == ["A", "B"]
        assert events[0][1] == {"type": "user", "text": "hi", "userId": "alice", "timestamp": clock.now}

    @pytest.mark.asyncio
    async def test_leave_removes_member_without_touching_playback(self, protocol, registry, emit):
        await join_all(protocol, emit, "abc", "A", "B")
        await protocol.play("A", {"roomId": "abc", "currentTime": 9})
        emit.reset_mock()

        await protocol.leave("A")

        room = registry.get_room("abc")
        assert room.members == {"B"}
        assert room.playback.status == PlaybackStatus.PLAYING
        assert room.playback.position == 9.0
        emit.assert_not_awaited()


class TestUnknownRoom:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("handler,payload", [
        ("play", {"roomId": "nope", "currentTime": 1}),
        ("pause", {"roomId": "nope", "currentTime": 1}),
        ("seek", {"roomId": "nope", "currentTime": 1}),
        ("time_update", {"roomId": "nope", "currentTime": 1}),
        ("file_loaded", {"roomId": "nope", "fileName": "x.mp4"}),
        ("sync_request", {"roomId": "nope"}),
        ("send_chat", {"roomId": "nope", "text": "hello"}),
    ])
    async def test_events_for_unknown_room_are_silently_ignored(self, protocol, registry, emit, handler, payload):
        await join_all(protocol, emit, "abc", "A", "B")

        result = await getattr(protocol, handler)("A", payload)

        assert result is None
        assert "nope" not in registry
        emit.assert_not_awaited()
