"""
Karaoke Queue Service - Queue Position Tests

Tests for the karaoke/services/queue.py module. Validates:
- Only approved / queued requests appear
- Positions are 1-based and contiguous, ordered by creation time
- Ties on creation time fall back to insertion order
- Removing a request (reject / perform) shifts everyone behind it up
- Queue entries are hydrated with song and requester
"""

import pytest

from karaoke.errors import NotFoundError
from karaoke.models import RequestStatus, SongRequest
from karaoke.services import queue, requests
from tests.conftest import make_request, make_song, run


def _ts(minute: int) -> str:
    return f"2026-10-23T20:{minute:02d}:00+00:00"


# ===========================================================================
# order_queue
# ===========================================================================


class TestOrderQueue:
    """Test the pure ordering helper."""

    def _req(self, rid, status, created_at):
        return SongRequest(
            id=rid,
            event_id="e",
            song_id="s",
            requester_id="u",
            status=RequestStatus(status),
            created_at=created_at,
        )

    def test_filters_and_sorts(self):
        ordered = queue.order_queue(
            [
                self._req("c", "approved", _ts(3)),
                self._req("p", "pending_admin", _ts(0)),
                self._req("a", "queued", _ts(1)),
                self._req("r", "rejected", _ts(2)),
            ]
        )
        assert [r.id for r in ordered] == ["a", "c"]

    def test_stable_for_equal_timestamps(self):
        ordered = queue.order_queue(
            [self._req("x", "approved", _ts(5)), self._req("y", "approved", _ts(5))]
        )
        assert [r.id for r in ordered] == ["x", "y"]


# ===========================================================================
# get_queue
# ===========================================================================


class TestGetQueue:
    """Test the live queue read."""

    def test_example_night(self, event, song):
        """A at 20:00, B at 20:05, C at 20:10; C pending until approved later."""
        a = make_request(event["id"], song.id, "alice", status="approved", created_at=_ts(0))
        b = make_request(event["id"], song.id, "bob", status="approved", created_at=_ts(5))
        c = make_request(event["id"], song.id, "carol", created_at=_ts(10))

        entries = run(queue.get_queue(event["id"]))
        assert [(e.request.request.id, e.queue_position) for e in entries] == [
            (a["id"], 1),
            (b["id"], 2),
        ]

        run(requests.approve_request(event["id"], c["id"]))
        entries = run(queue.get_queue(event["id"]))
        assert [e.queue_position for e in entries] == [1, 2, 3]
        assert entries[2].request.request.id == c["id"]

        run(requests.reject_request(event["id"], a["id"], "Singer left"))
        entries = run(queue.get_queue(event["id"]))
        assert [(e.request.request.id, e.queue_position) for e in entries] == [
            (b["id"], 1),
            (c["id"], 2),
        ]

    def test_approve_reject_perform_sequence(self, event):
        s1, s2, s3 = (make_song(f"Song {i}", "Band") for i in range(1, 4))
        r1 = make_request(event["id"], s1.id, "u1", created_at="2026-10-23T10:00:00+00:00")
        r2 = make_request(event["id"], s2.id, "u2", created_at="2026-10-23T10:00:05+00:00")
        r3 = make_request(event["id"], s3.id, "u3", created_at="2026-10-23T10:00:10+00:00")

        run(requests.approve_request(event["id"], r1["id"]))
        run(requests.approve_request(event["id"], r3["id"]))
        run(requests.reject_request(event["id"], r2["id"], "duplicate performer"))
        entries = run(queue.get_queue(event["id"]))
        assert [(e.request.request.id, e.queue_position) for e in entries] == [
            (r1["id"], 1),
            (r3["id"], 2),
        ]

        run(requests.mark_performed(event["id"], r1["id"]))
        entries = run(queue.get_queue(event["id"]))
        assert [(e.request.request.id, e.queue_position) for e in entries] == [(r3["id"], 1)]

        # Terminal requests stay out however the rest of the queue moves
        run(requests.approve_request(event["id"], make_request(event["id"], s2.id, "u4")["id"]))
        ids = [e.request.request.id for e in run(queue.get_queue(event["id"]))]
        assert r1["id"] not in ids
        assert r2["id"] not in ids

    def test_performed_request_leaves_queue(self, event, song):
        first = make_request(event["id"], song.id, status="approved", created_at=_ts(0))
        second = make_request(event["id"], song.id, status="queued", created_at=_ts(1))
        run(requests.mark_performed(event["id"], first["id"]))
        entries = run(queue.get_queue(event["id"]))
        assert [(e.request.request.id, e.queue_position) for e in entries] == [(second["id"], 1)]

    def test_equal_timestamps_use_insertion_order(self, event, song):
        ids = [
            make_request(event["id"], song.id, f"u{i}", status="approved", created_at=_ts(0))["id"]
            for i in range(4)
        ]
        entries = run(queue.get_queue(event["id"]))
        assert [e.request.request.id for e in entries] == ids

    def test_positions_contiguous(self, event, song):
        for minute, status in enumerate(["approved", "rejected", "queued", "pending_admin", "approved"]):
            make_request(event["id"], song.id, status=status, created_at=_ts(minute))
        entries = run(queue.get_queue(event["id"]))
        assert [e.queue_position for e in entries] == [1, 2, 3]

    def test_entries_are_hydrated(self, event):
        song = make_song("Hey Jude", "The Beatles")
        make_request(event["id"], song.id, status="approved", co_singer_ids=("u2",))
        (entry,) = run(queue.get_queue(event["id"]))
        data = entry.to_dict()
        assert data["queue_position"] == 1
        assert data["song"]["title"] == "Hey Jude"
        assert data["requester"]["id"] == "singer-1"
        assert [u["id"] for u in data["co_singers"]] == ["u2"]

    def test_empty_queue(self, event):
        assert run(queue.get_queue(event["id"])) == []

    def test_unknown_event(self, db_path):
        with pytest.raises(NotFoundError):
            run(queue.get_queue("d" * 32))
