"""Unit tests for the in-memory Registry.

Test Strategy:
1. Group creation: fresh codes, requested codes, collisions, invalid codes
2. Resurrection: create-if-absent, attach-if-live
3. Membership: join, rejoin, switching groups, unknown groups
4. Location updates and computed liveness
5. Chat retention and bet replacement
6. Snapshots are copies; stats and clear

Each test follows the pattern:
- Given: A registry on a fake clock
- When: A registry operation is called
- Then: Returned values and stored state match
"""
import sys
from pathlib import Path

import pytest

from venue_tracker.core.errors import GroupNotFoundError, UserNotFoundError, ValidationError
from venue_tracker.services.registry import Registry, group_name_for, normalize_code
from venue_tracker.services.registry.registry import CODE_ALPHABET

sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import T0


def make_group_with_member(registry: Registry, calibration, user_id="u1", name="Alice"):
    group = registry.create_group(group_name_for(name), calibration)
    registry.join_group(group.id, user_id, name)
    return group


class TestCreateGroup:
    """Tests for create_group()."""

    def test_fresh_code(self, registry, calibration):
        """A group without a requested id gets a 4-char uppercase alphanumeric code."""
        group = registry.create_group("Alice's Group", calibration)

        assert len(group.id) == 4
        assert all(c in CODE_ALPHABET for c in group.id)
        assert group.name == "Alice's Group"
        assert group.created_at == T0
        assert group.calibration == calibration
        assert group.map_image == "/venue-map.png"
        assert group.members == []
        assert group.messages == []
        assert group.bets == []

    def test_codes_are_unique(self, registry):
        codes = {registry.create_group(f"G{i}").id for i in range(200)}
        assert len(codes) == 200

    def test_requested_code_is_used_and_normalized(self, registry):
        group = registry.create_group("Group", requested_id="ab12")
        assert group.id == "AB12"

    def test_requested_code_taken_gets_fresh_code(self, registry):
        """A live code is never overwritten by create_group."""
        first = registry.create_group("First", requested_id="AB12")
        registry.join_group(first.id, "u1", "Alice")

        second = registry.create_group("Second", requested_id="AB12")

        assert second.id != "AB12"
        assert registry.get_group("AB12").name == "First"
        assert registry.get_group("AB12").members == ["u1"]

    @pytest.mark.parametrize("code", ["AB-1", "  ", "ÄB12", "AB1", "ABCDEFGHIJ"])
    def test_invalid_requested_code(self, registry, code):
        with pytest.raises(ValidationError):
            registry.create_group("Group", requested_id=code)


class TestResurrectGroup:
    """Tests for resurrect_group()."""

    def test_recreates_missing_group_empty(self, registry, calibration):
        """A lost code comes back under the same id with no history."""
        group, created = registry.resurrect_group("ZZZZ", "Bob's Group", calibration)

        assert created is True
        assert group.id == "ZZZZ"
        assert group.name == "Bob's Group"
        assert group.members == []
        assert group.messages == []
        assert group.bets == []
        assert registry.get_group("zzzz").id == "ZZZZ"

    def test_attaches_to_live_group(self, registry, calibration):
        """A second caller gets the existing group, history intact."""
        registry.resurrect_group("ZZZZ", "Bob's Group", calibration)
        registry.join_group("ZZZZ", "u1", "Bob")
        registry.add_message("ZZZZ", "u1", "Bob", "still here")

        group, created = registry.resurrect_group("zzzz", "Carol's Group", None)

        assert created is False
        assert group.name == "Bob's Group"
        assert group.members == ["u1"]
        assert [m.text for m in group.messages] == ["still here"]

    def test_after_clear(self, registry, calibration):
        """Simulated restart: the old code can be recreated."""
        group = make_group_with_member(registry, calibration)
        registry.clear()

        with pytest.raises(GroupNotFoundError):
            registry.get_group(group.id)

        recreated, created = registry.resurrect_group(group.id, "Alice's Group", calibration)
        assert created is True
        assert recreated.id == group.id
        assert recreated.members == []


class TestMembership:
    """Tests for join_group(), get_user() and list_members()."""

    def test_join_adds_member(self, registry, calibration):
        group = registry.create_group("Alice's Group", calibration)

        user = registry.join_group(group.id, "u1", "Alice")

        assert user.id == "u1"
        assert user.name == "Alice"
        assert user.group_id == group.id
        assert user.role == "member"
        assert user.last_updated == T0
        assert registry.get_group(group.id).members == ["u1"]

    def test_join_is_case_insensitive(self, registry):
        group = registry.create_group("G", requested_id="AB12")
        user = registry.join_group("ab12", "u1", "Alice")

        assert user.group_id == "AB12"
        assert registry.get_group(group.id).members == ["u1"]

    def test_rejoin_overwrites_user(self, registry, clock, calibration):
        """Joining twice keeps one membership and refreshes the record."""
        group = make_group_with_member(registry, calibration)
        clock.advance(5_000)

        user = registry.join_group(group.id, "u1", "Alicia")

        assert user.name == "Alicia"
        assert user.last_updated == T0 + 5_000
        assert registry.get_group(group.id).members == ["u1"]

    def test_switching_groups_leaves_previous(self, registry, calibration):
        first = make_group_with_member(registry, calibration)
        second = registry.create_group("Other", calibration)

        registry.join_group(second.id, "u1", "Alice")

        assert registry.get_group(first.id).members == []
        assert registry.get_group(second.id).members == ["u1"]
        assert registry.get_user("u1").group_id == second.id

    def test_join_unknown_group(self, registry):
        with pytest.raises(GroupNotFoundError):
            registry.join_group("NOPE", "u1", "Alice")

    def test_get_unknown_user(self, registry):
        with pytest.raises(UserNotFoundError):
            registry.get_user("ghost")

    def test_list_members_unknown_group(self, registry):
        with pytest.raises(GroupNotFoundError):
            registry.list_members("NOPE")


class TestLocationAndLiveness:
    """Tests for update_location() and computed is_online."""

    def test_update_location_stores_position(self, registry, clock, calibration):
        make_group_with_member(registry, calibration)
        clock.advance(1_000)

        user = registry.update_location("u1", -34.6435, -58.3965)

        assert user.last_location.lat == -34.6435
        assert user.last_location.lng == -58.3965
        assert user.last_updated == T0 + 1_000

    def test_update_location_unknown_user(self, registry):
        with pytest.raises(UserNotFoundError) as exc_info:
            registry.update_location("ghost", 0, 0)
        assert exc_info.value.status_code == 404

    def test_online_inside_window(self, registry, clock, calibration):
        group = make_group_with_member(registry, calibration)
        clock.advance(119_999)

        [member] = registry.list_members(group.id)

        assert member.is_online is True

    def test_offline_at_window_boundary(self, registry, clock, calibration):
        """Exactly 120 s after the last update the member is offline."""
        group = make_group_with_member(registry, calibration)
        clock.advance(120_000)

        [member] = registry.list_members(group.id)

        assert member.is_online is False

    def test_offline_member_is_kept(self, registry, clock, calibration):
        group = make_group_with_member(registry, calibration)
        clock.advance(3_600_000)

        members = registry.list_members(group.id)

        assert [m.id for m in members] == ["u1"]
        assert members[0].is_online is False

    def test_location_update_brings_member_back_online(self, registry, clock, calibration):
        group = make_group_with_member(registry, calibration)
        clock.advance(200_000)
        registry.update_location("u1", -34.6435, -58.3965)

        [member] = registry.list_members(group.id)

        assert member.is_online is True

    def test_reading_has_no_side_effects(self, registry, clock, calibration):
        group = make_group_with_member(registry, calibration)
        clock.advance(500_000)

        registry.list_members(group.id)
        registry.snapshot(group.id)

        assert registry.get_user("u1").last_updated == T0

    def test_end_to_end_flow(self, registry, clock, calibration):
        """create -> join -> update_location -> list_members."""
        group = registry.create_group(group_name_for("Alice"), calibration)
        registry.join_group(group.id, "u1", "Alice")
        registry.join_group(group.id, "u2", "Bob")
        clock.advance(10_000)
        registry.update_location("u2", -34.6436, -58.3966)

        members = {m.id: m for m in registry.list_members(group.id)}

        assert set(members) == {"u1", "u2"}
        assert members["u1"].last_location is None
        assert members["u2"].last_location.lat == -34.6436
        assert all(m.is_online for m in members.values())


class TestMessages:
    """Tests for add_message()."""

    def test_add_message(self, registry, clock, calibration):
        group = make_group_with_member(registry, calibration)
        clock.advance(42)

        message = registry.add_message(group.id, "u1", "Alice", "hi")

        assert message.sender_id == "u1"
        assert message.sender_name == "Alice"
        assert message.text == "hi"
        assert message.timestamp == T0 + 42
        assert registry.get_group(group.id).messages[0].id == message.id

    def test_sender_name_falls_back_to_registry_name(self, registry, calibration):
        group = make_group_with_member(registry, calibration)

        message = registry.add_message(group.id, "u1", None, "hi")

        assert message.sender_name == "Alice"

    def test_sender_name_is_captured_at_send_time(self, registry, calibration):
        group = make_group_with_member(registry, calibration)
        registry.add_message(group.id, "u1", "Alice", "before")
        registry.join_group(group.id, "u1", "Alicia")

        [message] = registry.get_group(group.id).messages

        assert message.sender_name == "Alice"

    def test_retention_keeps_newest_in_order(self, registry, clock, calibration):
        """55 messages leave the newest 50, oldest first."""
        group = make_group_with_member(registry, calibration)
        for i in range(55):
            clock.advance(1)
            registry.add_message(group.id, "u1", "Alice", f"m{i}")

        messages = registry.get_group(group.id).messages

        assert len(messages) == 50
        assert [m.text for m in messages] == [f"m{i}" for i in range(5, 55)]

    def test_missing_group_drops_message(self, registry):
        assert registry.add_message("NOPE", "u1", "Alice", "hi") is None


class TestBets:
    """Tests for add_bet()."""

    def test_last_vote_wins(self, registry, clock, calibration):
        """Two votes by one user on one fight leave a single bet with the latest value."""
        group = make_group_with_member(registry, calibration)
        registry.add_bet(group.id, "u1", "Alice", "f1", "A")
        clock.advance(1_000)
        registry.add_bet(group.id, "u1", "Alice", "f1", "B")

        bets = registry.get_group(group.id).bets

        assert len(bets) == 1
        assert bets[0].prediction == "B"
        assert bets[0].timestamp == T0 + 1_000

    def test_independent_fights_and_users(self, registry, calibration):
        group = make_group_with_member(registry, calibration)
        registry.join_group(group.id, "u2", "Bob")

        registry.add_bet(group.id, "u1", "Alice", "f1", "A")
        registry.add_bet(group.id, "u1", "Alice", "f2", "B")
        registry.add_bet(group.id, "u2", "Bob", "f1", "B")

        bets = registry.get_group(group.id).bets
        assert {(b.user_id, b.fight_id, b.prediction) for b in bets} == {
            ("u1", "f1", "A"),
            ("u1", "f2", "B"),
            ("u2", "f1", "B"),
        }

    def test_reupload_is_idempotent(self, registry, calibration):
        group = make_group_with_member(registry, calibration)
        for _ in range(3):
            registry.add_bet(group.id, "u1", "Alice", "f1", "A")

        assert len(registry.get_group(group.id).bets) == 1

    def test_missing_group(self, registry):
        with pytest.raises(GroupNotFoundError):
            registry.add_bet("NOPE", "u1", "Alice", "f1", "A")


class TestSnapshotsAndStats:
    """Tests for copies, snapshot(), stats() and clear()."""

    def test_returned_group_is_a_copy(self, registry, calibration):
        group = make_group_with_member(registry, calibration)
        fetched = registry.get_group(group.id)
        fetched.members.append("intruder")
        fetched.name = "Changed"

        stored = registry.get_group(group.id)
        assert stored.members == ["u1"]
        assert stored.name == "Alice's Group"

    def test_snapshot(self, registry, calibration):
        group = make_group_with_member(registry, calibration)

        snap_group, members = registry.snapshot(group.id.lower())

        assert snap_group.id == group.id
        assert [m.id for m in members] == ["u1"]

    def test_stats(self, registry, clock, calibration):
        group = make_group_with_member(registry, calibration)
        clock.advance(130_000)
        registry.join_group(group.id, "u2", "Bob")

        stats = registry.stats()

        assert stats.groups == 1
        assert stats.users == 2
        assert stats.online_users == 1

    def test_clear(self, registry, calibration):
        make_group_with_member(registry, calibration)
        registry.clear()

        assert registry.stats().groups == 0
        assert registry.stats().users == 0


def test_normalize_code():
    assert normalize_code(" ab12 ") == "AB12"
