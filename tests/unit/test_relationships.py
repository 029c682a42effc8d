"""
Tests for bidirectional relationship integrity.
"""

import threading

import pytest

from relquery.errors import TypeMismatch
from relquery.modeling import key_of
from relquery.models import Member, Team


class TestOwningSide:
    """Assigning Member.team keeps Team.members consistent."""

    def test_constructor_registers_member(self):
        team_a = Team("teamA")
        member1 = Member("member1", 10, team_a)
        assert member1.team is team_a
        assert team_a.members == (member1,)

    def test_change_team_moves_member(self):
        team_a, team_b = Team("teamA"), Team("teamB")
        member1 = Member("member1", 10, team_a)
        member2 = Member("member2", 20, team_a)

        member1.change_team(team_b)

        assert member1.team is team_b
        assert team_a.members == (member2,)
        assert team_b.members == (member1,)

    def test_assign_same_team_twice(self):
        team_a = Team("teamA")
        member1 = Member("member1", 10, team_a)
        member1.team = team_a
        assert team_a.members == (member1,)

    def test_unassign(self):
        team_a = Team("teamA")
        member1 = Member("member1", 10, team_a)
        member1.team = None
        assert member1.team is None
        assert team_a.members == ()

    def test_wrong_parent_type(self):
        member1 = Member("member1", 10)
        with pytest.raises(TypeMismatch):
            member1.team = Member("member2", 20)
        assert member1.team is None


class TestMirrorSide:
    """Team.members is a derived, read-only view."""

    def test_members_is_read_only(self):
        team_a = Team("teamA")
        with pytest.raises(AttributeError):
            team_a.members = [Member("member1")]

    def test_members_view_is_a_snapshot(self):
        team_a = Team("teamA")
        view = team_a.members
        Member("member1", 10, team_a)
        assert view == ()
        assert len(team_a.members) == 1

    def test_members_identity_not_equality(self):
        """Two members with equal fields are still two members."""
        team_a = Team("teamA")
        Member("same", 10, team_a)
        Member("same", 10, team_a)
        assert len(team_a.members) == 2


class TestKeys:
    """Foreign keys of live and loaded entities."""

    def test_key_of_live_parent(self):
        team_a = Team("teamA")
        team_a.id = 7
        member1 = Member("member1", 10, team_a)
        assert key_of(member1, "team") == 7

    def test_key_of_unsaved_parent(self):
        member1 = Member("member1", 10, Team("teamA"))
        assert key_of(member1, "team") is None

    def test_loaded_entity_keeps_unresolved_key(self):
        member = Member._load({"id": 1, "username": "member1", "age": 10}, {"team": 3})
        assert member.team is None
        assert key_of(member, "team") == 3

    def test_assignment_replaces_loaded_key(self):
        member = Member._load({"id": 1, "username": "member1", "age": 10}, {"team": 3})
        team_b = Team("teamB")
        team_b.id = 4
        member.team = team_b
        assert key_of(member, "team") == 4
        assert team_b.members == (member,)


class TestConcurrentAssignment:
    """Concurrent moves never leave a member in two teams."""

    def test_concurrent_moves(self):
        team_a, team_b = Team("teamA"), Team("teamB")
        members = [Member(f"member{i}", i, team_a) for i in range(50)]

        def move(target):
            for m in members:
                m.team = target

        threads = [threading.Thread(target=move, args=(t,)) for t in (team_a, team_b) * 4]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for m in members:
            in_a = any(x is m for x in team_a.members)
            in_b = any(x is m for x in team_b.members)
            assert in_a != in_b
            assert (m.team is team_a) == in_a
