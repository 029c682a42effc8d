"""
Tests for result tuples and row materialization.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from relquery.domain.query import Q, QueryResults, ResultTuple
from relquery.domain.query.expressions import Constant
from relquery.domain.query.results import Slot, coerce, materialize, materialize_raw
from relquery.modeling import key_of
from relquery.models import Member, Team


class TestResultTuple:
    """ResultTuple is addressable by position and by key."""

    def test_position_and_key(self, member):
        row = ResultTuple(("member1", 10), (member.username, member.age))
        assert row[0] == "member1"
        assert row[member.age] == 10
        assert row[Q(Member).age] == 10
        assert row[-1] == 10
        assert row[0:1] == ("member1",)

    def test_missing_key(self, member):
        row = ResultTuple(("member1",), (member.username,))
        with pytest.raises(KeyError):
            row[member.age]
        assert row.get(member.age) is None
        assert row.get(member.age, 0) == 0

    def test_arity_must_match(self, member):
        with pytest.raises(ValueError):
            ResultTuple((1, 2), (member.age,))

    def test_value_semantics(self, member):
        row = ResultTuple(("member1", 10), (member.username, member.age))
        assert row == ("member1", 10)
        assert row == ResultTuple(("member1", 10), ("username", "age"))
        assert len({row, ResultTuple(("member1", 10), (member.username, member.age))}) == 1
        assert list(row) == ["member1", 10]
        assert row.to_tuple() == ("member1", 10)

    def test_literal_keys_keep_their_type(self):
        one, true = Constant(1), Constant(True)
        row = ResultTuple((1, True), (one, true))
        assert row[true] is True
        assert row[Constant(True)] is True
        assert row[Constant(1)] == 1
        with pytest.raises(KeyError):
            row[Constant(1.0)]

    def test_nested_literal_keys(self, member):
        plus_int, plus_float = member.age + 1, member.age + 1.0
        row = ResultTuple((11, 11.0), (plus_int, plus_float))
        assert isinstance(row[member.age + 1.0], float)

    def test_as_dict(self, member):
        row = ResultTuple(("member1", 10), (member.username, member.age))
        assert row.as_dict() == {"member.username": "member1", "member.age": 10}


class TestQueryResults:
    def test_container(self):
        page = QueryResults(results=[1, 2], total=5, limit=2, offset=0)
        assert len(page) == 2
        assert list(page) == [1, 2]
        assert not page.is_empty()


class TestCoerce:
    """Store values normalized to declared types."""

    @pytest.mark.parametrize(
        "value, python_type, expected",
        [
            (1, bool, True),
            ("2024-01-02", date, date(2024, 1, 2)),
            (datetime(2024, 1, 2, 3, 4), date, date(2024, 1, 2)),
            ("2024-01-02T03:04:05", datetime, datetime(2024, 1, 2, 3, 4, 5)),
            (3, float, 3.0),
            (Decimal("4"), int, 4),
            (1.5, Decimal, Decimal("1.5")),
            (None, int, None),
            ("x", None, "x"),
        ],
    )
    def test_coerce(self, value, python_type, expected):
        result = coerce(value, python_type)
        assert result == expected
        if expected is not None:
            assert type(result) is type(expected)


class TestMaterialize:
    """Positional rows to entities, scalars and tuples."""

    def test_entity_slot(self, member):
        layout = [Slot(key=member, width=4, entity_type=Member.entity_type())]
        (loaded,) = materialize([(1, "member1", 10, 7)], layout)
        assert isinstance(loaded, Member)
        assert (loaded.id, loaded.username, loaded.age) == (1, "member1", 10)
        assert key_of(loaded, "team") == 7

    def test_scalar_slot(self, member):
        layout = [Slot(key=member.age, python_type=int)]
        assert materialize([(10,), (20,)], layout) == [10, 20]

    def test_mixed_slots(self, member, team):
        layout = [
            Slot(key=member, width=4, entity_type=Member.entity_type()),
            Slot(key=team, width=2, entity_type=Team.entity_type()),
        ]
        (row,) = materialize([(1, "member1", 10, None, None, None)], layout)
        assert row[member].username == "member1"
        assert row[team] is None

    def test_raw_entity_by_column_name(self):
        (loaded,) = materialize_raw([(2, "member2", 20, 1)], ["MEMBER_ID", "username", "age", "team_id"], Member.entity_type())
        assert loaded.id == 2
        assert key_of(loaded, "team") == 1

    def test_raw_tuples(self):
        (row,) = materialize_raw([("member1", 10)], ["username", "age"])
        assert row["username"] == "member1"
        assert row[1] == 10
