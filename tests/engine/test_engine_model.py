"""Tests for keys, memos, the memo store and the revision clock."""

import pytest

from dip.engine import (
    DerivedKey,
    InMemoryMemoStore,
    InputKey,
    Memo,
    RevisionClock,
    format_key,
)


class TestKeys:
    """Tests for InputKey and DerivedKey."""

    def test_equal_keys_hash_equal(self) -> None:
        assert InputKey("a") == InputKey("a")
        assert hash(DerivedKey("f", (1, "x"))) == hash(DerivedKey("f", (1, "x")))
        assert len({DerivedKey("f", (1,)), DerivedKey("f", (1,)), DerivedKey("f", (2,))}) == 2

    def test_input_and_derived_keys_differ(self) -> None:
        assert InputKey("a") != DerivedKey("a")

    def test_args_are_normalized_to_tuple(self) -> None:
        assert DerivedKey("f", [1, 2]) == DerivedKey("f", (1, 2))  # type: ignore[arg-type]

    def test_unhashable_args_are_rejected(self) -> None:
        with pytest.raises(TypeError, match="must be hashable"):
            DerivedKey("f", ([1, 2],))

    def test_args_must_be_a_sequence_of_arguments(self) -> None:
        with pytest.raises(TypeError, match="must be a tuple or list, got int"):
            DerivedKey("f", 17)  # type: ignore[arg-type]
        with pytest.raises(TypeError, match="must be a tuple or list, got str"):
            DerivedKey("f", "ab")  # type: ignore[arg-type]

    def test_keys_are_immutable(self) -> None:
        key = InputKey("a")
        with pytest.raises(AttributeError):
            key.name = "b"  # type: ignore[misc]

    def test_format_key(self) -> None:
        assert format_key(InputKey("base_fee")) == "base_fee()"
        assert format_key(DerivedKey("one_year_fee", (17,))) == "one_year_fee(17)"
        assert format_key(DerivedKey("greet", ("bob", 2))) == "greet('bob', 2)"


class TestMemo:
    """Tests for Memo invariants."""

    def test_changed_at_cannot_exceed_verified_at(self) -> None:
        with pytest.raises(ValueError, match="cannot be later"):
            Memo(value=1, verified_at=2, changed_at=3)

    def test_verified_moves_forward_only(self) -> None:
        memo = Memo(value=1, verified_at=2, changed_at=1)

        later = memo.verified(5)

        assert (later.value, later.verified_at, later.changed_at) == (1, 5, 1)
        assert memo.verified_at == 2
        with pytest.raises(ValueError, match="backwards"):
            later.verified(4)

    def test_is_fresh(self) -> None:
        memo = Memo(value=1, verified_at=3, changed_at=3)
        assert memo.is_fresh(3)
        assert not memo.is_fresh(4)

    def test_describe(self) -> None:
        memo = Memo(
            value=70,
            verified_at=3,
            changed_at=3,
            dependencies=(InputKey("base_fee"), InputKey("discount_amount")),
        )

        assert memo.describe() == (
            "(value: 70, verified_at: 3, changed_at: 3, "
            "dependencies: {base_fee(), discount_amount()})"
        )


class TestInMemoryMemoStore:
    """Tests for InMemoryMemoStore."""

    def setup_method(self) -> None:
        self.store = InMemoryMemoStore()

    def test_get_missing_key_returns_none(self) -> None:
        assert self.store.get(InputKey("a")) is None
        assert InputKey("a") not in self.store

    def test_put_returns_replaced_memo(self) -> None:
        first = Memo(value=1, verified_at=1, changed_at=1)
        second = Memo(value=2, verified_at=2, changed_at=2)

        assert self.store.put(InputKey("a"), first) is None
        assert self.store.put(InputKey("a"), second) == first
        assert self.store.get(InputKey("a")) == second
        assert len(self.store) == 1

    def test_keys_lists_every_memo(self) -> None:
        self.store.put(InputKey("a"), Memo(value=1, verified_at=1, changed_at=1))
        self.store.put(DerivedKey("f", (1,)), Memo(value=2, verified_at=1, changed_at=1))

        assert set(self.store.keys()) == {InputKey("a"), DerivedKey("f", (1,))}


class TestRevisionClock:
    """Tests for RevisionClock."""

    def test_starts_at_initial_value(self) -> None:
        assert RevisionClock().current() == 0
        assert RevisionClock(7).current() == 7

    def test_advance_increments_by_one(self) -> None:
        clock = RevisionClock()

        assert clock.advance() == 1
        assert clock.advance() == 2
        assert clock.current() == 2

    def test_current_has_no_side_effect(self) -> None:
        clock = RevisionClock(3)
        clock.current()
        clock.current()
        assert clock.current() == 3

    def test_negative_initial_value_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            RevisionClock(-1)
