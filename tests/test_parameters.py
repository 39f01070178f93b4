"""Tests for parameter group reconciliation."""

import sys

import pytest

from aws_converge.reconcile import (
    EXCLUDED_RESET_NAME,
    MAX_PARAMETERS_PER_REQUEST,
    Parameter,
    ParameterSet,
    chunked,
    parameter_hash,
    reconcile,
)
from aws_converge.utils.errors import ValidationError


def as_set(parameters):
    return {(p.name, p.value) for p in parameters}


class TestParameter:
    """Tests for Parameter."""

    def test_name_is_lowercased(self) -> None:
        """Names compare case-insensitively."""
        assert Parameter("Maxmemory-Policy", "noeviction") == Parameter("maxmemory-policy", "noeviction")

    def test_value_is_stringified(self) -> None:
        assert Parameter("timeout", 300).value == "300"

    def test_hash_is_stable(self) -> None:
        """The hash does not depend on interpreter hash seeding."""
        assert parameter_hash("Timeout", "300") == parameter_hash("timeout", "300")
        assert parameter_hash("timeout", "300") != parameter_hash("timeout", "301")
        assert hash(Parameter("timeout", "300")) == parameter_hash("timeout", "300")

    def test_hash_fits_native_hash_range(self) -> None:
        for value in ("0", "300", "allkeys-lru", "yes", "100"):
            assert -sys.maxsize - 1 <= parameter_hash("timeout", value) <= sys.maxsize

    def test_to_api(self) -> None:
        assert Parameter("timeout", "300").to_api() == {
            "ParameterName": "timeout",
            "ParameterValue": "300",
        }


class TestParameterSet:
    """Tests for ParameterSet."""

    def test_identical_duplicates_collapse(self) -> None:
        params = ParameterSet.of([Parameter("a", "1"), Parameter("A", "1")])
        assert len(params) == 1

    def test_conflicting_duplicates_rejected(self) -> None:
        """The same name with two values is an error."""
        with pytest.raises(ValidationError) as exc_info:
            ParameterSet.of([Parameter("a", "1"), Parameter("a", "2")])

        assert "'a'" in str(exc_info.value)

    def test_from_api_skips_missing_values(self) -> None:
        params = ParameterSet.from_api([
            {"ParameterName": "timeout", "ParameterValue": "300"},
            {"ParameterName": "notify-keyspace-events"},
        ])
        assert params.as_mapping() == {"timeout": "300"}

    def test_iteration_is_sorted(self) -> None:
        params = ParameterSet.from_mapping({"b": "2", "a": "1", "c": "3"})
        assert [p.name for p in params] == ["a", "b", "c"]

    def test_from_dicts(self) -> None:
        params = ParameterSet.from_dicts([{"name": "A", "value": "1"}])
        assert Parameter("a", "1") in params
        assert params.names() == frozenset({"a"})


class TestReconcile:
    """Tests for reconcile()."""

    def test_identical_sets_produce_no_changes(self) -> None:
        """reconcile(S, S) is empty for any S."""
        params = ParameterSet.from_mapping({"a": "1", "b": "2"})
        result = reconcile(params, params)

        assert result.to_remove == []
        assert result.to_add_or_update == []
        assert not result.has_changes

    def test_empty_inputs(self) -> None:
        result = reconcile(ParameterSet(), ParameterSet())
        assert not result.has_changes

    def test_none_is_treated_as_empty(self) -> None:
        result = reconcile(None, ParameterSet.from_mapping({"a": "1"}))
        assert as_set(result.to_add_or_update) == {("a", "1")}
        assert result.to_remove == []

    def test_complete_replacement(self) -> None:
        """Disjoint names: every old name removed, every new name set."""
        result = reconcile(
            ParameterSet.from_mapping({"A": "1", "B": "2"}),
            ParameterSet.from_mapping({"C": "3"}),
        )

        assert as_set(result.to_remove) == {("a", "1"), ("b", "2")}
        assert as_set(result.to_add_or_update) == {("c", "3")}

    def test_partial_removal(self) -> None:
        result = reconcile(
            ParameterSet.from_mapping({"A": "1", "B": "2"}),
            ParameterSet.from_mapping({"B": "2"}),
        )

        assert as_set(result.to_remove) == {("a", "1")}
        assert result.to_add_or_update == []

    def test_value_change_is_update_not_remove(self) -> None:
        result = reconcile(
            ParameterSet.from_mapping({"A": "1"}),
            ParameterSet.from_mapping({"A": "2"}),
        )

        assert result.to_remove == []
        assert as_set(result.to_add_or_update) == {("a", "2")}

    def test_mixed_changes(self) -> None:
        result = reconcile(
            ParameterSet.from_mapping({
                "appendonly": "yes",
                "activerehashing": "yes",
                "reserved-memory-percent": "25",
            }),
            ParameterSet.from_mapping({
                "appendonly": "no",
                "activerehashing": "yes",
                "tcp-keepalive": "60",
            }),
        )

        assert as_set(result.to_remove) == {("reserved-memory-percent", "25")}
        assert as_set(result.to_add_or_update) == {("appendonly", "no"), ("tcp-keepalive", "60")}

    def test_partition_property(self) -> None:
        """Every name lands in at most one list and changed names are never dropped."""
        old = ParameterSet.from_mapping({"a": "1", "b": "2", "c": "3", "d": "4"})
        new = ParameterSet.from_mapping({"b": "2", "c": "30", "e": "5"})
        result = reconcile(old, new)

        removed = {p.name for p in result.to_remove}
        updated = {p.name for p in result.to_add_or_update}

        assert removed.isdisjoint(updated)
        assert removed == {"a", "d"}
        assert updated == {"c", "e"}

    def test_excluded_name_stays_in_remove_list(self) -> None:
        """reserved-memory is reported; the caller decides how to clear it."""
        result = reconcile(
            ParameterSet.from_mapping({EXCLUDED_RESET_NAME: "100"}),
            ParameterSet(),
        )

        assert result.removes(EXCLUDED_RESET_NAME)
        assert as_set(result.to_remove) == {(EXCLUDED_RESET_NAME, "100")}

    def test_deterministic(self) -> None:
        old = ParameterSet.from_mapping({"x": "1", "y": "2"})
        new = ParameterSet.from_mapping({"y": "3", "z": "4"})

        assert reconcile(old, new) == reconcile(old, new)


class TestChunked:
    """Tests for chunked()."""

    def test_batches_of_twenty(self) -> None:
        parameters = [Parameter(f"p{i:02d}", str(i)) for i in range(45)]
        batches = list(chunked(parameters))

        assert [len(b) for b in batches] == [MAX_PARAMETERS_PER_REQUEST, MAX_PARAMETERS_PER_REQUEST, 5]
        assert [p for b in batches for p in b] == parameters

    def test_empty(self) -> None:
        assert list(chunked([])) == []

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            list(chunked([Parameter("a", "1")], size=0))
