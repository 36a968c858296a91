"""Tests for dot-notation extraction."""

from dataclasses import dataclass

from variables_mcp.engine.transform import apply_transform, parse_transform_path


@dataclass
class Point:
    x: int
    y: int


class TestParseTransformPath:
    def test_splits_on_dots(self) -> None:
        assert parse_transform_path("bpi.EUR.rate") == ["bpi", "EUR", "rate"]

    def test_drops_empty_segments(self) -> None:
        assert parse_transform_path(" a..b. ") == ["a", "b"]


class TestApplyTransform:
    def test_nested_mapping(self) -> None:
        data = {"bpi": {"EUR": {"rate": "123.45"}}}
        assert apply_transform(data, "bpi.EUR.rate") == "123.45"

    def test_single_key(self) -> None:
        assert apply_transform({"count": 7}, "count") == 7

    def test_sequence_index(self) -> None:
        data = {"items": [{"name": "first"}, {"name": "second"}]}
        assert apply_transform(data, "items.1.name") == "second"

    def test_index_out_of_range_returns_none(self) -> None:
        assert apply_transform({"items": [1]}, "items.3") is None

    def test_non_numeric_index_returns_none(self) -> None:
        assert apply_transform([1, 2], "first") is None

    def test_missing_key_returns_none(self) -> None:
        assert apply_transform({"a": {"b": 1}}, "a.c") is None

    def test_descending_into_scalar_returns_none(self) -> None:
        assert apply_transform({"a": "text"}, "a.b") is None
        assert apply_transform({"a": 5}, "a.b") is None

    def test_object_attribute(self) -> None:
        assert apply_transform({"point": Point(x=1, y=2)}, "point.y") == 2

    def test_private_attribute_is_not_reachable(self) -> None:
        assert apply_transform(Point(x=1, y=2), "__class__") is None

    def test_none_value_is_returned_as_none(self) -> None:
        assert apply_transform({"a": None}, "a") is None
        assert apply_transform({"a": None}, "a.b") is None

    def test_empty_path_returns_data(self) -> None:
        data = {"a": 1}
        assert apply_transform(data, "") == data
