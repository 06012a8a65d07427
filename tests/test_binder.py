import pytest

from mediameta.schema import (
    Control, FieldKind, FieldValueError, GroupBlock, NOT_AVAILABLE, format_read_view, make_field, read_view, render,
)


def test_render_describes_tree(product_fields):
    form = render(product_fields, {"weight": 12, "specs.color": "red"})
    weight, specs = form.controls
    assert weight == Control(path="weight", label="weight", kind=FieldKind.number, value="12")
    assert isinstance(specs, GroupBlock)
    assert specs.label == "specs"
    color, notes = specs.children
    assert color.path == "specs.color"
    assert color.options == ("red", "blue")
    assert color.value == "red"
    assert notes.value == ""
    assert set(form.handlers) == {"weight", "specs.color", "specs.notes"}


def test_render_with_prefix(product_fields):
    form = render(product_fields, {"item.weight": 1}, path_prefix="item")
    assert form.controls[0].path == "item.weight"
    assert form.controls[0].value == "1"


def test_render_is_idempotent(product_fields):
    md = {"weight": 12, "specs.color": "red"}
    assert render(product_fields, md).controls == render(product_fields, md).controls
    assert read_view(product_fields, md) == read_view(product_fields, md)


def test_edit_produces_new_instance_and_notifies(product_fields):
    seen = []
    original = {"weight": 12, "specs.color": "red", "specs.notes": "n"}
    form = render(product_fields, original, on_change=seen.append)

    new = form.handlers["specs.color"]("blue")

    assert new == {"weight": 12, "specs.color": "blue", "specs.notes": "n"}
    assert seen == [new]
    assert original["specs.color"] == "red"  # caller's mapping is never mutated
    assert form.metadata["specs.color"] == "blue"


def test_edit_leaves_siblings_alone(product_fields):
    form = render(product_fields, {"weight": 12, "specs.color": "red", "unknown": "kept"})
    new = form.handlers["specs.notes"]("fragile")
    assert new["weight"] == 12
    assert new["specs.color"] == "red"
    assert new["unknown"] == "kept"


def test_clearing_a_number_stores_none_and_shows_empty(product_fields):
    form = render(product_fields, {"weight": 12})
    new = form.handlers["weight"]("")
    assert new["weight"] is None
    assert form.rerender().controls[0].value == ""


def test_invalid_edit_keeps_previous_instance(product_fields):
    form = render(product_fields, {"weight": 12})
    with pytest.raises(FieldValueError):
        form.handlers["weight"]("heavy")
    with pytest.raises(FieldValueError):
        form.handlers["specs.color"]("green")
    assert form.values() == {"weight": 12}


def test_read_view_lines(product_fields):
    lines = format_read_view(product_fields, '{"weight": 12, "specs": {"color": "red"}}')
    assert lines == ["weight: 12", "specs.color: red", f"specs.notes: {NOT_AVAILABLE}"]


def test_read_view_flattens_nested_mapping(product_fields):
    lines = format_read_view(product_fields, {"weight": 12, "specs": {"color": "red"}})
    assert lines == ["weight: 12", "specs.color: red", f"specs.notes: {NOT_AVAILABLE}"]


def test_read_view_of_malformed_blob_is_all_na(product_fields, caplog):
    lines = read_view(product_fields, "{oops")
    assert [l.text for l in lines] == [NOT_AVAILABLE] * 3
    assert "malformed" in caplog.text


def test_empty_select_has_no_value():
    form = render([make_field("c", "select", options=["a"])], {})
    assert form.controls[0].value is None
