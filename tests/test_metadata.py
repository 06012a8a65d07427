import pytest

from mediameta.schema import (
    FieldValueError, MetadataValidationError, coerce_metadata, coerce_value, dump_metadata, make_field, parse_metadata,
)


@pytest.mark.parametrize("blob, expected", [
    ('{"weight": 12, "specs.color": "red"}', {"weight": 12, "specs.color": "red"}),
    ('{"specs": {"color": "red", "size": {"w": 2}}}', {"specs.color": "red", "specs.size.w": 2}),
    ("", {}),
    (None, {}),
])
def test_parse_metadata(blob, expected):
    assert parse_metadata(blob) == expected


@pytest.mark.parametrize("blob", ["{not json", "[1, 2]", '"text"'])
def test_parse_malformed_metadata_is_empty(blob, caplog):
    assert parse_metadata(blob) == {}
    assert "Ignoring" in caplog.text


def test_dump_then_parse_keeps_unicode():
    assert parse_metadata(dump_metadata({"name": "Größe"})) == {"name": "Größe"}


@pytest.mark.parametrize("raw, expected", [
    ("12", 12),
    (" 1.5 ", 1.5),
    (7, 7),
    ("", None),
    (None, None),
])
def test_coerce_number(raw, expected):
    assert coerce_value(make_field("n", "number"), raw) == expected


@pytest.mark.parametrize("raw", ["abc", "nan", "inf", True])
def test_coerce_number_rejects(raw):
    with pytest.raises(FieldValueError):
        coerce_value(make_field("n", "number"), raw)


def test_coerce_select():
    f = make_field("c", "select", options=["red", "blue"])
    assert coerce_value(f, "red") == "red"
    assert coerce_value(f, "") is None
    with pytest.raises(FieldValueError) as exc:
        coerce_value(f, "green", "specs.c")
    assert exc.value.path == "specs.c"


def test_coerce_text_and_date_keep_strings():
    assert coerce_value(make_field("t", "text"), 5) == "5"
    assert coerce_value(make_field("d", "date"), "2024-01-31") == "2024-01-31"
    assert coerce_value(make_field("t", "text"), None) is None


def test_coerce_metadata_keeps_unknown_keys_and_collects_errors(product_fields):
    out = coerce_metadata(product_fields, {"weight": "3", "legacy": "x"})
    assert out == {"weight": 3, "legacy": "x"}

    with pytest.raises(MetadataValidationError) as exc:
        coerce_metadata(product_fields, {"weight": "heavy", "specs.color": "green"})
    assert [e.path for e in exc.value.errors] == ["weight", "specs.color"]
