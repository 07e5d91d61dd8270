import pytest

from plugins.risk_classifier.core.csv_table import Dataset, parse, split_fields, to_frame, unparse
from plugins.risk_classifier.core.errors import MalformedInputError


def test_parse_reads_header_and_rows_in_order():
    dataset = parse("a,b\n1,x\n2,y\n3,x\n")

    assert dataset.header == ("a", "b")
    assert len(dataset) == 3
    assert [dict(row) for row in dataset] == [
        {"a": "1", "b": "x"},
        {"a": "2", "b": "y"},
        {"a": "3", "b": "x"},
    ]


def test_quoted_separator_is_literal_and_fields_are_trimmed():
    assert split_fields('  1 , "Smith, Jane" ,x') == ["1", "Smith, Jane", "x"]


def test_crlf_and_blank_lines_are_ignored():
    dataset = parse("a,b\r\n1,2\r\n\r\n   \n3,4")

    assert dataset.column("a") == ["1", "3"]
    assert dataset.column("b") == ["2", "4"]


def test_short_rows_are_padded_and_extra_fields_dropped():
    dataset = parse("a,b,c\n1\n1,2,3,4\n")

    assert dict(dataset.rows[0]) == {"a": "1", "b": "", "c": ""}
    assert dict(dataset.rows[1]) == {"a": "1", "b": "2", "c": "3"}


def test_rows_are_read_only():
    dataset = parse("a\n1\n")

    with pytest.raises(TypeError):
        dataset.rows[0]["a"] = "2"


def test_header_only_input_is_an_empty_dataset():
    dataset = parse("a,b\n")

    assert dataset.header == ("a", "b")
    assert dataset.is_empty


@pytest.mark.parametrize("text", ["", "\n\n", "   \r\n"])
def test_missing_header_is_malformed(text):
    with pytest.raises(MalformedInputError):
        parse(text)


def test_byte_order_mark_is_not_part_of_first_column():
    dataset = parse("\ufeffage,target\n1,0\n")

    assert dataset.header == ("age", "target")


def test_unparse_round_trips_values_with_commas():
    original = parse('name,city\n"Doe, J",Paris\nRoe,"New York, NY"\n')

    text = unparse(original)

    assert parse(text) == original


def test_to_frame_keeps_strings():
    frame = to_frame(parse("a,b\n1,x\n,y\n"))

    assert list(frame.columns) == ["a", "b"]
    assert frame["a"].tolist() == ["1", ""]


def test_unknown_column_lookup_raises():
    with pytest.raises(KeyError):
        Dataset(header=("a",), rows=()).column("b")


def test_frame_collapses_repeated_header_names():
    frame = to_frame(parse("a,a,y\n1,2,Yes\n"))

    assert list(frame.columns) == ["a", "y"]
    assert frame.loc[0, "a"] == "2"
