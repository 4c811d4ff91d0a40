"""Unit tests for the sheet row parser."""

from sheetsync.services.sheets.parser import ValueRow, parse_line, parse_rows

from conftest import make_csv


def test_header_skipped():
    assert parse_rows('"Name","Type","Value"') == []


def test_single_row():
    rows = parse_rows(make_csv(("A", "number", "42")))
    assert rows == [ValueRow("A", "number", "42")]


def test_header_skipped_even_if_it_looks_like_data():
    rows = parse_rows('"X","number","1"\n"Y","number","2"')
    assert [r.name for r in rows] == ["Y"]


def test_commas_inside_value_kept():
    rows = parse_rows(make_csv(("B", "array", "X,Y,Z")))
    assert rows[0].raw_value == "X,Y,Z"


def test_crlf_line_endings():
    document = make_csv(("A", "number", "1"), ("B", "string", "x")).replace("\n", "\r\n")
    rows = parse_rows(document)
    assert rows == [ValueRow("A", "number", "1"), ValueRow("B", "string", "x")]


def test_blank_lines_ignored():
    document = make_csv(("A", "number", "1")) + "\n\n"
    assert len(parse_rows(document)) == 1


def test_malformed_row_skipped_others_kept():
    document = "\n".join([
        '"Name","Type","Value"',
        '"Good","number","1"',
        'not,a,valid,row',
        '"Also","string","fine"',
    ])
    rows = parse_rows(document)
    assert [r.name for r in rows] == ["Good", "Also"]


def test_too_many_fields_rejected():
    assert parse_line('"A","string","x","y"') is None


def test_quotes_stripped_only_at_edges():
    row = parse_line('"A","string","say ""hi"""')
    assert row == ValueRow("A", "string", 'say ""hi""')


def test_type_tag_kept_verbatim():
    row = parse_line('"Spawn","Vector3","1,2,3"')
    assert row.type_tag == "Vector3"
