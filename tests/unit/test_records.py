"""
Unit tests for the delimited-record source, record layout and count estimate.
"""
import pytest

from rag_ingest.errors import FatalJobError, RecordDecodeError
from rag_ingest.ingest.models import RawRow
from rag_ingest.ingest.records import CsvRecordSource, RecordLayout, estimate_count

from conftest import write_csv


def _rows(path, **kwargs):
    with CsvRecordSource(path, **kwargs) as source:
        return source.header, list(source.rows())


def test_header_and_rows(five_row_csv):
    header, rows = _rows(five_row_csv)

    assert header == ["id", "content"]
    assert [r.record_number for r in rows] == [1, 2, 3, 4, 5]
    assert rows[2].values == ["3", ""]


def test_quoted_fields_and_custom_delimiter(tmp_path):
    path = tmp_path / "semi.csv"
    path.write_text('id;content\n1;"hello; world"\n2;"multi\nline"\n', encoding="utf-8")

    header, rows = _rows(path, delimiter=";")

    assert header == ["id", "content"]
    assert rows[0].values == ["1", "hello; world"]
    assert rows[1].values == ["2", "multi\nline"]


def test_blank_lines_are_ignored(tmp_path):
    path = tmp_path / "gaps.csv"
    path.write_text("id,content\n1,a\n\n2,b\n", encoding="utf-8")

    _, rows = _rows(path)

    assert [r.values for r in rows] == [["1", "a"], ["2", "b"]]
    assert [r.record_number for r in rows] == [1, 2]


def test_headerless_file_uses_column_names(tmp_path):
    path = write_csv(tmp_path / "plain.csv", ["1,a", "2,b"], header=None)

    header, rows = _rows(path, skip_header=False, column_names=["id", "content"])

    assert header == ["id", "content"]
    assert len(rows) == 2


def test_missing_source_is_fatal(tmp_path):
    with pytest.raises(FatalJobError):
        CsvRecordSource(tmp_path / "nope.csv").open()


def test_layout_requires_content_column():
    with pytest.raises(FatalJobError, match="Content column 'text' not found"):
        RecordLayout.from_header(["id", "content"], "text")


def test_layout_builds_typed_record():
    layout = RecordLayout.from_header(
        ["doc_id", "content", "author", "year"],
        "content",
        id_column="doc_id",
        metadata_columns=["author", "missing"],
    )

    record = layout.to_record(RawRow(7, ["d-7", "some text", "smith", "2023"]))

    assert record.id == "d-7"
    assert record.content == "some text"
    assert list(record.fields) == ["doc_id", "author", "year"]
    assert record.metadata == {"author": "smith"}
    assert record.record_number == 7


def test_missing_id_column_generates_ids():
    layout = RecordLayout.from_header(["content"], "content", id_column="doc_id")

    first = layout.to_record(RawRow(1, ["a"]))
    second = layout.to_record(RawRow(2, ["b"]))

    assert first.id and second.id and first.id != second.id


def test_blank_content_returns_none():
    layout = RecordLayout.from_header(["id", "content"], "content")
    assert layout.to_record(RawRow(1, ["1", "   "])) is None
    assert layout.to_record(RawRow(2, ["2", ""])) is None


def test_field_count_mismatch_raises_decode_error():
    layout = RecordLayout.from_header(["id", "content"], "content")

    with pytest.raises(RecordDecodeError) as exc:
        layout.to_record(RawRow(5, ["5"]))

    assert exc.value.record_number == 5
    assert "record 5" in str(exc.value)


def test_codec_error_raises_decode_error():
    layout = RecordLayout.from_header(["id", "content"], "content")
    with pytest.raises(RecordDecodeError):
        layout.to_record(RawRow(3, error="unexpected end of data"))


def test_content_truncated_to_max_chars():
    layout = RecordLayout.from_header(["content"], "content")
    record = layout.to_record(RawRow(1, ["x" * 50]), max_chars=10)
    assert record.content == "x" * 10


def test_long_field_is_read_then_truncated(tmp_path):
    path = write_csv(tmp_path / "long.csv", ["1,short", "2," + "y" * 200_000, "3,short"])

    header, rows = _rows(path)
    layout = RecordLayout.from_header(header, "content")

    assert all(r.error is None for r in rows)
    assert len(rows[1].values[1]) == 200_000
    assert len(layout.to_record(rows[1], max_chars=150_000).content) == 150_000


def test_invalid_bytes_are_replaced(tmp_path):
    path = tmp_path / "bytes.csv"
    path.write_bytes(b"id,content\n1,ok\n2,bad \xff\xfe bytes\n3,ok\n")

    _, rows = _rows(path)

    assert [r.record_number for r in rows] == [1, 2, 3]
    assert all(r.error is None for r in rows)
    assert rows[1].values == ["2", "bad \ufffd\ufffd bytes"]


def test_estimate_count(five_row_csv):
    assert estimate_count(five_row_csv) == 5
    assert estimate_count(five_row_csv, skip_header=False) == 6


def test_estimate_count_without_trailing_newline(tmp_path):
    path = tmp_path / "t.csv"
    path.write_text("id,content\n1,a\n2,b", encoding="utf-8")
    assert estimate_count(path) == 2


def test_estimate_count_unknown_for_missing_file(tmp_path):
    assert estimate_count(tmp_path / "missing.csv") == -1
