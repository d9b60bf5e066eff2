"""Tests for cell records, value encoders and the shared string table."""

from __future__ import annotations

import datetime

import pytest

from cellxl import CellType, SharedStringIndexError
from cellxl._cell import (
    Cell,
    Formula,
    cell_type_from_tag,
    encode_bool,
    encode_default,
    encode_duration,
    encode_float,
    encode_int,
    encode_time,
    format_float,
    is_numeric,
    round_precision,
)
from cellxl._sst import SharedStringTable
from cellxl._xml import decode_cell, encode_cell, parse_part, q


class TestNumbers:
    @pytest.mark.parametrize(
        "text,digits",
        [("1", 1), ("-12.50", 4), ("0.001", 1), ("1e5", 1), (".5", 1), ("+3", 1)],
    )
    def test_numeric(self, text: str, digits: int) -> None:
        assert is_numeric(text) == (True, digits)

    @pytest.mark.parametrize("text", ["", "abc", "1,000", "1.2.3", "e5", "--1"])
    def test_not_numeric(self, text: str) -> None:
        assert is_numeric(text) == (False, 0)

    def test_format_float(self) -> None:
        assert format_float(3.0) == "3"
        assert format_float(0.1) == "0.1"
        assert format_float(1e-7) == "0.0000001"
        assert format_float(2.5, precision=3) == "2.500"

    def test_round_precision(self) -> None:
        assert round_precision("0.30000000000000004") == "0.3"
        assert round_precision("123456789012345678") == "123456789012346000"


class TestEncoders:
    def test_scalars(self) -> None:
        assert encode_int(-42) == ("", "-42")
        assert encode_bool(True) == ("b", "1")
        assert encode_bool(False) == ("b", "0")
        assert encode_float(1.5) == ("", "1.5")

    def test_default(self) -> None:
        assert encode_default("12.5") == ("", "12.5")
        assert encode_default("") == ("", "")
        assert encode_default("hello") == ("str", "hello")

    def test_duration(self) -> None:
        assert encode_duration(datetime.timedelta(hours=12)) == ("", "0.5")

    def test_time(self) -> None:
        assert encode_time(datetime.datetime(2020, 1, 1, 12)) == ("", "43831.5", True)
        assert encode_time(datetime.date(2020, 1, 1)) == ("", "43831", True)

    def test_time_zone_is_dropped(self) -> None:
        aware = datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone(datetime.timedelta(hours=5)))
        assert encode_time(aware) == ("", "43831", True)

    def test_pre_epoch_time_is_iso_text(self) -> None:
        type_, text, is_serial = encode_time(datetime.datetime(1800, 1, 1))
        assert (type_, is_serial) == ("str", False)
        assert text == "1800-01-01T00:00:00"


class TestCellRecord:
    def test_type_tags(self) -> None:
        assert cell_type_from_tag("") == CellType.UNSET
        assert cell_type_from_tag("b") == CellType.BOOL
        assert cell_type_from_tag("s") == CellType.STRING
        assert cell_type_from_tag("inlineStr") == CellType.STRING
        assert cell_type_from_tag("e") == CellType.ERROR

    def test_assign_clears_inline_string(self) -> None:
        c = Cell("A1", type="inlineStr", inline_string="x")
        c.assign("", "1")
        assert (c.type, c.value, c.inline_string) == ("", "1", None)

    def test_blank(self) -> None:
        assert Cell("A1").is_blank
        assert not Cell("A1", style=2).is_blank
        assert not Cell("A1", formula=Formula("1+1")).is_blank


class TestCellXML:
    def test_shared_formula_roundtrip(self) -> None:
        c = Cell("C1", type="str", value="3", formula=Formula("=A1+B1", "shared", "C1:C5", 0))
        el = encode_cell(c)
        f_el = el.find(q("f"))
        assert f_el.text == "A1+B1"
        assert f_el.attrib == {"t": "shared", "ref": "C1:C5", "si": "0"}

        back = decode_cell(el)
        assert back.formula == Formula("A1+B1", "shared", "C1:C5", 0)
        assert (back.type, back.value) == ("str", "3")

    def test_inline_string(self) -> None:
        root = parse_part(
            "sheet",
            b'<c xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main" r="B2" t="inlineStr">'
            b"<is><t>hi</t></is></c>",
        )
        c = decode_cell(root)
        assert (c.ref, c.type, c.inline_string) == ("B2", "inlineStr", "hi")


class TestSharedStrings:
    def test_intern_dedupes(self) -> None:
        table = SharedStringTable()
        assert table.intern("a") == 0
        assert table.intern("b") == 1
        assert table.intern("a") == 0
        assert len(table) == 2
        assert table.count == 3
        assert table.string_at(1) == "b"

    def test_out_of_range(self) -> None:
        table = SharedStringTable()
        with pytest.raises(SharedStringIndexError):
            table.string_at(0)

    def test_xml_roundtrip(self) -> None:
        table = SharedStringTable()
        table.intern("x")
        table.intern("y")
        again = SharedStringTable.from_xml(table.to_xml())
        assert [again.string_at(i) for i in range(len(again))] == ["x", "y"]
        assert again.intern("y") == 1
