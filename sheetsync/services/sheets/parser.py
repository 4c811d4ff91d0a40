"""
Sheet Row Parser

Splits an exported sheet document into (Name, Type, Value) rows.

Expected layout, one row per line, first line is the header:

    "Name","Type","Value"
    "SpeedThreshold","number","16"
    "Spawn","Vector3","10, 2, 6.2"
"""

from dataclasses import dataclass

from ...common.logging_setup import get_service_logger

logger = get_service_logger("sheets.parser")

FIELD_DELIMITER = '","'


@dataclass(frozen=True)
class ValueRow:
    """One data row of the sheet"""
    name: str
    type_tag: str
    raw_value: str


def parse_line(line: str) -> ValueRow | None:
    """
    Parse one data line.

    Returns:
        ValueRow, or None if the line does not split into three fields
    """
    fields = line.split(FIELD_DELIMITER)
    if len(fields) != 3:
        return None

    name, type_tag, raw_value = fields
    if name.startswith('"'):
        name = name[1:]
    if raw_value.endswith('"'):
        raw_value = raw_value[:-1]

    return ValueRow(name=name, type_tag=type_tag, raw_value=raw_value)


def parse_rows(document: str) -> list[ValueRow]:
    """
    Parse a full document into rows, skipping the header.

    Malformed lines are logged and skipped; blank lines are ignored.
    """
    rows: list[ValueRow] = []

    for line_number, line in enumerate(document.split("\n"), start=1):
        if line_number == 1:
            continue

        line = line.rstrip("\r")
        if not line.strip():
            continue

        row = parse_line(line)
        if row is None:
            logger.warning(
                f"Skipping malformed row {line_number}: {line[:80]!r}",
                extra={"line_number": line_number},
            )
            continue

        rows.append(row)

    return rows
