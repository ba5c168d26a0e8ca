"""
PostgreSQL binary COPY encoding

Encodes a RowBuffer as a ``COPY ... FROM STDIN (FORMAT BINARY)`` stream. Each
column gets one wire type, chosen from the Python type of its values (not from
the SQL type of the destination column). NULL is sent as the -1 length marker,
so an empty string and NULL stay distinct.

Stream layout: an 11 byte signature, a flags word and a header extension
length, then for every row a 16 bit field count followed by a 32 bit length
and the bytes of each field, and finally a -1 field count as trailer.
"""

import datetime
import decimal
import io
import struct
import uuid
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, List, Optional, Sequence

from sqldb_migration.core.errors import TransferFailure, UnsupportedValueTypeError
from sqldb_migration.core.models import AwareDatetime, BufferColumn, FixedChar, Jsonb, RowBuffer


class WireType(str, Enum):
    """Binary encodings accepted by COPY FROM STDIN (FORMAT BINARY)."""

    BYTEA = "bytea"
    BOOLEAN = "boolean"
    BPCHAR = "bpchar"
    TIMESTAMP = "timestamp"
    TIMESTAMPTZ = "timestamptz"
    DATE = "date"
    TIME = "time"
    NUMERIC = "numeric"
    FLOAT4 = "float4"
    FLOAT8 = "float8"
    UUID = "uuid"
    INT2 = "int2"
    INT4 = "int4"
    INT8 = "int8"
    INTERVAL = "interval"
    TEXT = "text"
    JSONB = "jsonb"


WIRE_TYPES = MappingProxyType({
    bytes: WireType.BYTEA,
    bytearray: WireType.BYTEA,
    memoryview: WireType.BYTEA,
    bool: WireType.BOOLEAN,
    FixedChar: WireType.BPCHAR,
    datetime.datetime: WireType.TIMESTAMP,
    AwareDatetime: WireType.TIMESTAMPTZ,
    datetime.date: WireType.DATE,
    datetime.time: WireType.TIME,
    datetime.timedelta: WireType.INTERVAL,
    decimal.Decimal: WireType.NUMERIC,
    float: WireType.FLOAT8,
    uuid.UUID: WireType.UUID,
    int: WireType.INT4,
    str: WireType.TEXT,
    Jsonb: WireType.JSONB,
})

_WIDTHS = {
    int: {2: WireType.INT2, 4: WireType.INT4, 8: WireType.INT8},
    float: {4: WireType.FLOAT4, 8: WireType.FLOAT8},
}


def wire_type_for(column: BufferColumn) -> WireType:
    """Return the wire type for a buffer column.

    Raises:
        UnsupportedValueTypeError: If the column's value type has no encoding.
    """
    wire_type = WIRE_TYPES.get(column.value_type)
    if wire_type is None:
        raise UnsupportedValueTypeError(column.name, column.value_type)
    widths = _WIDTHS.get(column.value_type)
    if widths and column.width is not None:
        if column.width not in widths:
            raise UnsupportedValueTypeError(column.name, f"{column.value_type.__name__}({column.width} bytes)")
        wire_type = widths[column.width]
    return wire_type


PG_EPOCH = datetime.datetime(2000, 1, 1)
PG_EPOCH_UTC = PG_EPOCH.replace(tzinfo=datetime.timezone.utc)
PG_EPOCH_DATE = PG_EPOCH.date()

_NUMERIC_POS = 0x0000
_NUMERIC_NEG = 0x4000
_NUMERIC_NAN = 0xC000
_NUMERIC_PINF = 0xD000
_NUMERIC_NINF = 0xF000


def _microseconds(delta: datetime.timedelta) -> int:
    return (delta.days * 86400 + delta.seconds) * 1000000 + delta.microseconds


def _encode_timestamp(value) -> bytes:
    return struct.pack(">q", _microseconds(value - PG_EPOCH))


def _encode_timestamptz(value) -> bytes:
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return struct.pack(">q", _microseconds(value - PG_EPOCH_UTC))


def _encode_date(value) -> bytes:
    if isinstance(value, datetime.datetime):
        value = value.date()
    return struct.pack(">i", (value - PG_EPOCH_DATE).days)


def _encode_time(value) -> bytes:
    micros = ((value.hour * 60 + value.minute) * 60 + value.second) * 1000000 + value.microsecond
    return struct.pack(">q", micros)


def _encode_interval(value) -> bytes:
    micros = value.seconds * 1000000 + value.microseconds
    return struct.pack(">qii", micros, value.days, 0)


def _encode_uuid(value) -> bytes:
    if not isinstance(value, uuid.UUID):
        value = uuid.UUID(str(value))
    return value.bytes


def _encode_text(value) -> bytes:
    return str(value).encode("utf-8")


def _encode_jsonb(value) -> bytes:
    # jsonb binary format version 1 followed by the JSON text
    return b"\x01" + str(value).encode("utf-8")


def encode_numeric(value) -> bytes:
    """Encode a number in PostgreSQL's base-10000 numeric format."""
    if not isinstance(value, decimal.Decimal):
        value = decimal.Decimal(str(value))
    if value.is_nan():
        return struct.pack(">hhHh", 0, 0, _NUMERIC_NAN, 0)
    if value.is_infinite():
        sign = _NUMERIC_NINF if value.is_signed() else _NUMERIC_PINF
        return struct.pack(">hhHh", 0, 0, sign, 0)

    sign, digits, exponent = value.as_tuple()
    dscale = max(0, -exponent)
    digit_text = "".join(str(d) for d in digits)
    if exponent >= 0:
        integer_part, fraction_part = digit_text + "0" * exponent, ""
    else:
        fraction_len = -exponent
        integer_part = digit_text[:-fraction_len] if len(digit_text) > fraction_len else ""
        fraction_part = digit_text[-fraction_len:].rjust(fraction_len, "0")

    integer_part = integer_part.lstrip("0")
    integer_part = integer_part.rjust(-(-len(integer_part) // 4) * 4, "0")
    fraction_part = fraction_part.ljust(-(-len(fraction_part) // 4) * 4, "0")

    groups = [int(integer_part[i:i + 4]) for i in range(0, len(integer_part), 4)]
    weight = len(groups) - 1
    groups += [int(fraction_part[i:i + 4]) for i in range(0, len(fraction_part), 4)]

    while groups and groups[0] == 0:
        groups.pop(0)
        weight -= 1
    while groups and groups[-1] == 0:
        groups.pop()
    if not groups:
        weight = 0
        sign = 0

    header = struct.pack(">hhHh", len(groups), weight, _NUMERIC_NEG if sign else _NUMERIC_POS, dscale)
    return header + struct.pack(f">{len(groups)}h", *groups)


_ENCODERS: Dict[WireType, Callable[[object], bytes]] = {
    WireType.BYTEA: bytes,
    WireType.BOOLEAN: lambda value: b"\x01" if value else b"\x00",
    WireType.BPCHAR: _encode_text,
    WireType.TIMESTAMP: _encode_timestamp,
    WireType.TIMESTAMPTZ: _encode_timestamptz,
    WireType.DATE: _encode_date,
    WireType.TIME: _encode_time,
    WireType.NUMERIC: encode_numeric,
    WireType.FLOAT4: lambda value: struct.pack(">f", value),
    WireType.FLOAT8: lambda value: struct.pack(">d", value),
    WireType.UUID: _encode_uuid,
    WireType.INT2: lambda value: struct.pack(">h", value),
    WireType.INT4: lambda value: struct.pack(">i", value),
    WireType.INT8: lambda value: struct.pack(">q", value),
    WireType.INTERVAL: _encode_interval,
    WireType.TEXT: _encode_text,
    WireType.JSONB: _encode_jsonb,
}

COPY_SIGNATURE = b"PGCOPY\n\xff\r\n\x00"
_HEADER = COPY_SIGNATURE + struct.pack(">ii", 0, 0)
_TRAILER = struct.pack(">h", -1)
_NULL = struct.pack(">i", -1)


def encode_copy_stream(buffer: RowBuffer, wire_types: Optional[Sequence[WireType]] = None) -> io.BytesIO:
    """Encode a buffer as a binary COPY stream.

    Wire types are resolved for every column before the first row is encoded,
    so an unsupported column fails the table without a partial stream.

    Args:
        buffer: Rows to encode.
        wire_types: Wire type per column; derived from the buffer when omitted.

    Returns:
        io.BytesIO: The complete stream, positioned at its start.

    Raises:
        UnsupportedValueTypeError: If a column has no wire type.
        TransferFailure: If a value cannot be encoded as its column's wire type.
    """
    if wire_types is None:
        wire_types = [wire_type_for(column) for column in buffer.columns]
    encoders: List[Callable[[object], bytes]] = [_ENCODERS[wire_type] for wire_type in wire_types]
    field_count = struct.pack(">h", len(encoders))

    stream = io.BytesIO()
    write = stream.write
    write(_HEADER)
    for row_number, row in enumerate(buffer.rows, start=1):
        if len(row) != len(encoders):
            raise TransferFailure(f"Row {row_number} has {len(row)} values, expected {len(encoders)}")
        write(field_count)
        for index, value in enumerate(row):
            if value is None:
                write(_NULL)
                continue
            try:
                data = encoders[index](value)
            except (TypeError, ValueError, OverflowError, ArithmeticError, struct.error) as e:
                column = buffer.columns[index]
                raise TransferFailure(
                    f"Cannot encode row {row_number} column '{column.name}' as {wire_types[index].value}: {e}"
                ) from e
            write(struct.pack(">i", len(data)))
            write(data)
    write(_TRAILER)
    stream.seek(0)
    return stream
