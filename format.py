"""
Определяет структуру сжатого потока и методы его чтения/записи.

Порядок полей: маркер (8 бит), длина заголовка дерева в битах (32),
длина закодированных данных в битах (32), число символов (32),
заголовок дерева, закодированные данные, выравнивание до байта.
"""

from dataclasses import dataclass

from bitarray import bitarray

from bitstream import BitReader, BitWriter
from errors import MalformedHeaderError, TruncatedStreamError


STREAM_MARKER = 0b00001000
MARKER_BITS = 8
LENGTH_BITS = 32
PREAMBLE_BITS = MARKER_BITS + 3 * LENGTH_BITS


@dataclass
class EncodedStream:
    header: bitarray
    payload: bitarray
    symbol_count: int


class StreamFormat:
    @staticmethod
    def write_stream(writer: BitWriter, stream: EncodedStream):
        writer.write_int(STREAM_MARKER, MARKER_BITS)
        writer.write_int(len(stream.header), LENGTH_BITS)
        writer.write_int(len(stream.payload), LENGTH_BITS)
        writer.write_int(stream.symbol_count, LENGTH_BITS)
        writer.write_bits(stream.header)
        writer.write_bits(stream.payload)

    @staticmethod
    def create_stream(stream: EncodedStream) -> bytes:
        writer = BitWriter()
        StreamFormat.write_stream(writer, stream)
        return writer.to_bytes()

    @staticmethod
    def read_stream(reader: BitReader) -> EncodedStream:
        if reader.remaining < PREAMBLE_BITS:
            raise TruncatedStreamError("Stream too small")

        marker = reader.read_int(MARKER_BITS)
        if marker != STREAM_MARKER:
            raise MalformedHeaderError(f"Invalid stream marker: {marker:#010b}")

        header_length = reader.read_int(LENGTH_BITS)
        payload_length = reader.read_int(LENGTH_BITS)
        symbol_count = reader.read_int(LENGTH_BITS)

        if header_length == 0:
            raise MalformedHeaderError("Stream declares an empty tree header")

        if header_length + payload_length > reader.remaining:
            raise TruncatedStreamError(
                f"Stream declares {header_length + payload_length} bits, "
                f"only {reader.remaining} present"
            )

        header = reader.read_bits(header_length)
        payload = reader.read_bits(payload_length)

        return EncodedStream(header=header, payload=payload, symbol_count=symbol_count)
