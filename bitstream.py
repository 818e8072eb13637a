"""
Побитовый ввод/вывод поверх bitarray.
"""

from typing import Union

from bitarray import bitarray
from bitarray.util import ba2int, int2ba

from errors import TruncatedStreamError


BIT_ORDER = 'big'


class BitWriter:
    def __init__(self):
        self.bits = bitarray(endian=BIT_ORDER)

    def __len__(self) -> int:
        return len(self.bits)

    def write_bit(self, bit: int):
        self.bits.append(1 if bit else 0)

    def write_bits(self, code: Union[str, bitarray]):
        self.bits.extend(code)

    def write_int(self, value: int, width: int):
        if value < 0 or value >= 1 << width:
            raise ValueError(f"Value {value} does not fit in {width} bits")
        self.bits.extend(int2ba(value, length=width, endian=BIT_ORDER))

    def to_bytes(self) -> bytes:
        # tobytes() pads the last byte with zero bits
        return self.bits.tobytes()


class BitReader:
    def __init__(self, bits: bitarray):
        self.bits = bits
        self.position = 0

    @staticmethod
    def from_bytes(data: bytes) -> 'BitReader':
        bits = bitarray(endian=BIT_ORDER)
        bits.frombytes(data)
        return BitReader(bits)

    @property
    def remaining(self) -> int:
        return len(self.bits) - self.position

    def read_bit(self) -> int:
        if self.position >= len(self.bits):
            raise TruncatedStreamError(f"Bit stream ended at bit {self.position}")
        bit = self.bits[self.position]
        self.position += 1
        return bit

    def read_bits(self, count: int) -> bitarray:
        if count > self.remaining:
            raise TruncatedStreamError(
                f"Need {count} bits at bit {self.position}, only {self.remaining} left"
            )
        chunk = self.bits[self.position:self.position + count]
        self.position += count
        return chunk

    def read_int(self, width: int) -> int:
        return ba2int(self.read_bits(width))


class open_bit_writer:
    """Накапливает биты и записывает их в файл при успешном выходе из блока."""

    def __init__(self, path: str):
        self.path = path
        self.writer = BitWriter()

    def __enter__(self) -> BitWriter:
        return self.writer

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            with open(self.path, 'wb') as f:
                f.write(self.writer.to_bytes())
        return False


class open_bit_reader:
    def __init__(self, path: str):
        self.path = path

    def __enter__(self) -> BitReader:
        with open(self.path, 'rb') as f:
            data = f.read()
        return BitReader.from_bytes(data)

    def __exit__(self, exc_type, exc, tb):
        return False
