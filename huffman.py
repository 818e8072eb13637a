"""
Реализует кодирование Хаффмана: построение дерева, таблицу кодов,
сериализацию дерева в заголовок и кодирование/декодирование данных.
"""

import heapq
import itertools
from typing import Dict, Iterable, List, Optional, Tuple

from bitarray import bitarray
from bitarray.util import ba2int, int2ba

from bitstream import BIT_ORDER, BitReader
from errors import (EmptyInputError, MalformedHeaderError, TruncatedStreamError,
                    UnknownSymbolError, UnterminatedCodeError)
from format import EncodedStream, StreamFormat
from frequency import count_frequencies, ordered_frequencies


SYMBOL_BITS = 8
MAX_SYMBOL = (1 << SYMBOL_BITS) - 1
# 256 листьев дают не более 255 уровней внутренних узлов
MAX_DEPTH = MAX_SYMBOL


def symbol_label(symbol: int) -> str:
    char = chr(symbol)
    if char.isprintable() and not char.isspace():
        return repr(char)
    return f"0x{symbol:02x}"


class HuffmanNode:
    def __init__(self, symbol: Optional[int] = None, weight: int = 0,
                 left: Optional['HuffmanNode'] = None,
                 right: Optional['HuffmanNode'] = None,
                 order: int = 0):
        self.symbol = symbol
        self.weight = weight
        self.left = left
        self.right = right
        # порядок создания внутреннего узла, для разрешения равенства весов
        self.order = order

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None

    def sort_key(self) -> Tuple[int, int, int]:
        if self.is_leaf:
            return self.weight, 0, self.symbol
        return self.weight, 1, self.order

    def __lt__(self, other: 'HuffmanNode') -> bool:
        return self.sort_key() < other.sort_key()

    def __repr__(self):
        if self.is_leaf:
            return f"Leaf({symbol_label(self.symbol)}={self.weight})"
        return f"Node({self.weight})"


class HuffmanTree:
    def __init__(self, root: Optional[HuffmanNode] = None):
        self.root = root
        self.codes: Dict[int, str] = {}
        if root is not None:
            self.codes = generate_codes(root)

    @staticmethod
    def build(frequencies: Dict[int, int]) -> 'HuffmanTree':
        return HuffmanTree(build_tree(frequencies))

    @staticmethod
    def from_data(data: Iterable[int]) -> 'HuffmanTree':
        return HuffmanTree.build(count_frequencies(data))

    def serialize(self) -> bitarray:
        return serialize_tree(self.root)

    @staticmethod
    def deserialize(bits: bitarray) -> 'HuffmanTree':
        root, cursor = deserialize_tree(bits, 0)
        if cursor != len(bits):
            raise MalformedHeaderError(
                f"Tree header ends at bit {cursor}, declared length is {len(bits)}"
            )
        return HuffmanTree(root)

    def tree_string(self) -> str:
        lines: List[str] = []

        def walk(node: HuffmanNode, depth: int):
            lines.append(' ' * depth + repr(node))
            if not node.is_leaf:
                walk(node.left, depth + 1)
                walk(node.right, depth + 1)

        if self.root is not None:
            walk(self.root, 0)
        return '\n'.join(lines)


def build_tree(frequencies: Dict[int, int]) -> HuffmanNode:
    if not frequencies:
        raise EmptyInputError()

    heap = [HuffmanNode(symbol=symbol, weight=count)
            for symbol, count in ordered_frequencies(frequencies)]
    heapq.heapify(heap)

    order = itertools.count()
    while len(heap) > 1:
        left = heapq.heappop(heap)
        right = heapq.heappop(heap)

        parent = HuffmanNode(weight=left.weight + right.weight,
                             left=left, right=right, order=next(order))
        heapq.heappush(heap, parent)

    return heap[0]


def generate_codes(root: HuffmanNode) -> Dict[int, str]:
    """
    Таблица кодов: путь от корня до листа, '0' влево и '1' вправо.
    У дерева из одного листа код этого символа пустой.
    """
    codes: Dict[int, str] = {}

    def traverse(node: HuffmanNode, code: str):
        if node.is_leaf:
            codes[node.symbol] = code
            return

        traverse(node.left, code + '0')
        traverse(node.right, code + '1')

    traverse(root, '')
    return codes


def serialize_tree(root: HuffmanNode) -> bitarray:
    bits = bitarray(endian=BIT_ORDER)

    def write(node: HuffmanNode):
        if node.is_leaf:
            if not 0 <= node.symbol <= MAX_SYMBOL:
                raise ValueError(f"Symbol {node.symbol!r} does not fit in {SYMBOL_BITS} bits")
            bits.append(1)
            bits.extend(int2ba(node.symbol, length=SYMBOL_BITS, endian=BIT_ORDER))
            return

        bits.append(0)
        write(node.left)
        write(node.right)

    write(root)
    return bits


def deserialize_tree(bits: bitarray, cursor: int) -> Tuple[HuffmanNode, int]:
    """
    Восстанавливает дерево из заголовка начиная с позиции cursor.
    Возвращает корень и позицию сразу за заголовком. Веса не сохраняются.
    """
    seen = set()

    def read(cursor: int, depth: int) -> Tuple[HuffmanNode, int]:
        if cursor >= len(bits):
            raise MalformedHeaderError(f"Tree header ended at bit {cursor}")
        if depth > MAX_DEPTH:
            raise MalformedHeaderError(f"Tree header nests deeper than {MAX_DEPTH} levels")

        if bits[cursor]:
            if cursor + 1 + SYMBOL_BITS > len(bits):
                raise MalformedHeaderError(
                    f"Leaf at bit {cursor} is not followed by a {SYMBOL_BITS}-bit symbol"
                )
            symbol = ba2int(bits[cursor + 1:cursor + 1 + SYMBOL_BITS])
            if symbol in seen:
                raise MalformedHeaderError(f"Symbol {symbol!r} appears twice in tree header")
            seen.add(symbol)
            return HuffmanNode(symbol=symbol), cursor + 1 + SYMBOL_BITS

        left, cursor = read(cursor + 1, depth + 1)
        right, cursor = read(cursor, depth + 1)
        return HuffmanNode(left=left, right=right), cursor

    return read(cursor, 0)


class HuffmanEncoder:
    @staticmethod
    def encode_payload(data: Iterable[int], codes: Dict[int, str]) -> bitarray:
        table = {symbol: bitarray(code, endian=BIT_ORDER) for symbol, code in codes.items()}

        bits = bitarray(endian=BIT_ORDER)
        for symbol in data:
            code = table.get(symbol)
            if code is None:
                raise UnknownSymbolError(symbol)
            bits.extend(code)

        return bits

    @staticmethod
    def decode_payload(bits: bitarray, root: HuffmanNode, symbol_count: int) -> bytes:
        output = bytearray()

        # единственный лист достигается без шагов по дереву
        if root.is_leaf:
            output.extend([root.symbol] * symbol_count)
            return bytes(output)

        node = root
        pos = 0
        while len(output) < symbol_count:
            if pos >= len(bits):
                if node is not root:
                    raise UnterminatedCodeError(
                        f"Payload ended inside a code after {len(output)} of {symbol_count} symbols"
                    )
                raise TruncatedStreamError(
                    f"Payload ended after {len(output)} of {symbol_count} symbols"
                )

            node = node.right if bits[pos] else node.left
            pos += 1

            if node.is_leaf:
                output.append(node.symbol)
                node = root

        return bytes(output)


def compress_with_huffman(data: bytes) -> bytes:
    tree = HuffmanTree.from_data(data)
    stream = EncodedStream(
        header=tree.serialize(),
        payload=HuffmanEncoder.encode_payload(data, tree.codes),
        symbol_count=len(data),
    )
    return StreamFormat.create_stream(stream)


def decompress_with_huffman(data: bytes) -> bytes:
    stream = StreamFormat.read_stream(BitReader.from_bytes(data))
    tree = HuffmanTree.deserialize(stream.header)
    return HuffmanEncoder.decode_payload(stream.payload, tree.root, stream.symbol_count)
