"""
Главный класс для кодирования и декодирования файлов.
"""

import os
from dataclasses import dataclass
from typing import Dict

from bitarray import bitarray

from bitstream import open_bit_reader, open_bit_writer
from format import EncodedStream, StreamFormat
from frequency import count_frequencies, ordered_frequencies
from huffman import HuffmanEncoder, HuffmanTree, symbol_label


@dataclass(frozen=True)
class CoderOptions:
    show_frequency: bool = False
    show_codes: bool = False
    show_binary: bool = False
    show_tree: bool = False


@dataclass
class EncodeResult:
    tree: HuffmanTree
    frequencies: Dict[int, int]
    payload: bitarray
    original_size: int
    encoded_size: int


@dataclass
class DecodeResult:
    tree: HuffmanTree
    payload: bitarray
    data: bytes


class HuffmanCoder:
    def __init__(self, options: CoderOptions = CoderOptions()):
        self.options = options

    def encode_file(self, input_path: str, output_path: str) -> EncodeResult:
        with open(input_path, 'rb') as f:
            data = f.read()

        frequencies = count_frequencies(data)
        tree = HuffmanTree.build(frequencies)
        payload = HuffmanEncoder.encode_payload(data, tree.codes)

        stream = EncodedStream(header=tree.serialize(), payload=payload,
                               symbol_count=len(data))
        with open_bit_writer(output_path) as writer:
            StreamFormat.write_stream(writer, stream)

        result = EncodeResult(
            tree=tree,
            frequencies=frequencies,
            payload=payload,
            original_size=len(data),
            encoded_size=os.path.getsize(output_path),
        )
        self.report(result.tree, result.frequencies, result.payload)

        ratio = result.encoded_size / result.original_size * 100
        print(f"Encoded {input_path}: {result.original_size} -> "
              f"{result.encoded_size} bytes ({ratio:.1f}%)")
        return result

    def decode_file(self, input_path: str, output_path: str) -> DecodeResult:
        with open_bit_reader(input_path) as reader:
            stream = StreamFormat.read_stream(reader)

        tree = HuffmanTree.deserialize(stream.header)
        data = HuffmanEncoder.decode_payload(stream.payload, tree.root, stream.symbol_count)

        with open(output_path, 'wb') as f:
            f.write(data)

        result = DecodeResult(tree=tree, payload=stream.payload, data=data)
        # поток не хранит частоты, поэтому они считаются по результату
        self.report(result.tree, count_frequencies(data), result.payload)

        print(f"Decoded {input_path}: {len(data)} bytes")
        return result

    def report(self, tree: HuffmanTree, frequencies: Dict[int, int], payload: bitarray):
        if self.options.show_frequency:
            print("FREQUENCIES")
            for symbol, count in ordered_frequencies(frequencies):
                print(f"{symbol_label(symbol):>6} {count}")

        if self.options.show_codes:
            print("CODES")
            for symbol, code in sorted(tree.codes.items(), key=lambda item: (len(item[1]), item[1])):
                print(f'"{code}" -> {symbol_label(symbol)}')

        if self.options.show_tree:
            print("TREE")
            print(tree.tree_string())

        if self.options.show_binary:
            print("ENCODED SEQUENCE")
            print(payload.to01())
