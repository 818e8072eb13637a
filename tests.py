import contextlib
import io
import os
import random
import shutil
import sys
import tempfile
import unittest

from bitarray import bitarray

from bitstream import BitReader, BitWriter, open_bit_reader, open_bit_writer
from coder import CoderOptions, HuffmanCoder
from errors import (EmptyInputError, HuffmanError, MalformedHeaderError, TruncatedStreamError,
                    UnknownSymbolError, UnterminatedCodeError)
from format import PREAMBLE_BITS, STREAM_MARKER, EncodedStream, StreamFormat
from frequency import count_frequencies, ordered_frequencies
from huffman import (HuffmanEncoder, HuffmanTree, build_tree, compress_with_huffman,
                     decompress_with_huffman, deserialize_tree, generate_codes,
                     serialize_tree, symbol_label)
import main


def leaf_bits(char: str) -> str:
    return '1' + format(ord(char), '08b')


def collect_leaves(node, path=''):
    if node.is_leaf:
        return {node.symbol: path}
    leaves = collect_leaves(node.left, path + '0')
    leaves.update(collect_leaves(node.right, path + '1'))
    return leaves


class TestFrequencyModel(unittest.TestCase):
    def test_count_frequencies(self):
        self.assertEqual(count_frequencies(b"abca"), {97: 2, 98: 1, 99: 1})

    def test_empty_input_counts_nothing(self):
        self.assertEqual(len(count_frequencies(b"")), 0)

    def test_order_by_count_then_symbol(self):
        frequencies = {ord('b'): 2, ord('a'): 2, ord('c'): 1}
        self.assertEqual(ordered_frequencies(frequencies),
                         [(ord('c'), 1), (ord('a'), 2), (ord('b'), 2)])


class TestBitStream(unittest.TestCase):
    def test_write_int_is_msb_first(self):
        writer = BitWriter()
        writer.write_int(5, 4)
        self.assertEqual(writer.bits.to01(), '0101')

    def test_write_int_out_of_range(self):
        writer = BitWriter()
        with self.assertRaises(ValueError):
            writer.write_int(16, 4)

    def test_to_bytes_pads_with_zeros(self):
        writer = BitWriter()
        writer.write_bits('101')
        self.assertEqual(len(writer), 3)
        self.assertEqual(writer.to_bytes(), b'\xa0')

    def test_read_back(self):
        writer = BitWriter()
        writer.write_bit(1)
        writer.write_int(300, 32)
        writer.write_bits(bitarray('0110'))

        reader = BitReader.from_bytes(writer.to_bytes())
        self.assertEqual(reader.read_bit(), 1)
        self.assertEqual(reader.read_int(32), 300)
        self.assertEqual(reader.read_bits(4).to01(), '0110')
        self.assertEqual(reader.position, 37)
        self.assertEqual(reader.remaining, 3)

    def test_read_past_end(self):
        reader = BitReader(bitarray('1'))
        reader.read_bit()
        with self.assertRaises(TruncatedStreamError):
            reader.read_bit()
        with self.assertRaises(TruncatedStreamError):
            reader.read_int(8)

    def test_bit_files(self):
        temp_dir = tempfile.mkdtemp()
        try:
            path = os.path.join(temp_dir, "bits.bin")
            with open_bit_writer(path) as writer:
                writer.write_int(0xAB, 8)
                writer.write_bit(1)

            with open(path, 'rb') as f:
                self.assertEqual(f.read(), b'\xab\x80')

            with open_bit_reader(path) as reader:
                self.assertEqual(reader.read_int(8), 0xAB)
                self.assertEqual(reader.read_bit(), 1)
        finally:
            shutil.rmtree(temp_dir)

    def test_bit_writer_skips_file_on_error(self):
        temp_dir = tempfile.mkdtemp()
        try:
            path = os.path.join(temp_dir, "bits.bin")
            with self.assertRaises(ValueError):
                with open_bit_writer(path) as writer:
                    writer.write_int(256, 8)
            self.assertFalse(os.path.exists(path))
        finally:
            shutil.rmtree(temp_dir)


class TestTreeBuilder(unittest.TestCase):
    def test_tie_break_shape(self):
        tree = HuffmanTree.from_data(b"bbaac")

        self.assertEqual(tree.codes, {ord('b'): '0', ord('c'): '10', ord('a'): '11'})
        self.assertEqual(tree.serialize().to01(),
                         '0' + leaf_bits('b') + '0' + leaf_bits('c') + leaf_bits('a'))

    def test_input_order_does_not_change_tree(self):
        first = build_tree({ord('b'): 2, ord('a'): 2, ord('c'): 1})
        second = build_tree({ord('c'): 1, ord('a'): 2, ord('b'): 2})
        self.assertEqual(serialize_tree(first), serialize_tree(second))

    def test_determinism(self):
        random.seed(7)
        data = bytes(random.choice(b"abcdefgh") for _ in range(500))
        frequencies = count_frequencies(data)

        headers = {serialize_tree(build_tree(frequencies)).to01() for _ in range(5)}
        self.assertEqual(len(headers), 1)

    def test_equal_weight_internal_nodes_merge_in_creation_order(self):
        root = build_tree({ord('a'): 1, ord('b'): 1, ord('c'): 1, ord('d'): 1})
        # (a, b) is created before (c, d) and stays on the left
        self.assertEqual(generate_codes(root),
                         {ord('a'): '00', ord('b'): '01', ord('c'): '10', ord('d'): '11'})

    def test_weights_sum_children(self):
        root = build_tree(count_frequencies(b"Lorem ipsum dolor sit amet"))

        def check(node):
            if node.is_leaf:
                self.assertIsNotNone(node.symbol)
                return
            self.assertEqual(node.weight, node.left.weight + node.right.weight)
            check(node.left)
            check(node.right)

        check(root)
        self.assertEqual(root.weight, len(b"Lorem ipsum dolor sit amet"))

    def test_empty_frequencies(self):
        with self.assertRaises(EmptyInputError):
            HuffmanTree.build({})

    def test_single_symbol(self):
        tree = HuffmanTree.from_data(b"aaaa")
        self.assertTrue(tree.root.is_leaf)
        self.assertEqual(tree.codes, {ord('a'): ''})
        self.assertEqual(tree.serialize().to01(), leaf_bits('a'))


class TestCodeTable(unittest.TestCase):
    def test_prefix_free(self):
        random.seed(42)
        data = bytes(random.randint(0, 255) for _ in range(5000))
        codes = list(HuffmanTree.from_data(data).codes.values())

        for i, code in enumerate(codes):
            for j, other in enumerate(codes):
                if i != j:
                    self.assertFalse(other.startswith(code), f"{code} prefixes {other}")

    def test_frequent_symbols_get_shorter_codes(self):
        codes = HuffmanTree.from_data(b"a" * 50 + b"b" * 10 + b"c").codes
        self.assertLess(len(codes[ord('a')]), len(codes[ord('c')]))

    def test_tree_string(self):
        tree = HuffmanTree.from_data(b"bbaac")
        self.assertEqual(tree.tree_string().splitlines(),
                         ["Node(5)", " Leaf('b'=2)", " Node(3)", "  Leaf('c'=1)", "  Leaf('a'=2)"])

    def test_symbol_label(self):
        self.assertEqual(symbol_label(ord('a')), "'a'")
        self.assertEqual(symbol_label(10), "0x0a")


class TestTreeCodec(unittest.TestCase):
    def test_header_round_trip(self):
        tree = HuffmanTree.from_data(b"The quick brown fox jumps over the lazy dog")
        restored = HuffmanTree.deserialize(tree.serialize())

        self.assertEqual(restored.codes, tree.codes)
        self.assertEqual(collect_leaves(restored.root), collect_leaves(tree.root))

    def test_cursor_advances_past_header(self):
        header = serialize_tree(build_tree({ord('x'): 3, ord('y'): 1}))
        bits = bitarray('11') + header + bitarray('0101')

        root, cursor = deserialize_tree(bits, 2)
        self.assertEqual(cursor, 2 + len(header))
        self.assertEqual(collect_leaves(root), {ord('y'): '0', ord('x'): '1'})

    def test_leaf_without_symbol_bits(self):
        with self.assertRaises(MalformedHeaderError):
            deserialize_tree(bitarray('1011'), 0)

    def test_internal_node_without_children(self):
        with self.assertRaises(MalformedHeaderError):
            deserialize_tree(bitarray('0' + leaf_bits('a')), 0)

    def test_trailing_bits_after_header(self):
        with self.assertRaises(MalformedHeaderError):
            HuffmanTree.deserialize(bitarray(leaf_bits('a') + '0'))

    def test_duplicate_symbol(self):
        with self.assertRaises(MalformedHeaderError):
            HuffmanTree.deserialize(bitarray('0' + leaf_bits('a') + leaf_bits('a')))

    def test_nesting_too_deep(self):
        with self.assertRaises(MalformedHeaderError):
            deserialize_tree(bitarray('0' * 300), 0)

    def test_symbol_too_wide(self):
        tree = HuffmanTree.build({0x100: 1, ord('a'): 1})
        with self.assertRaises(ValueError):
            tree.serialize()


class TestPayloadCodec(unittest.TestCase):
    def setUp(self):
        self.tree = HuffmanTree.from_data(b"bbaac")

    def test_encode_payload(self):
        bits = HuffmanEncoder.encode_payload(b"bbaac", self.tree.codes)
        self.assertEqual(bits.to01(), '00' + '1111' + '10')

    def test_unknown_symbol(self):
        with self.assertRaises(UnknownSymbolError) as ctx:
            HuffmanEncoder.encode_payload(b"abz", self.tree.codes)
        self.assertEqual(ctx.exception.symbol, ord('z'))

    def test_decode_stops_at_symbol_count(self):
        bits = bitarray('0011111000000')
        self.assertEqual(HuffmanEncoder.decode_payload(bits, self.tree.root, 5), b"bbaac")

    def test_truncated_payload(self):
        with self.assertRaises(TruncatedStreamError):
            HuffmanEncoder.decode_payload(bitarray('00'), self.tree.root, 5)

    def test_unterminated_code(self):
        with self.assertRaises(UnterminatedCodeError):
            HuffmanEncoder.decode_payload(bitarray('001'), self.tree.root, 5)

    def test_single_symbol_needs_no_bits(self):
        tree = HuffmanTree.from_data(b"aaaa")
        self.assertEqual(len(HuffmanEncoder.encode_payload(b"aaaa", tree.codes)), 0)
        self.assertEqual(HuffmanEncoder.decode_payload(bitarray(), tree.root, 4), b"aaaa")

    def test_round_trip(self):
        random.seed(1)
        samples = [
            b"a",
            b"ab",
            b"aaaa",
            b"Hello Hello Hello",
            bytes(range(256)),
            bytes(random.getrandbits(8) for _ in range(10 * 1024)),
            "Кодирование Хаффмана".encode('utf-8'),
        ]
        for data in samples:
            tree = HuffmanTree.from_data(data)
            bits = HuffmanEncoder.encode_payload(data, tree.codes)
            self.assertEqual(HuffmanEncoder.decode_payload(bits, tree.root, len(data)), data)


class TestStreamFormat(unittest.TestCase):
    def test_preamble(self):
        compressed = compress_with_huffman(b"bbaac")

        expected = (bytes([STREAM_MARKER]) + (29).to_bytes(4, 'big')
                    + (8).to_bytes(4, 'big') + (5).to_bytes(4, 'big'))
        self.assertEqual(compressed[:13], expected)
        # 104 + 29 + 8 = 141 bits
        self.assertEqual(len(compressed), 18)

    def test_read_stream(self):
        stream = EncodedStream(header=bitarray(leaf_bits('q')), payload=bitarray('101'),
                               symbol_count=7)
        restored = StreamFormat.read_stream(BitReader.from_bytes(StreamFormat.create_stream(stream)))
        self.assertEqual(restored, stream)

    def test_compression_wrapper(self):
        data = b"The quick brown fox jumps over the lazy dog"
        self.assertEqual(decompress_with_huffman(compress_with_huffman(data)), data)

    def test_large_data(self):
        data = b"Lorem ipsum dolor sit amet " * 200
        compressed = compress_with_huffman(data)
        self.assertLess(len(compressed), len(data))
        self.assertEqual(decompress_with_huffman(compressed), data)

    def test_single_symbol_stream(self):
        self.assertEqual(decompress_with_huffman(compress_with_huffman(b"aaaa")), b"aaaa")

    def test_empty_input(self):
        with self.assertRaises(EmptyInputError):
            compress_with_huffman(b"")

    def test_bad_marker(self):
        compressed = bytearray(compress_with_huffman(b"bbaac"))
        compressed[0] = 0xFF
        with self.assertRaises(MalformedHeaderError):
            decompress_with_huffman(bytes(compressed))

    def test_truncated_stream(self):
        compressed = compress_with_huffman(b"bbaac")
        with self.assertRaises(TruncatedStreamError):
            decompress_with_huffman(compressed[:-1])
        with self.assertRaises(TruncatedStreamError):
            decompress_with_huffman(compressed[:5])

    def flip_last_payload_bit(self, data: bytes) -> bytes:
        bits = bitarray()
        bits.frombytes(compress_with_huffman(data))
        reader = BitReader(bits)
        stream = StreamFormat.read_stream(reader)
        bits.invert(PREAMBLE_BITS + len(stream.header) + len(stream.payload) - 1)
        return bits.tobytes()

    def test_flipped_bit_keeps_declared_length(self):
        # последний код '10' превращается в '11'
        self.assertEqual(decompress_with_huffman(self.flip_last_payload_bit(b"bbaac")), b"bbaaa")

    def test_flipped_bit_leaves_unterminated_code(self):
        with self.assertRaises(UnterminatedCodeError):
            decompress_with_huffman(self.flip_last_payload_bit(b"aacbb"))

    def test_flipped_bit_never_changes_length(self):
        random.seed(3)
        for _ in range(20):
            data = bytes(random.choice(b"abcdefg") for _ in range(random.randint(2, 60)))
            try:
                decoded = decompress_with_huffman(self.flip_last_payload_bit(data))
            except (UnterminatedCodeError, TruncatedStreamError):
                continue
            self.assertEqual(len(decoded), len(data))

    def test_errors_are_value_errors(self):
        self.assertTrue(issubclass(HuffmanError, ValueError))
        with self.assertRaises(ValueError):
            decompress_with_huffman(b"")


class TestHuffmanCoder(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.input_path = os.path.join(self.temp_dir, "input.txt")
        self.encoded_path = os.path.join(self.temp_dir, "input.huf")
        self.decoded_path = os.path.join(self.temp_dir, "restored.txt")

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def write_input(self, data: bytes):
        with open(self.input_path, 'wb') as f:
            f.write(data)

    def test_encode_decode_file(self):
        data = b"Hello World! " * 100
        self.write_input(data)
        coder = HuffmanCoder()

        with contextlib.redirect_stdout(io.StringIO()):
            encoded = coder.encode_file(self.input_path, self.encoded_path)
            decoded = coder.decode_file(self.encoded_path, self.decoded_path)

        self.assertEqual(encoded.original_size, len(data))
        self.assertLess(encoded.encoded_size, encoded.original_size)
        self.assertEqual(decoded.data, data)
        self.assertEqual(decoded.tree.codes, encoded.tree.codes)

        with open(self.decoded_path, 'rb') as f:
            self.assertEqual(f.read(), data)

    def test_show_options(self):
        self.write_input(b"bbaac")
        coder = HuffmanCoder(CoderOptions(show_frequency=True, show_codes=True,
                                          show_binary=True, show_tree=True))

        output = io.StringIO()
        with contextlib.redirect_stdout(output):
            coder.encode_file(self.input_path, self.encoded_path)
        text = output.getvalue()

        for title in ("FREQUENCIES", "CODES", "TREE", "ENCODED SEQUENCE"):
            self.assertIn(title, text)
        self.assertIn("\"10\" -> 'c'", text)
        self.assertIn("00111110", text)

    def test_quiet_by_default(self):
        self.write_input(b"bbaac")
        output = io.StringIO()
        with contextlib.redirect_stdout(output):
            HuffmanCoder().encode_file(self.input_path, self.encoded_path)
        self.assertNotIn("CODES", output.getvalue())

    def test_empty_file(self):
        self.write_input(b"")
        with self.assertRaises(EmptyInputError):
            HuffmanCoder().encode_file(self.input_path, self.encoded_path)
        self.assertFalse(os.path.exists(self.encoded_path))

    def test_options_are_immutable(self):
        options = CoderOptions()
        with self.assertRaises(AttributeError):
            options.show_codes = True


class TestCommandLine(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def test_encode_then_decode(self):
        source = os.path.join(self.temp_dir, "file.txt")
        encoded = os.path.join(self.temp_dir, "file.huf")
        restored = os.path.join(self.temp_dir, "file.out")
        data = "Hello, world!\n".encode('utf-8') * 100

        with open(source, 'wb') as f:
            f.write(data)

        with contextlib.redirect_stdout(io.StringIO()):
            main.main(['-e', source, encoded])
            main.main(['-d', encoded, restored, '--show-codes'])

        with open(restored, 'rb') as f:
            self.assertEqual(f.read(), data)

    def test_missing_input(self):
        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr):
            with self.assertRaises(SystemExit) as ctx:
                main.main(['-e', os.path.join(self.temp_dir, "nope"), "out"])
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("Error:", stderr.getvalue())

    def test_corrupt_input(self):
        broken = os.path.join(self.temp_dir, "broken.huf")
        with open(broken, 'wb') as f:
            f.write(b"\x00garbage")

        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                main.main(['-d', broken, os.path.join(self.temp_dir, "out")])
        self.assertEqual(ctx.exception.code, 1)

    def test_encode_and_decode_are_exclusive(self):
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                main.main(['-e', '-d', 'in', 'out'])
        self.assertEqual(ctx.exception.code, 2)


def run_tests():
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    suite.addTests(loader.loadTestsFromTestCase(TestFrequencyModel))
    suite.addTests(loader.loadTestsFromTestCase(TestBitStream))
    suite.addTests(loader.loadTestsFromTestCase(TestTreeBuilder))
    suite.addTests(loader.loadTestsFromTestCase(TestCodeTable))
    suite.addTests(loader.loadTestsFromTestCase(TestTreeCodec))
    suite.addTests(loader.loadTestsFromTestCase(TestPayloadCodec))
    suite.addTests(loader.loadTestsFromTestCase(TestStreamFormat))
    suite.addTests(loader.loadTestsFromTestCase(TestHuffmanCoder))
    suite.addTests(loader.loadTestsFromTestCase(TestCommandLine))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return 0 if result.wasSuccessful() else 1


if __name__ == '__main__':
    sys.exit(run_tests())
