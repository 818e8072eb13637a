"""
Командная строка для кодера Хаффмана.
"""

import argparse
import os
import sys

from coder import CoderOptions, HuffmanCoder
from errors import HuffmanError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Encodes and decodes files using Huffman's technique",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py -e input.txt output.huf
  python main.py -d output.huf restored.txt --show-codes
        """
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument('-e', '--encode', action='store_true', help='Encode IN to OUT')
    mode.add_argument('-d', '--decode', action='store_true', help='Decode IN to OUT')

    parser.add_argument('--show-frequency', action='store_true',
                        help='Show the frequencies of each byte')
    parser.add_argument('--show-codes', action='store_true', help='Show the codes for each byte')
    parser.add_argument('--show-binary', action='store_true',
                        help='Show the encoded sequence in binary')
    parser.add_argument('--show-tree', action='store_true', help='Show the code tree')

    parser.add_argument('input', metavar='IN', help='Input file')
    parser.add_argument('output', metavar='OUT', help='Output file')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    options = CoderOptions(
        show_frequency=args.show_frequency,
        show_codes=args.show_codes,
        show_binary=args.show_binary,
        show_tree=args.show_tree,
    )
    coder = HuffmanCoder(options)

    try:
        if not os.path.isfile(args.input):
            raise FileNotFoundError(f"{args.input} not found")

        if args.encode:
            coder.encode_file(args.input, args.output)
        else:
            coder.decode_file(args.input, args.output)

    except (HuffmanError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
