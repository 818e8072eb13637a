"""
Частотная модель: подсчёт символов и их канонический порядок.
"""

from collections import Counter
from typing import Dict, Iterable, List, Tuple


def count_frequencies(data: Iterable[int]) -> Counter:
    return Counter(data)


def frequency_order(item: Tuple[int, int]) -> Tuple[int, int]:
    symbol, count = item
    return count, symbol


def ordered_frequencies(frequencies: Dict[int, int]) -> List[Tuple[int, int]]:
    """Пары (символ, частота): по возрастанию частоты, затем символа."""
    return sorted(frequencies.items(), key=frequency_order)
