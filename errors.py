"""
Типизированные ошибки кодера Хаффмана.

Все они наследуют ValueError: кодер детерминирован, и неудачный вызов
означает некорректный вход, а не временный сбой.
"""


class HuffmanError(ValueError):
    pass


class EmptyInputError(HuffmanError):
    def __init__(self, message: str = "Cannot encode empty input"):
        super().__init__(message)


class UnknownSymbolError(HuffmanError):
    def __init__(self, symbol: int):
        super().__init__(f"Symbol {symbol!r} has no code in the code table")
        self.symbol = symbol


class TruncatedStreamError(HuffmanError):
    pass


class MalformedHeaderError(HuffmanError):
    pass


class UnterminatedCodeError(HuffmanError):
    pass
