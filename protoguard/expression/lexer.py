"""Tokenizer for rule expressions."""

from dataclasses import dataclass
from typing import Any, Union

from protoguard.errors import ExpressionError

# Multi-character operators, longest first
_OPERATORS = ("==", "!=", "<=", ">=", "&&", "||", "<", ">", "!", "+", "-", "*", "/", "%", "?", ":",
              ".", ",", "(", ")", "[", "]", "{", "}")

_ESCAPES = {
    "a": "\a", "b": "\b", "f": "\f", "n": "\n", "r": "\r", "t": "\t", "v": "\v",
    "\\": "\\", "'": "'", '"': '"', "`": "`", "?": "?",
}

# Identifiers that are not allowed as variable or field names
RESERVED = frozenset({
    "as", "break", "const", "continue", "else", "for", "function", "if", "import",
    "let", "loop", "package", "namespace", "return", "var", "void", "while",
})


@dataclass(frozen=True)
class Token:
    kind: str   # INT, UINT, DOUBLE, STRING, BYTES, IDENT, OP, EOF
    value: Any
    pos: int


class Lexer:
    def __init__(self, text: str):
        self.text = text
        self.length = len(text)
        self.pos = 0

    def _error(self, message: str, pos: int) -> ExpressionError:
        return ExpressionError(message, expression=self.text, position=pos)

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        while True:
            self._skip_space()
            if self.pos >= self.length:
                tokens.append(Token("EOF", None, self.pos))
                return tokens
            tokens.append(self._next())

    def _skip_space(self) -> None:
        while self.pos < self.length:
            ch = self.text[self.pos]
            if ch.isspace():
                self.pos += 1
            elif self.text.startswith("//", self.pos):
                end = self.text.find("\n", self.pos)
                self.pos = self.length if end == -1 else end + 1
            else:
                break

    def _next(self) -> Token:
        ch = self.text[self.pos]
        start = self.pos

        # String prefixes: r"..", b"..", rb"..", br".."
        if ch in "rRbB":
            prefix_end = self.pos
            while prefix_end < self.length and prefix_end - self.pos < 2 and self.text[prefix_end] in "rRbB":
                prefix_end += 1
            prefix = self.text[self.pos:prefix_end].lower()
            if prefix_end < self.length and self.text[prefix_end] in "'\"" and len(set(prefix)) == len(prefix):
                self.pos = prefix_end
                return self._read_string(start, raw="r" in prefix, as_bytes="b" in prefix)

        if ch in "'\"":
            return self._read_string(start, raw=False, as_bytes=False)
        if ch.isdigit() or (ch == "." and self.pos + 1 < self.length and self.text[self.pos + 1].isdigit()):
            return self._read_number(start)
        if ch.isalpha() or ch == "_":
            return self._read_identifier(start)

        for op in _OPERATORS:
            if self.text.startswith(op, self.pos):
                self.pos += len(op)
                return Token("OP", op, start)
        raise self._error(f"unexpected character '{ch}'", start)

    def _read_identifier(self, start: int) -> Token:
        self.pos += 1
        while self.pos < self.length and (self.text[self.pos].isalnum() or self.text[self.pos] == "_"):
            self.pos += 1
        return Token("IDENT", self.text[start:self.pos], start)

    def _read_number(self, start: int) -> Token:
        text = self.text
        if text.startswith(("0x", "0X"), self.pos):
            self.pos += 2
            while self.pos < self.length and text[self.pos] in "0123456789abcdefABCDEF":
                self.pos += 1
            digits = text[start:self.pos]
            if len(digits) == 2:
                raise self._error("malformed hex literal", start)
            return self._int_token(int(digits, 16), start)

        is_double = False
        while self.pos < self.length and text[self.pos].isdigit():
            self.pos += 1
        if self.pos < self.length and text[self.pos] == "." and self.pos + 1 < self.length and text[self.pos + 1].isdigit():
            is_double = True
            self.pos += 1
            while self.pos < self.length and text[self.pos].isdigit():
                self.pos += 1
        if self.pos < self.length and text[self.pos] in "eE":
            exp_end = self.pos + 1
            if exp_end < self.length and text[exp_end] in "+-":
                exp_end += 1
            if exp_end < self.length and text[exp_end].isdigit():
                is_double = True
                self.pos = exp_end
                while self.pos < self.length and text[self.pos].isdigit():
                    self.pos += 1

        literal = text[start:self.pos]
        if is_double:
            return Token("DOUBLE", float(literal), start)
        return self._int_token(int(literal), start)

    def _int_token(self, value: int, start: int) -> Token:
        if self.pos < self.length and self.text[self.pos] in "uU":
            self.pos += 1
            if value > 2**64 - 1:
                raise self._error("uint literal out of range", start)
            return Token("UINT", value, start)
        # 2**63 is accepted here so that unary minus can fold it into int64 min
        if value > 2**63:
            raise self._error("int literal out of range", start)
        return Token("INT", value, start)

    def _read_string(self, start: int, raw: bool, as_bytes: bool) -> Token:
        text = self.text
        quote = text[self.pos]
        triple = text.startswith(quote * 3, self.pos)
        delimiter = quote * 3 if triple else quote
        self.pos += len(delimiter)

        chunks: list[Union[str, bytes]] = []
        while True:
            if self.pos >= self.length:
                raise self._error("unterminated string literal", start)
            if text.startswith(delimiter, self.pos):
                self.pos += len(delimiter)
                break
            ch = text[self.pos]
            if ch == "\n" and not triple:
                raise self._error("newline in string literal", self.pos)
            if ch == "\\" and not raw:
                chunks.append(self._read_escape(as_bytes))
                continue
            chunks.append(ch)
            self.pos += 1

        if as_bytes:
            data = b"".join(c if isinstance(c, bytes) else c.encode("utf-8") for c in chunks)
            return Token("BYTES", data, start)
        return Token("STRING", "".join(chunks), start)

    def _read_escape(self, as_bytes: bool = False) -> Union[str, bytes]:
        """One escape sequence; hex and octal escapes in bytes literals are raw bytes."""
        text = self.text
        esc_pos = self.pos
        self.pos += 1
        if self.pos >= self.length:
            raise self._error("unterminated escape sequence", esc_pos)
        ch = text[self.pos]
        if ch in _ESCAPES:
            self.pos += 1
            return _ESCAPES[ch]
        widths = {"x": 2, "X": 2, "u": 4, "U": 8}
        if ch in widths:
            digits = text[self.pos + 1:self.pos + 1 + widths[ch]]
            if len(digits) != widths[ch] or any(d not in "0123456789abcdefABCDEF" for d in digits):
                raise self._error("malformed escape sequence", esc_pos)
            self.pos += 1 + widths[ch]
            code = int(digits, 16)
            if as_bytes and ch in "xX":
                return bytes([code])
            if code > 0x10FFFF or 0xD800 <= code <= 0xDFFF:
                raise self._error("invalid code point in escape sequence", esc_pos)
            return chr(code)
        if ch in "0123":
            digits = text[self.pos:self.pos + 3]
            if len(digits) != 3 or any(d not in "01234567" for d in digits):
                raise self._error("malformed octal escape", esc_pos)
            self.pos += 3
            if as_bytes:
                return bytes([int(digits, 8)])
            return chr(int(digits, 8))
        raise self._error(f"unknown escape '\\{ch}'", esc_pos)


def tokenize(text: str) -> list[Token]:
    return Lexer(text).tokenize()
