from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional


class PenError(Exception):
    """Base class for penplot errors."""


class ParseError(PenError):
    """Raised when parsing fails."""

    def __init__(self, message: str, *, line: Optional[int] = None, column: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column


@dataclass
class Token:
    type: str
    value: str
    line: int
    column: int


SYMBOLS = {
    "{": "LBRACE",
    "}": "RBRACE",
}

DIGITS = "0123456789"
IDENT_START = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ_"
IDENT_PART = IDENT_START + DIGITS


def is_identifier(text: str) -> bool:
    return bool(text) and text[0] in IDENT_START and all(ch in IDENT_PART for ch in text)


class Lexer:
    def __init__(self, text: str, filename: str, *, emit_newlines: bool = True) -> None:
        self.text = text
        self.filename = filename
        self.emit_newlines = emit_newlines
        self.index = 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        _advance = self._advance
        symbols = SYMBOLS
        text = self.text
        n = len(text)

        while self.index < n:
            ch: str = text[self.index]
            if ch == " " or ch == "\t" or ch == "\r":
                _advance()
                continue
            if ch == "\n":
                if self.emit_newlines:
                    tokens_append(Token("NEWLINE", "\n", self.line, self.column))
                _advance()
                continue
            if ch == ";":
                tokens_append(self._consume_comment())
                continue
            if ch == "@":
                tokens_append(self._consume_label())
                continue
            if ch == "<":
                tokens_append(self._consume_char())
                continue
            if ch in symbols:
                tokens_append(Token(symbols[ch], ch, self.line, self.column))
                _advance()
                continue
            if ch == "-" or ch in DIGITS:
                tokens_append(self._consume_number())
                continue
            if ch in IDENT_START:
                tokens_append(self._consume_identifier())
                continue
            raise ParseError(
                f"Unexpected character '{ch}' at {self.filename}:{self.line}:{self.column}",
                line=self.line,
                column=self.column,
            )
        tokens_append(Token("EOF", "", self.line, self.column))
        return tokens

    def _consume_comment(self) -> Token:
        # Comments stop at a label marker so a commented line can still be labeled.
        line, col = self.line, self.column
        self._advance()  # consume ';'
        start = self.index
        text = self.text
        n = len(text)
        while self.index < n and text[self.index] not in "@\n":
            self._advance()
        return Token("COMMENT", text[start:self.index].strip(), line, col)

    def _consume_label(self) -> Token:
        line, col = self.line, self.column
        self._advance()  # consume '@'
        start = self.index
        text = self.text
        n = len(text)
        while self.index < n and text[self.index] != "\n":
            self._advance()
        name = text[start:self.index].strip()
        if not is_identifier(name):
            raise ParseError(
                f"Invalid label '{name}' at {self.filename}:{line}:{col}",
                line=line,
                column=col,
            )
        return Token("LABEL", name, line, col)

    def _consume_char(self) -> Token:
        line, col = self.line, self.column
        text = self.text
        if self.index + 2 >= len(text) or text[self.index + 1] == "\n" or text[self.index + 2] != ">":
            raise ParseError(
                f"Expected single-character comment '<c>' at {self.filename}:{line}:{col}",
                line=line,
                column=col,
            )
        value = text[self.index + 1]
        self._advance()
        self._advance()
        self._advance()
        return Token("CHAR", value, line, col)

    def _consume_number(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        if self._peek() == "-":
            chars.append("-")
            self._advance()
        text = self.text
        n = len(text)
        while self.index < n and text[self.index] in DIGITS:
            chars.append(text[self.index])
            self._advance()
        if chars == ["-"]:
            raise ParseError(
                f"Expected digits after '-' at {self.filename}:{line}:{col}",
                line=line,
                column=col,
            )
        if self.index < n and text[self.index] in IDENT_START:
            raise ParseError(
                f"Malformed number at {self.filename}:{line}:{col}",
                line=line,
                column=col,
            )
        return Token("NUMBER", "".join(chars), line, col)

    def _consume_identifier(self) -> Token:
        line, col = self.line, self.column
        start = self.index
        text = self.text
        n = len(text)
        while self.index < n and text[self.index] in IDENT_PART:
            self._advance()
        return Token("IDENT", text[start:self.index], line, col)

    def _peek(self) -> str:
        return self.text[self.index]

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1
