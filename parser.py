from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from color import TRANSPARENT, Color
from instruction import (
    Blot,
    Call,
    Comment,
    Face,
    Goto,
    Halt,
    Instruction,
    Jump,
    Move,
    MoveForward,
    MoveRel,
    Noop,
    Repeat,
    Return,
    SetColor,
    Turn,
    format_program,
)
from lexer import Lexer, ParseError, Token
from lsystem import LSystem, Rules


INT_MIN = -(2 ** 31)
INT_MAX = 2 ** 31 - 1
UINT_MAX = 2 ** 32 - 1


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


@dataclass
class Program:
    instructions: List[Instruction]
    labels: Dict[str, int] = field(default_factory=dict)
    locations: List[Optional[SourceLocation]] = field(default_factory=list)
    filename: str = "<string>"

    @classmethod
    def from_instructions(cls, instructions: Sequence[Instruction], filename: str = "<string>") -> "Program":
        insts = list(instructions)
        return cls(instructions=insts, locations=[None] * len(insts), filename=filename)

    def __len__(self) -> int:
        return len(self.instructions)

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.instructions)

    def __getitem__(self, address: int) -> Instruction:
        return self.instructions[address]

    def location_of(self, address: int) -> Optional[SourceLocation]:
        if 0 <= address < len(self.locations):
            return self.locations[address]
        return None

    def to_source(self) -> str:
        return format_program(self.instructions)


# Argument kinds: "int" is a signed 32-bit value, "count" an unsigned one,
# "channel" a color byte and "address" a literal or a label.
_SIGNATURES: Dict[str, Tuple[Tuple[str, ...], Callable[..., Instruction]]] = {
    "NOOP": ((), Noop),
    "RTRN": ((), Return),
    "BLOT": ((), Blot),
    "HALT": ((), Halt),
    "BLNK": ((), lambda: SetColor(TRANSPARENT)),
    "MOVE": (("int", "int"), Move),
    "SHFT": (("int", "int"), MoveRel),
    "WALK": (("int",), MoveForward),
    "FACE": (("int",), Face),
    "TURN": (("int",), Turn),
    "GOTO": (("address",), Goto),
    "CALL": (("address",), Call),
    "JUMP": (("int",), Jump),
    "LOOP": (("address", "count"), Repeat),
    "RGBA": (("channel",) * 4, lambda r, g, b, a: SetColor(Color(r, g, b, a))),
    "RGB": (("channel",) * 3, lambda r, g, b: SetColor(Color(r, g, b, 255))),
}


class Parser:
    def __init__(self, tokens: List[Token], filename: str, source_lines: List[str]) -> None:
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines
        self.index = 0

    # ---- programs ----

    def parse_program(self) -> Program:
        symbols = self._scan_labels()
        instructions: List[Instruction] = []
        locations: List[Optional[SourceLocation]] = []
        while True:
            self._consume_newlines()
            token = self._peek()
            if token.type == "EOF":
                break
            instructions.append(self._parse_instruction(symbols))
            locations.append(self._location_from_token(token))
            self._match("LABEL")
            end = self._peek()
            if end.type not in ("NEWLINE", "EOF"):
                raise self._error(f"Unexpected {end.type.lower()} '{end.value}' after instruction", end)
        return Program(instructions=instructions, labels=symbols, locations=locations, filename=self.filename)

    def _scan_labels(self) -> Dict[str, int]:
        symbols: Dict[str, int] = {}
        address = 0
        line_has_content = False
        for token in self.tokens:
            if token.type in ("NEWLINE", "EOF"):
                if line_has_content:
                    address += 1
                line_has_content = False
                continue
            line_has_content = True
            if token.type == "LABEL":
                if token.value in symbols:
                    raise self._error(f"Duplicate label '{token.value}'", token)
                symbols[token.value] = address
        return symbols

    # ---- L-systems ----

    def parse_lsystem(self) -> LSystem:
        self._consume_keyword("seed")
        seed = self._parse_instruction_block()
        aliases: Optional[Rules] = None
        if self._peek_keyword("aliases"):
            self._consume_keyword("aliases")
            self._consume("LBRACE")
            aliases = {}
            while self._peek().type != "RBRACE":
                self._parse_rule_into(aliases, "alias")
            self._consume("RBRACE")
        rules: Rules = {}
        self._parse_rule_into(rules, "rule")
        while self._peek().type != "EOF":
            self._parse_rule_into(rules, "rule")
        return LSystem(seed=seed, rules=rules, aliases=aliases)

    def _parse_rule_into(self, rules: Rules, kind: str) -> None:
        token = self._peek()
        key = self._parse_instruction(None)
        if key in rules:
            raise self._error(f"Duplicate {kind} for '{key}'", token)
        rules[key] = self._parse_instruction_block()

    def _parse_instruction_block(self) -> List[Instruction]:
        self._consume("LBRACE")
        body: List[Instruction] = []
        while self._peek().type != "RBRACE":
            body.append(self._parse_instruction(None))
        self._consume("RBRACE")
        return body

    def _peek_keyword(self, word: str) -> bool:
        token = self._peek()
        return token.type == "IDENT" and token.value.lower() == word

    def _consume_keyword(self, word: str) -> Token:
        token = self._peek()
        if not self._peek_keyword(word):
            raise self._error(f"Expected '{word}' but found {token.type.lower()} '{token.value}'", token)
        self.index += 1
        return token

    # ---- instructions ----

    def _parse_instruction(self, symbols: Optional[Dict[str, int]]) -> Instruction:
        token = self._peek()
        if token.type == "COMMENT" or token.type == "CHAR":
            self.index += 1
            return Comment(token.value)
        if token.type != "IDENT":
            raise self._error(f"Expected instruction but found {token.type.lower()} '{token.value}'", token)
        mnemonic = token.value.upper()
        signature = _SIGNATURES.get(mnemonic)
        if signature is None:
            raise self._error(f"Unknown instruction '{token.value}'", token)
        self.index += 1
        kinds, build = signature
        args = [self._parse_argument(kind, mnemonic, symbols) for kind in kinds]
        return build(*args)

    def _parse_argument(self, kind: str, mnemonic: str, symbols: Optional[Dict[str, int]]) -> int:
        token = self._peek()
        if kind == "address" and token.type == "IDENT":
            if symbols is None:
                raise self._error(f"{mnemonic} cannot refer to label '{token.value}' here", token)
            if token.value not in symbols:
                raise self._error(f"Undefined label '{token.value}'", token)
            self.index += 1
            return symbols[token.value]
        if token.type != "NUMBER":
            raise self._error(f"{mnemonic} expects a number but found {token.type.lower()} '{token.value}'", token)
        self.index += 1
        value = int(token.value)
        if kind == "int":
            low, high = INT_MIN, INT_MAX
        elif kind == "channel":
            low, high = 0, 255
        else:
            low, high = 0, UINT_MAX
        if value < low or value > high:
            raise self._error(f"{mnemonic} argument {value} is outside [{low}, {high}]", token)
        return value

    # ---- token helpers ----

    def _consume(self, token_type: str) -> Token:
        token = self._peek()
        if token.type != token_type:
            raise self._error(f"Expected token {token_type} but found {token.type}", token)
        self.index += 1
        return token

    def _match(self, token_type: str) -> bool:
        if self._peek().type == token_type:
            self.index += 1
            return True
        return False

    def _consume_newlines(self) -> None:
        while self._match("NEWLINE"):
            continue

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _error(self, message: str, token: Token) -> ParseError:
        return ParseError(
            f"{message} at {self.filename}:{token.line}:{token.column}",
            line=token.line,
            column=token.column,
        )

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_index = token.line - 1
        statement = ""
        if 0 <= line_index < len(self.source_lines):
            statement = self.source_lines[line_index].strip()
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=statement)


def parse_program(text: str, filename: str = "<string>") -> Program:
    tokens = Lexer(text, filename).tokenize()
    return Parser(tokens, filename, text.splitlines()).parse_program()


def parse_instruction(text: str) -> Instruction:
    """Parse a single instruction with no label table."""
    tokens = Lexer(text, "<string>").tokenize()
    parser = Parser(tokens, "<string>", text.splitlines())
    parser._consume_newlines()
    inst = parser._parse_instruction(None)
    parser._consume_newlines()
    parser._consume("EOF")
    return inst


def parse_lsystem(text: str, filename: str = "<string>") -> LSystem:
    tokens = Lexer(text, filename, emit_newlines=False).tokenize()
    return Parser(tokens, filename, text.splitlines()).parse_lsystem()
