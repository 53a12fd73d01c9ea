import pytest

from color import TRANSPARENT, Color
from instruction import (
    Blot,
    Call,
    Comment,
    Face,
    Goto,
    Halt,
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
from lexer import Lexer, ParseError
from parser import parse_instruction, parse_lsystem, parse_program

ALL_INSTRUCTIONS = [
    Noop(),
    Move(3, -4),
    MoveRel(-1, 2),
    MoveForward(10),
    Face(90),
    Turn(-45),
    SetColor(Color(1, 2, 3, 4)),
    SetColor(TRANSPARENT),
    SetColor(Color(255, 255, 255, 255)),
    Blot(),
    Comment("draw the trunk"),
    Comment(""),
    Goto(7),
    Jump(-1),
    Call(0),
    Return(),
    Repeat(2, 5),
    Halt(),
]


class TestLexer:
    def test_token_types(self) -> None:
        tokens = Lexer("MOVE -3 4 @start\n; note\n<F> { }", "<t>").tokenize()
        assert [t.type for t in tokens] == [
            "IDENT", "NUMBER", "NUMBER", "LABEL", "NEWLINE",
            "COMMENT", "NEWLINE",
            "CHAR", "LBRACE", "RBRACE", "EOF",
        ]
        assert tokens[3].value == "start"
        assert tokens[5].value == "note"
        assert tokens[7].value == "F"

    def test_newlines_suppressed(self) -> None:
        tokens = Lexer("WALK 1\nTURN 2\n", "<t>", emit_newlines=False).tokenize()
        assert "NEWLINE" not in [t.type for t in tokens]

    def test_unexpected_character(self) -> None:
        with pytest.raises(ParseError) as info:
            Lexer("MOVE 1 2\nWALK 1.5", "prog.pen").tokenize()
        assert info.value.line == 2
        assert "prog.pen:2" in str(info.value)

    def test_bad_label(self) -> None:
        with pytest.raises(ParseError):
            Lexer("NOOP @ two words", "<t>").tokenize()


class TestProgramParsing:
    def test_every_mnemonic(self) -> None:
        source = "\n".join([
            "NOOP",
            "MOVE 1 2",
            "SHFT -1 -2",
            "WALK 5",
            "FACE 90",
            "TURN -30",
            "RGBA 1 2 3 4",
            "RGB 9 8 7",
            "BLNK",
            "BLOT",
            "; just a comment",
            "GOTO 3",
            "JUMP -2",
            "CALL 0",
            "RTRN",
            "LOOP 1 4",
            "HALT",
        ])
        program = parse_program(source)
        assert program.instructions == [
            Noop(),
            Move(1, 2),
            MoveRel(-1, -2),
            MoveForward(5),
            Face(90),
            Turn(-30),
            SetColor(Color(1, 2, 3, 4)),
            SetColor(Color(9, 8, 7, 255)),
            SetColor(TRANSPARENT),
            Blot(),
            Comment("just a comment"),
            Goto(3),
            Jump(-2),
            Call(0),
            Return(),
            Repeat(1, 4),
            Halt(),
        ]

    def test_mnemonics_are_case_insensitive(self) -> None:
        program = parse_program("walk 3\nTuRn 90\nhalt")
        assert program.instructions == [MoveForward(3), Turn(90), Halt()]

    def test_labels_resolve_forward_and_backward(self) -> None:
        source = "\n".join([
            "CALL square",
            "HALT",
            "WALK 10 @square",
            "TURN 90",
            "RTRN",
            "GOTO square",
        ])
        program = parse_program(source)
        assert program.labels == {"square": 2}
        assert program.instructions[0] == Call(2)
        assert program.instructions[5] == Goto(2)

    def test_label_on_comment_line(self) -> None:
        program = parse_program("NOOP\n; loop body @ body\nLOOP body 2")
        assert program.instructions[1] == Comment("loop body")
        assert program.instructions[2] == Repeat(1, 2)

    def test_unresolved_label_fails_whole_parse(self) -> None:
        with pytest.raises(ParseError) as info:
            parse_program("WALK 1\nGOTO nowhere")
        assert info.value.line == 2
        assert "nowhere" in info.value.message

    def test_duplicate_label(self) -> None:
        with pytest.raises(ParseError):
            parse_program("NOOP @a\nNOOP @a")

    def test_blank_lines_are_skipped(self) -> None:
        program = parse_program("\n  \nWALK 1\n\nHALT @end\n\n")
        assert program.instructions == [MoveForward(1), Halt()]
        assert program.labels == {"end": 1}
        assert program.locations[1].line == 5

    def test_unknown_mnemonic(self) -> None:
        with pytest.raises(ParseError) as info:
            parse_program("WALK 1\nFLY 2")
        assert info.value.line == 2

    def test_missing_argument(self) -> None:
        with pytest.raises(ParseError):
            parse_program("MOVE 1\nHALT")

    def test_trailing_garbage(self) -> None:
        with pytest.raises(ParseError):
            parse_program("NOOP 5")

    def test_color_channel_out_of_range(self) -> None:
        with pytest.raises(ParseError):
            parse_program("RGBA 0 0 0 256")
        with pytest.raises(ParseError):
            parse_program("RGB -1 0 0")

    def test_integer_overflow(self) -> None:
        with pytest.raises(ParseError):
            parse_program("WALK 2147483648")
        assert parse_program("WALK -2147483648").instructions == [MoveForward(-2147483648)]

    def test_negative_address(self) -> None:
        with pytest.raises(ParseError):
            parse_program("GOTO -1")

    def test_single_char_comment(self) -> None:
        assert parse_program("<X>").instructions == [Comment("X")]

    def test_locations_carry_statement_text(self) -> None:
        program = parse_program("WALK 1\n  TURN 90   @t", "shape.pen")
        location = program.location_of(1)
        assert location.file == "shape.pen"
        assert location.line == 2
        assert location.statement == "TURN 90   @t"
        assert program.location_of(5) is None


class TestRoundTrip:
    @pytest.mark.parametrize("inst", ALL_INSTRUCTIONS, ids=str)
    def test_print_then_parse(self, inst) -> None:
        assert parse_instruction(str(inst)) == inst

    @pytest.mark.parametrize("source", ["< >", "<@>", "<\t>", "<X>"])
    def test_placeholders_survive_printing(self, source: str) -> None:
        inst = parse_instruction(source)
        assert inst == Comment(source[1])
        assert parse_instruction(str(inst)) == inst

    def test_unaliased_placeholders_in_generated_program(self) -> None:
        system = parse_lsystem("seed { <@> } <@> { WALK 1 <@> < > }")
        code = system.run(1)
        assert parse_program(format_program(code)).instructions == code

    def test_whole_program(self) -> None:
        text = format_program(ALL_INSTRUCTIONS)
        assert parse_program(text).instructions == ALL_INSTRUCTIONS
        assert parse_program(text).to_source() == text


class TestLSystemParsing:
    def test_seed_and_rules(self) -> None:
        system = parse_lsystem("""
            seed { WALK 1 }
            WALK 1 {
                WALK 1
                TURN 90
                WALK 1
            }
        """)
        assert system.seed == [MoveForward(1)]
        assert system.rules == {MoveForward(1): [MoveForward(1), Turn(90), MoveForward(1)]}
        assert system.aliases is None

    def test_aliases_and_placeholders(self) -> None:
        system = parse_lsystem(
            "SEED { <X> }\n"
            "aliases { <X> { WALK 2 } <Y> { TURN 90 } }\n"
            "<X> { <X> <Y> <X> }\n"
            "<Y> { <Y> }\n"
        )
        assert system.seed == [Comment("X")]
        assert system.aliases == {Comment("X"): [MoveForward(2)], Comment("Y"): [Turn(90)]}
        assert system.rules[Comment("X")] == [Comment("X"), Comment("Y"), Comment("X")]

    def test_empty_blocks(self) -> None:
        system = parse_lsystem("seed { } BLOT { }")
        assert system.seed == []
        assert system.rules == {Blot(): []}

    def test_requires_a_rule(self) -> None:
        with pytest.raises(ParseError):
            parse_lsystem("seed { WALK 1 }")

    def test_labels_not_allowed(self) -> None:
        with pytest.raises(ParseError):
            parse_lsystem("seed { GOTO start } WALK 1 { WALK 1 }")

    def test_numeric_addresses_allowed(self) -> None:
        system = parse_lsystem("seed { CALL 3 } BLOT { LOOP 0 2 }")
        assert system.seed == [Call(3)]
        assert system.rules[Blot()] == [Repeat(0, 2)]

    def test_duplicate_rule(self) -> None:
        with pytest.raises(ParseError):
            parse_lsystem("seed { BLOT } BLOT { NOOP } BLOT { HALT }")

    def test_unclosed_block(self) -> None:
        with pytest.raises(ParseError):
            parse_lsystem("seed { WALK 1 } WALK 1 { TURN 90")
