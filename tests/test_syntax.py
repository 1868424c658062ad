import json
import unittest

from bf2py.syntax import (
    Executable,
    Instruction,
    Loop,
    Program,
    Repeated,
    UnbalancedBracketError,
    dump_program_json,
    expand,
    load_program_json,
    match_brackets,
    parse_program,
    program_from_dict,
    program_to_dict,
    segment,
    tokenize,
    tokenize_repeated,
    walk_tokens,
)

ADD = Instruction.VALUE_ADD
SUB = Instruction.VALUE_SUB
RIGHT = Instruction.POINTER_ADD
LEFT = Instruction.POINTER_SUB
READ = Instruction.READ
WRITE = Instruction.WRITE
OPEN = Instruction.LOOP_START
CLOSE = Instruction.LOOP_END

SAMPLES = [
    "",
    "hello, world.",
    "+++.",
    "++++++++[>++++[>++>+++>+++>+<<<<-]>+>+>->>+[<]<-]>>.>---.+++++++..+++.",
    ",,,>>><<<---[[[]]]...",
    "[-][-]+-+-",
    "+[>+<-]\n# comment with + and - inside\n>.",
]


def _loop_depth(item) -> int:
    depth = 0
    while isinstance(item, Loop):
        depth += 1
        item = item.body[0] if item.body else None
    return depth


class TokenizerTests(unittest.TestCase):
    def test_drops_non_instruction_characters(self) -> None:
        self.assertEqual(tokenize("a+b-\n.x"), [ADD, SUB, WRITE])

    def test_text_without_instructions_is_empty(self) -> None:
        self.assertEqual(tokenize("just a comment"), [])
        self.assertEqual(tokenize_repeated("just a comment"), [])

    def test_bare_tokens_report_count_of_one(self) -> None:
        token = tokenize(">")[0]
        self.assertIs(token.instruction, RIGHT)
        self.assertEqual(token.count, 1)

    def test_run_length_merges_identical_neighbours(self) -> None:
        tokens = tokenize_repeated("+++>>--.<")
        self.assertEqual(
            tokens,
            [Repeated(ADD, 3), Repeated(RIGHT, 2), Repeated(SUB, 2), Repeated(WRITE, 1), Repeated(LEFT, 1)],
        )

    def test_run_length_never_merges_brackets_or_reads(self) -> None:
        tokens = tokenize_repeated("[[,,]]")
        self.assertEqual(
            tokens,
            [
                Repeated(OPEN, 1),
                Repeated(OPEN, 1),
                Repeated(READ, 1),
                Repeated(READ, 1),
                Repeated(CLOSE, 1),
                Repeated(CLOSE, 1),
            ],
        )

    def test_comments_between_repeats_do_not_split_runs(self) -> None:
        self.assertEqual(tokenize_repeated("+ + +\n+"), [Repeated(ADD, 4)])

    def test_expanding_compressed_tokens_restores_sequence(self) -> None:
        for sample in SAMPLES:
            with self.subTest(sample=sample):
                self.assertEqual(expand(tokenize_repeated(sample)), tokenize(sample))

    def test_repeated_rejects_zero_count(self) -> None:
        with self.assertRaises(ValueError):
            Repeated(ADD, 0)


class BracketMatchingTests(unittest.TestCase):
    def test_maps_both_directions(self) -> None:
        self.assertEqual(match_brackets("a[b[]]"), {1: 5, 5: 1, 3: 4, 4: 3})

    def test_unmatched_close(self) -> None:
        with self.assertRaises(UnbalancedBracketError) as ctx:
            match_brackets("+]")
        self.assertIn("position 1", str(ctx.exception))

    def test_unmatched_open(self) -> None:
        with self.assertRaises(UnbalancedBracketError):
            match_brackets("[[]")


class StructurerTests(unittest.TestCase):
    def test_straight_line_program_is_one_block(self) -> None:
        self.assertEqual(segment(tokenize("+++.")), [Executable((ADD, ADD, ADD, WRITE))])

    def test_loop_between_blocks(self) -> None:
        segments = segment(tokenize_repeated("++[->+<]."))
        self.assertEqual(
            segments,
            [
                Executable((Repeated(ADD, 2),)),
                Loop(
                    (
                        Executable(
                            (Repeated(SUB, 1), Repeated(RIGHT, 1), Repeated(ADD, 1), Repeated(LEFT, 1))
                        ),
                    )
                ),
                Executable((Repeated(WRITE, 1),)),
            ],
        )

    def test_empty_loop_has_empty_body(self) -> None:
        self.assertEqual(segment(tokenize("[]")), [Loop(())])

    def test_sibling_loops(self) -> None:
        self.assertEqual(
            segment(tokenize("[-][+]")),
            [Loop((Executable((SUB,)),)), Loop((Executable((ADD,)),))],
        )

    def test_deep_nesting(self) -> None:
        segments = segment(tokenize("[[[.]]]+"))
        self.assertEqual(
            segments,
            [Loop((Loop((Loop((Executable((WRITE,)),)),)),)), Executable((ADD,))],
        )

    def test_nested_loop_followed_by_code_inside_body(self) -> None:
        segments = segment(tokenize("[[-]>]"))
        self.assertEqual(
            segments,
            [Loop((Loop((Executable((SUB,)),)), Executable((RIGHT,))))],
        )

    def test_structuring_preserves_instruction_order(self) -> None:
        for sample in SAMPLES:
            with self.subTest(sample=sample):
                program = parse_program(sample)
                flattened = expand(walk_tokens(program.segments))
                expected = [token for token in tokenize(sample) if token not in (OPEN, CLOSE)]
                self.assertEqual(flattened, expected)

    def test_dangling_open_swallows_the_rest(self) -> None:
        self.assertEqual(segment(tokenize("+[-.")), [Executable((ADD,)), Loop((Executable((SUB, WRITE)),))])

    def test_dangling_close_truncates_level(self) -> None:
        self.assertEqual(segment(tokenize("+]-")), [Executable((ADD,))])

    def test_nesting_deeper_than_recursion_limit(self) -> None:
        depth = 2000
        program = parse_program("+" + "[" * depth + "-," + "]" * depth + ".", strict=True)
        self.assertTrue(program.needs_input)
        self.assertEqual(_loop_depth(program.segments[1]), depth)
        self.assertEqual(program.segments[2], Executable((Repeated(WRITE, 1),)))
        self.assertEqual(expand(walk_tokens(program.segments)), [ADD, SUB, READ, WRITE])

        decoded = program_from_dict(program_to_dict(program))
        self.assertEqual(_loop_depth(decoded.segments[1]), depth)
        self.assertEqual(list(walk_tokens(decoded.segments)), list(walk_tokens(program.segments)))

    def test_dangling_opens_at_depth(self) -> None:
        segments = segment(tokenize("[" * 1500 + "+"))
        self.assertEqual(len(segments), 1)
        self.assertEqual(_loop_depth(segments[0]), 1500)

    def test_strict_parse_rejects_unbalanced(self) -> None:
        with self.assertRaises(UnbalancedBracketError):
            parse_program("+]-", strict=True)
        with self.assertRaises(UnbalancedBracketError):
            Program.parse("[", strict=True)


class NeedsInputTests(unittest.TestCase):
    def test_flag_tracks_reads_at_any_depth(self) -> None:
        cases = {
            "+.": False,
            ",": True,
            "[[[,]]]": True,
            "comma , in text": True,
            "[[[.]]]": False,
        }
        for code, expected in cases.items():
            with self.subTest(code=code):
                self.assertIs(parse_program(code).needs_input, expected)
                self.assertIs(parse_program(code, repeated=False).needs_input, expected)


class InterchangeTests(unittest.TestCase):
    def test_dict_round_trip_compressed(self) -> None:
        program = parse_program("++[->>+<<]>>.,")
        self.assertEqual(program_from_dict(program_to_dict(program)), program)

    def test_dict_round_trip_bare_tokens(self) -> None:
        program = parse_program("+[[]-]", repeated=False)
        decoded = program_from_dict(program_to_dict(program))
        self.assertEqual(decoded, program)
        self.assertIsInstance(decoded.segments[0].tokens[0], Instruction)

    def test_document_shape(self) -> None:
        data = program_to_dict(parse_program("+++[.]"))
        self.assertEqual(
            data,
            {
                "needs_input": False,
                "segments": [
                    {"kind": "executable", "tokens": [{"instruction": "+", "count": 3}]},
                    {
                        "kind": "loop",
                        "body": [{"kind": "executable", "tokens": [{"instruction": ".", "count": 1}]}],
                    },
                ],
            },
        )

    def test_json_round_trip(self) -> None:
        program = parse_program(SAMPLES[3])
        text = dump_program_json(program)
        self.assertEqual(json.loads(text)["needs_input"], False)
        self.assertEqual(load_program_json(text), program)

    def test_malformed_documents_raise(self) -> None:
        bad_documents = [
            {},
            {"segments": [{"kind": "branch"}]},
            {"segments": [{"kind": "executable", "tokens": ["x"]}]},
            {"segments": [{"kind": "executable", "tokens": [{"instruction": "+", "count": "3"}]}]},
            {"segments": [{"kind": "executable", "tokens": [{"instruction": "+", "count": 0}]}]},
        ]
        for document in bad_documents:
            with self.subTest(document=document):
                with self.assertRaises(ValueError):
                    program_from_dict(document)


if __name__ == "__main__":
    unittest.main()
