"""Tests for lp_blocks.py — SEARCH/REPLACE extraction from AI output."""

from lp_blocks import (
    DeleteBlock,
    EditBlock,
    extract_file_path,
    parse_blocks,
    parse_delete,
    parse_search_replace,
)


class TestSearchReplace:
    def test_bracketed_path(self):
        text = (
            "Fixing the bug:\n"
            "<<<<<<< SEARCH [src/app.js]\n"
            "return 1;\n"
            "=======\n"
            "return 2;\n"
            ">>>>>>> REPLACE\n"
        )
        assert parse_search_replace(text) == [EditBlock("src/app.js", "return 1;", "return 2;")]

    def test_bare_path_and_line_range(self):
        text = "<<<<<<< SEARCH src/app.js 3-5\na\n=======\nb\n>>>>>>> REPLACE"
        [block] = parse_search_replace(text)
        assert block.file == "src/app.js"
        assert block.search == "a"

    def test_bracketed_path_with_range(self):
        text = "<<<<<<< SEARCH [lib/x.ts] 10-20\na\n=======\nb\n>>>>>>> REPLACE"
        [block] = parse_search_replace(text)
        assert block.file == "lib/x.ts"

    def test_no_path(self):
        [block] = parse_search_replace("<<<<<<< SEARCH\na\n=======\nb\n>>>>>>> REPLACE\n")
        assert block.file is None

    def test_long_delimiters(self):
        text = "<<<<<<<<<< SEARCH\na\n==========\nb\n>>>>>>>>>> REPLACE\n"
        [block] = parse_search_replace(text)
        assert (block.search, block.replace) == ("a", "b")

    def test_multi_line_blocks_keep_indentation(self):
        text = (
            "<<<<<<< SEARCH\n"
            "if (x) {\n"
            "  go();\n"
            "}\n"
            "=======\n"
            "if (y) {\n"
            "  go();\n"
            "}\n"
            ">>>>>>> REPLACE\n"
        )
        [block] = parse_search_replace(text)
        assert block.search == "if (x) {\n  go();\n}"
        assert block.replace == "if (y) {\n  go();\n}"

    def test_empty_replace_is_removal(self):
        text = "<<<<<<< SEARCH [a.js]\nfoo();\n=======\n>>>>>>> REPLACE\n"
        [block] = parse_search_replace(text)
        assert block.replace == ""
        assert block.is_removal

    def test_truncated_block_runs_to_end(self):
        text = "<<<<<<< SEARCH [a.js]\nfoo();\n=======\nbar();\n"
        [block] = parse_search_replace(text)
        assert block.replace == "bar();"

    def test_crlf_input(self):
        text = "<<<<<<< SEARCH\r\na\r\n=======\r\nb\r\n>>>>>>> REPLACE\r\n"
        [block] = parse_search_replace(text)
        assert (block.search, block.replace) == ("a", "b")

    def test_several_blocks_in_order(self):
        text = (
            "<<<<<<< SEARCH [a.js]\none\n=======\n1\n>>>>>>> REPLACE\n"
            "and then\n"
            "<<<<<<< SEARCH [b.js]\ntwo\n=======\n2\n>>>>>>> REPLACE\n"
        )
        blocks = parse_search_replace(text)
        assert [(b.file, b.search, b.replace) for b in blocks] == [
            ("a.js", "one", "1"),
            ("b.js", "two", "2"),
        ]

    def test_markers_must_start_the_line(self):
        text = "say <<<<<<< SEARCH\na\n=======\nb\n>>>>>>> REPLACE"
        assert parse_search_replace(text) == []


class TestDelete:
    def test_delete_directive(self):
        text = "<<<<<<< DELETE [old.js]\n>>>>>>> END\n"
        assert parse_delete(text) == [DeleteBlock("old.js")]

    def test_no_directive(self):
        assert parse_delete("nothing here") == []


class TestFileAnnotation:
    def test_line_comment(self):
        assert extract_file_path("// FILE: src/a.js\nconst a = 1;") == "src/a.js"

    def test_hash_comment_with_overwrite(self):
        assert extract_file_path("# FILE: b.py [OVERWRITE]\nx = 1") == "b.py"

    def test_html_comment(self):
        assert extract_file_path("<!-- FILE: index.html -->") == "index.html"

    def test_none(self):
        assert extract_file_path("no annotation") is None


class TestParseBlocks:
    BLOCK = "<<<<<<< SEARCH\nx\n=======\ny\n>>>>>>> REPLACE\n"

    def test_annotation_fills_missing_path(self):
        [block] = parse_blocks("// FILE: src/a.js\n" + self.BLOCK)
        assert block.file == "src/a.js"

    def test_default_file(self):
        [block] = parse_blocks(self.BLOCK, default_file="main.js")
        assert block.file == "main.js"

    def test_own_path_wins(self):
        text = "// FILE: src/a.js\n<<<<<<< SEARCH [b.js]\nx\n=======\ny\n>>>>>>> REPLACE\n"
        [block] = parse_blocks(text, default_file="main.js")
        assert block.file == "b.js"
