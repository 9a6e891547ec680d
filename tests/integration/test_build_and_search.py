"""End-to-end build and search over real files on disk."""

import random

import pytest

from looker.config import Settings
from looker.search.errors import EmptyQueryError
from looker.search.query import compile_query
from looker.search.sqlite_storage import SqliteIndexStore
from looker.service_layer import build_index, search_index


pytestmark = pytest.mark.integration


THREE_LOOPS = """#include <stdio.h>

void countdown(void) {
    for (int i = 0; i < 5; ++i) {
        printf("%d\\n", i);
    }
    for (int i = 0; i < 5; ++i) {
        puts("tick");
    }
\tfor  (int i=0;   i < 5; ++i) {
        /* spacing differs here */
    }
}
"""


@pytest.fixture
def settings():
    return Settings(max_workers=4)


class TestScenarios:
    def test_three_loops_found_with_original_text(self, write_sources, settings):
        root = write_sources({"loops.c": THREE_LOOPS})
        build_index(root, settings=settings)

        response = search_index(root, "for (int i = 0;", settings=settings)

        assert response.stats.matches == 3
        assert [(hit.start_line, hit.end_line) for hit in response.results] == [(4, 4), (7, 7), (10, 10)]
        assert [hit.text for hit in response.results] == [
            "    for (int i = 0; i < 5; ++i) {",
            "    for (int i = 0; i < 5; ++i) {",
            "\tfor  (int i=0;   i < 5; ++i) {",
        ]
        assert response.results[2].highlighted == "for  (int i=0;"

    def test_typo_query_returns_no_matches(self, write_sources, settings):
        root = write_sources({"loops.c": THREE_LOOPS})
        build_index(root, settings=settings)

        response = search_index(root, "fr (int", settings=settings)

        assert response.results == []
        assert response.stats.matches == 0

    def test_unterminated_string_among_ten_files(self, write_sources, settings):
        files = {f"src/mod{n}.c": f"int mod{n}(int x) {{\n    return x + {n};\n}}\n" for n in range(9)}
        files["src/broken.c"] = 'const char *msg = "missing quote;\nint after(void);\n'
        root = write_sources(files)

        report = build_index(root, settings=settings)

        assert report.files_indexed == 9
        assert len(report.skipped) == 1
        assert report.skipped[0].path == "src/broken.c"
        assert report.skipped[0].reason == "lex_error"

        response = search_index(root, "return x +", settings=settings)
        assert response.stats.matches == 9
        assert sorted(hit.path for hit in response.results) == sorted(f"src/mod{n}.c" for n in range(9))
        assert search_index(root, "after", settings=settings).stats.matches == 0

    def test_whitespace_query_rejected_before_index_access(self, tmp_path, settings):
        with pytest.raises(EmptyQueryError):
            search_index(tmp_path / "never-built", "   \n  ", settings=settings)


class TestProperties:
    def test_whitespace_invariance_across_corpus_formatting(self, write_sources, settings):
        compact = write_sources({"a.c": "int f(int a,int b){return a*b+1;}\n"}, root=None)
        spread = write_sources(
            {"a.c": "int\nf ( int a ,\n  int b )\n{\n  return a * /* mult */ b\n    + 1 ;\n}\n"},
            root=compact.parent / "spread",
        )
        build_index(compact, settings=settings)
        build_index(spread, settings=settings)

        for query in ("return a*b+1;", "int b ) {", "f(int a, int"):
            first = search_index(compact, query, settings=settings)
            second = search_index(spread, query, settings=settings)
            assert first.stats.matches == second.stats.matches == 1
            assert first.results[0].start_token == second.results[0].start_token

    def test_rebuild_is_idempotent(self, write_sources, settings):
        root = write_sources(
            {
                "x.c": "int x(void) { return 1; }\n",
                "y/y.c": "int y(void) { return x() + 1; }\n",
                "y/y.h": "int y(void);\n",
            }
        )
        store = SqliteIndexStore(settings.resolve_index_dir(root))

        build_index(root, settings=settings)
        with store.open() as first:
            first_map = {identity: tuple(first.postings(identity)) for identity in first.identities()}
        build_index(root, settings=settings)
        with store.open() as second:
            second_map = {identity: tuple(second.postings(identity)) for identity in second.identities()}

        assert first_map == second_map

    def test_matches_are_sound_and_complete(self, write_sources, settings):
        rng = random.Random(1234)
        vocabulary = ["a", "b", "i", "+", "=", ";", "(", ")", "0", "1", "if", "for"]
        files = {
            f"gen/f{n}.c": "\n".join(
                " ".join(rng.choice(vocabulary) for _ in range(rng.randint(0, 12))) for _ in range(rng.randint(1, 8))
            )
            for n in range(12)
        }
        root = write_sources(files)
        build_index(root, settings=settings)

        store = SqliteIndexStore(settings.resolve_index_dir(root))
        with store.open() as index:
            streams = {
                entry.path: [token.identity for token in index.token_window(entry.file_id, 0, entry.token_count)]
                for entry in index.files()
            }

        for query_text in ("a +", "i = 0 ;", "( a )", "for", "b b", "if ( 1"):
            query = compile_query(query_text)
            width = len(query)
            expected = [
                (path, start)
                for path, identities in sorted(streams.items())
                for start in range(len(identities) - width + 1)
                if identities[start : start + width] == list(query.identities)
            ]
            response = search_index(root, query_text, settings=settings)
            assert [(hit.path, hit.start_token) for hit in response.results] == expected
