"""Display-ready search results.

Value objects handed to renderers (CLI text, JSON). They carry only
primitives so they serialize without touching the index.
"""

from pydantic import BaseModel, ConfigDict, Field


class SearchHit(BaseModel):
    """One match, rendered from the original source lines.

    ``text`` spans every physical line touched by the match, exactly as
    authored. ``highlight_start``/``highlight_end`` are character offsets of
    the matched tokens inside ``text``.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    file_id: int
    start_line: int
    end_line: int
    start_token: int
    end_token: int
    text: str
    highlight_start: int
    highlight_end: int

    @property
    def highlighted(self) -> str:
        return self.text[self.highlight_start : self.highlight_end]

    def numbered_lines(self) -> list[tuple[int, str]]:
        """Pair each rendered line with its 1-based line number, without line terminators."""
        lines = [line.removesuffix("\r") for line in self.text.split("\n")]
        return list(enumerate(lines, start=self.start_line))


class SearchStats(BaseModel):
    """Counters for one search invocation."""

    model_config = ConfigDict(frozen=True)

    candidates: int
    matches: int
    files_matched: int
    truncated: bool = False
    search_time: float = 0.0


class SearchResponse(BaseModel):
    """All hits for a query, in file then source order."""

    model_config = ConfigDict(frozen=True)

    query: str
    query_tokens: list[str] = Field(default_factory=list)
    results: list[SearchHit] = Field(default_factory=list)
    stats: SearchStats
