"""
Token indexing and query engine package.

This package provides the C token search stack:
- lexer: C tokenizer producing position-tagged tokens
- models: Tokens, positions, fingerprints and postings
- builder: Parallel per-file tokenization and posting map assembly
- index: In-memory index and the reader protocol shared with storage
- sqlite_storage: SQLite-based index artifact
- query: Query compilation
- engine: Candidate lookup, verification and rendering
"""
