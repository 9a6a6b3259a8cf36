"""
Test suite for the Flux engine.

Focus areas:
- Append-only durability and torn-write tolerance
- Identifier ordering
- Reducer determinism and checkpoint equivalence
- Correlation integrity diagnostics
- Replay modes and drift detection
"""
