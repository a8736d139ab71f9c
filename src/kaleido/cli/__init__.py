"""
Kaleido Command-Line Interface
==============================

- **kjit**: Toy REPL and script runner

Implemented as a Click application with unified error reporting.
"""

__all__ = ["kjit"]
