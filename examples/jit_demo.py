#!/usr/bin/env python3
"""
Kaleido JIT Demo
================

This script demonstrates how to use the Kaleido engine to:
1. Run Toy definitions and expressions in a session
2. Call a function compiled in an earlier unit
3. Use the runtime output functions
4. Inspect the generated IR
5. Drive the engine directly, without a session

Usage:
    pip install -e .
    python examples/jit_demo.py
"""

import io

from kaleido import Session, SessionOptions, Engine, CodeGenerator, Parser, Lexer


def main():
    # ==========================================================================
    # 1. A session processes one top-level construct at a time
    # ==========================================================================
    print("Running definitions and expressions...")
    session = Session()
    session.run_source("def sq(x) x*x")
    result = session.run_source("sq(4) + 1")
    print(f"  Values: {result.values}")

    # ==========================================================================
    # 2. Later units call earlier ones through declarations
    # ==========================================================================
    session.run_source("def quad(x) sq(sq(x))")
    session.run_source("quad(2)")
    print(f"  Units compiled so far: {len(session.engine.units)}")

    # ==========================================================================
    # 3. Runtime functions write to the session's output
    # ==========================================================================
    print("\nPrinting through putchard/printd...")
    session.run_source(
        "extern putchard(c)\n"
        "extern printd(x)\n"
        "putchard(79) + putchard(75) + putchard(10)\n"
        "printd(quad(3))\n"
    )

    # ==========================================================================
    # 4. Dump IR for every lowered function
    # ==========================================================================
    print("\nGenerated IR...")
    quiet = Session(SessionOptions(dump_ir=True, echo_results=False), output=io.StringIO())
    quiet.run_source("def lerp(a b t) a + (b - a) * t")
    print(quiet.output.getvalue())

    # ==========================================================================
    # 5. The engine can be driven without a session
    # ==========================================================================
    print("Driving the engine directly...")
    engine = Engine()
    gen = CodeGenerator(engine)
    parser = Parser(Lexer("def avg(a b) (a + b) * 0.5"))
    gen.lower(parser.parse_top_level())
    print(f"  avg(3, 8) = {engine.run('avg', 3.0, 8.0)}")


if __name__ == "__main__":
    main()
