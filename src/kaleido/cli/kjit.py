"""
kjit - Toy JIT Command-Line Interface
=====================================

This module implements the command-line driver for the Toy language. With
a FILE argument it runs the script; without one it reads standard input,
showing a prompt when standard input is a terminal.

Usage Examples
--------------
Interactive session:
    $ kjit
    ready> def sq(x) x*x
    ready> Read function definition: sq
    ready> sq(4)
    ready> Evaluated to 16.000000

Run a script:
    $ kjit examples/hello.toy

Show generated IR:
    $ kjit --dump-ir script.toy

Print the parsed AST only:
    $ kjit --ast script.toy

Verbose mode (engine debug log on stderr):
    $ kjit -v script.toy
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from kaleido import __version__
from kaleido.cli.errors import ExitCode, handle_cli_exception
from kaleido.toy import Session, SessionOptions
from kaleido.toy.ast import ASTPrinter
from kaleido.toy.parser import parse_source


def setup_logging(verbose: bool) -> None:
    """Route the engine's debug log to stderr in verbose mode."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s: %(name)s: %(message)s",
        )


def print_ast(source: str, filename: str) -> None:
    printer = ASTPrinter()
    for construct in parse_source(source, filename):
        click.echo(printer.print(construct))


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    required=False,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--dump-ir",
    is_flag=True,
    help="Print the LLVM IR of every lowered function",
)
@click.option(
    "--ast",
    is_flag=True,
    help="Print AST and exit (for debugging)",
)
@click.option(
    "-O", "--opt-level",
    type=click.IntRange(0, 3),
    default=2,
    show_default=True,
    help="Optimization level for finalized units",
)
@click.option(
    "--no-optimize",
    is_flag=True,
    help="Skip the optimization pipeline",
)
@click.option(
    "--stop-on-error",
    is_flag=True,
    help="Stop at the first syntax or lowering error",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="kjit")
def main(
    input_file: Optional[Path],
    dump_ir: bool,
    ast: bool,
    opt_level: int,
    no_optimize: bool,
    stop_on_error: bool,
    verbose: bool,
) -> None:
    """
    Run Toy programs with an incremental JIT.

    INPUT_FILE is a Toy source file. Without it, statements are read from
    standard input; a prompt is shown when standard input is a terminal.

    \b
    Examples:
        kjit                        # Interactive prompt
        kjit fib.toy                # Run a script
        kjit --dump-ir fib.toy      # Also print generated IR
        kjit --ast fib.toy          # Parse only, print the AST
        echo "1+2*3" | kjit         # Evaluate from a pipe

    \b
    Language summary:
        def name(a b) expr          # Function definition
        extern name(a)              # Declare an external function
        expr                        # Evaluate immediately
        # comment                   # To end of line
    Operators: < + - * (all values are doubles).
    Runtime functions: putchard(c), printd(x).
    """
    setup_logging(verbose)

    options = SessionOptions(
        optimize=not no_optimize,
        opt_level=opt_level,
        dump_ir=dump_ir,
        stop_on_error=stop_on_error,
    )

    try:
        if ast:
            if input_file is not None:
                source = input_file.read_text(encoding="utf-8")
                print_ast(source, str(input_file))
            else:
                print_ast(sys.stdin.read(), "<stdin>")
            return

        interactive = input_file is None and sys.stdin.isatty()
        session = Session(options, output=sys.stdout, error_output=sys.stderr)

        if input_file is not None:
            if verbose:
                click.echo(f"Running {input_file}...", err=True)
            result = session.run_file(str(input_file))
        else:
            result = session.run_stream(
                sys.stdin,
                "<stdin>",
                interactive=interactive,
            )

        if verbose:
            click.echo(
                f"{len(result.statements)} statement(s), "
                f"{len(session.engine.units)} unit(s), "
                f"{len(result.errors)} error(s)",
                err=True,
            )

        if result.errors and not interactive:
            sys.exit(ExitCode.BUILD_ERROR)

    except SystemExit:
        raise
    except Exception as e:
        handle_cli_exception(e, verbose)


if __name__ == "__main__":
    main()
