# =============================================================================
# test_engine.py - Incremental Engine Tests
# =============================================================================
# Tests for the unit history, the function registry, finalization and
# symbol resolution.
#
# Test coverage includes:
#   - Opening/closing units and the one-open-unit rule
#   - Cross-unit calls through forward declarations
#   - Finalize-and-run of anonymous expressions
#   - Runtime symbols and fatal resolution failures
#   - Name sanitizing
# =============================================================================

import io

import pytest

from kaleido.errors import EngineStateError, FatalSymbolError
from kaleido.toy.lexer import Lexer
from kaleido.toy.parser import Parser
from kaleido.toy.codegen import CodeGenerator
from kaleido.toy.engine import Engine, EngineOptions
from kaleido.toy.runtime import Runtime


# =============================================================================
# Helper Functions
# =============================================================================

def make_engine(**kwargs) -> tuple[Engine, CodeGenerator]:
    engine = Engine(EngineOptions(**kwargs))
    return engine, CodeGenerator(engine)


def lower(gen: CodeGenerator, source: str):
    """Lower every construct in source, returning the last handle."""
    parser = Parser(Lexer(source, "<test>"))
    handle = None
    while not parser.at_end():
        handle = gen.lower(parser.parse_top_level())
    return handle


def evaluate(engine: Engine, gen: CodeGenerator, source: str) -> float:
    """Lower a bare expression and run it."""
    return engine.finalize_and_run(lower(gen, source))


# =============================================================================
# Unit Lifecycle Tests
# =============================================================================

class TestUnits:

    def test_no_unit_initially(self):
        engine, _ = make_engine()
        assert engine.units == []
        assert engine.open_unit is None

    def test_open_unit_reused_until_finalized(self):
        engine, gen = make_engine()
        lower(gen, "def a(x) x")
        lower(gen, "def b(x) x")
        assert len(engine.units) == 1
        assert engine.open_unit_for_definition() is engine.units[0]

    def test_finalize_closes_unit(self):
        engine, gen = make_engine()
        lower(gen, "def a(x) x")
        executable = engine.finalize_open_unit()
        assert executable is engine.executables[0]
        assert engine.units[0].closed
        assert engine.units[0].executable_index == 0
        assert engine.open_unit is None

    def test_finalize_without_open_unit(self):
        engine, _ = make_engine()
        assert engine.finalize_open_unit() is None

    def test_new_definition_opens_new_unit(self):
        engine, gen = make_engine()
        lower(gen, "def a(x) x")
        engine.finalize_open_unit()
        lower(gen, "def b(x) x")
        assert len(engine.units) == 2
        assert engine.open_unit is engine.units[1]
        assert engine.find_function("b").unit_index == 1

    def test_address_request_finalizes_owning_unit(self):
        engine, gen = make_engine()
        lower(gen, "def a(x) x")
        engine.get_function_address("a")
        assert engine.units[0].closed
        assert engine.find_function("a").executable_index == 0

    def test_each_unit_finalized_once(self):
        engine, gen = make_engine()
        lower(gen, "def a(x) x")
        engine.run("a", 1.0)
        engine.run("a", 2.0)
        assert len(engine.executables) == 1

    def test_closed_unit_rejects_declarations(self):
        engine, gen = make_engine()
        lower(gen, "def a(x) x")
        engine.finalize_open_unit()
        with pytest.raises(EngineStateError):
            engine.units[0].declare_function("b", 0)

    def test_optimized_ir_recorded(self):
        engine, gen = make_engine()
        lower(gen, "def a(x) x+0*x")
        engine.finalize_open_unit()
        assert "define double @a(" in engine.units[0].optimized_ir


# =============================================================================
# Execution Tests
# =============================================================================

class TestExecution:

    def test_run_definition(self):
        engine, gen = make_engine()
        lower(gen, "def add(a b) a+b")
        assert engine.run("add", 2.0, 3.5) == 5.5

    def test_comparison_values(self):
        engine, gen = make_engine()
        lower(gen, "def lt(a b) a < b")
        assert engine.run("lt", 1.0, 2.0) == 1.0
        assert engine.run("lt", 2.0, 1.0) == 0.0

    def test_finalize_and_run(self):
        engine, gen = make_engine()
        assert evaluate(engine, gen, "1+2*3") == 7.0

    def test_testfunc_evaluates_to_sixteen(self):
        engine, gen = make_engine()
        lower(gen, "def testfunc(x) x*x")
        assert evaluate(engine, gen, "testfunc(3)") == 9.0
        assert evaluate(engine, gen, "testfunc(4)") == 16.0

    def test_anonymous_function_forgotten_after_run(self):
        engine, gen = make_engine()
        handle = lower(gen, "42")
        assert engine.finalize_and_run(handle) == 42.0
        assert engine.find_function(handle.name) is None

    def test_run_wrong_argument_count(self):
        engine, gen = make_engine()
        lower(gen, "def sq(x) x*x")
        with pytest.raises(EngineStateError):
            engine.run("sq")

    def test_unoptimized(self):
        engine, gen = make_engine(optimize=False)
        lower(gen, "def f(x) x*2+1")
        assert engine.run("f", 4.0) == 9.0

    def test_opt_level_zero(self):
        engine, gen = make_engine(opt_level=0)
        assert evaluate(engine, gen, "2*(3+4)") == 14.0

    def test_invalid_opt_level(self):
        with pytest.raises(ValueError):
            EngineOptions(opt_level=4)


# =============================================================================
# Cross-Unit Tests
# =============================================================================

class TestCrossUnit:

    def test_call_into_closed_unit(self):
        """A function from a closed unit is called through a declaration."""
        engine, gen = make_engine()
        lower(gen, "def sq(x) x*x")
        assert evaluate(engine, gen, "sq(2)") == 4.0

        lower(gen, "def quad(x) sq(sq(x))")
        unit = engine.open_unit
        assert unit.index == 1
        assert unit.get_function("sq").is_declaration
        assert engine.run("quad", 2.0) == 16.0

    def test_same_result_as_single_unit(self):
        split, split_gen = make_engine()
        lower(split_gen, "def f(x) x*x + 1")
        split.finalize_open_unit()
        lower(split_gen, "def g(x) f(x) - f(x-1)")

        single, single_gen = make_engine()
        lower(single_gen, "def f(x) x*x + 1\ndef g(x) f(x) - f(x-1)")

        for x in (0.0, 1.5, 7.0):
            assert split.run("g", x) == single.run("g", x)
        assert len(split.executables) == 2
        assert len(single.executables) == 1

    def test_body_not_lowered_again(self):
        engine, gen = make_engine()
        lower(gen, "def sq(x) x*x")
        engine.finalize_open_unit()
        lower(gen, "def h(x) sq(x)")
        assert 'declare double @"sq"' in str(engine.open_unit)
        assert engine.find_function("sq").unit_index == 0

    def test_lookup_opens_unit(self):
        engine, gen = make_engine()
        lower(gen, "def sq(x) x*x")
        engine.finalize_open_unit()
        handle = engine.lookup_function("sq")
        assert engine.open_unit is not None
        assert handle.function.is_declaration

    def test_lookup_unknown(self):
        engine, _ = make_engine()
        assert engine.lookup_function("missing") is None

    def test_extern_then_define_in_later_unit(self):
        engine, gen = make_engine()
        lower(gen, "extern late(x)")
        engine.finalize_open_unit()
        lower(gen, "def late(x) x+100")
        assert engine.find_function("late").unit_index == 1
        assert evaluate(engine, gen, "late(1)") == 101.0

    def test_independent_engines(self):
        """Two engines may define the same name differently."""
        first, first_gen = make_engine()
        second, second_gen = make_engine()
        lower(first_gen, "def twice(x) x*2")
        lower(second_gen, "def twice(x) x+x+x")
        first.finalize_open_unit()
        second.finalize_open_unit()
        assert evaluate(first, first_gen, "twice(5)") == 10.0
        assert evaluate(second, second_gen, "twice(5)") == 15.0


# =============================================================================
# Symbol Resolution Tests
# =============================================================================

class TestSymbols:

    def test_runtime_putchard(self):
        engine, gen = make_engine()
        out = io.StringIO()
        runtime = Runtime(out)
        runtime.install(engine)
        lower(gen, "extern putchard(c)")
        assert evaluate(engine, gen, "putchard(79) + putchard(75)") == 0.0
        assert out.getvalue() == "OK"

    def test_runtime_printd(self):
        engine, gen = make_engine()
        out = io.StringIO()
        Runtime(out).install(engine)
        lower(gen, "extern printd(x)")
        evaluate(engine, gen, "printd(2.5)")
        assert out.getvalue() == "2.500000\n"

    def test_putchard_truncates_to_byte(self):
        out = io.StringIO()
        runtime = Runtime(out)
        assert runtime.putchard(-1.0) == 0.0
        assert runtime.putchard(256.0 + 65.0) == 0.0
        assert out.getvalue() == "\xffA"

    def test_putchard_ignores_non_finite(self):
        out = io.StringIO()
        runtime = Runtime(out)
        assert runtime.putchard(float("nan")) == 0.0
        assert runtime.putchard(float("inf")) == 0.0
        assert out.getvalue() == ""

    def test_compiled_putchard_negative_argument(self):
        engine, gen = make_engine()
        out = io.StringIO()
        Runtime(out).install(engine)
        lower(gen, "extern putchard(c)")
        assert evaluate(engine, gen, "putchard(0-1)") == 0.0
        assert out.getvalue() == "\xff"

    def test_resolve_runtime_symbol(self):
        engine, _ = make_engine()
        runtime = Runtime(io.StringIO())
        runtime.install(engine)
        assert engine.resolve_symbol("putchard") == runtime.symbols["putchard"]

    def test_unresolvable_call_is_fatal(self):
        engine, gen = make_engine()
        lower(gen, "extern kaleidoNoSuchFunction(x)")
        with pytest.raises(FatalSymbolError) as exc_info:
            evaluate(engine, gen, "kaleidoNoSuchFunction(1)")
        assert exc_info.value.symbol == "kaleidoNoSuchFunction"
        assert exc_info.value.referrer == "__anon_expr0"

    def test_unknown_address_is_fatal(self):
        engine, _ = make_engine()
        with pytest.raises(FatalSymbolError, match="cannot resolve address"):
            engine.get_function_address("kaleidoNoSuchSymbol")

    def test_definitions_private_to_engine(self):
        """Another engine's definition never satisfies an extern."""
        owner, owner_gen = make_engine()
        lower(owner_gen, "def kaleidoPrivateFn(x) x*100")
        assert evaluate(owner, owner_gen, "kaleidoPrivateFn(1)") == 100.0

        other, other_gen = make_engine()
        assert other.resolve_symbol("kaleidoPrivateFn") is None
        lower(other_gen, "extern kaleidoPrivateFn(x)")
        with pytest.raises(FatalSymbolError, match="kaleidoPrivateFn"):
            evaluate(other, other_gen, "kaleidoPrivateFn(2)")

    def test_runtime_symbols_private_to_engine(self):
        with_runtime, gen = make_engine()
        Runtime(io.StringIO()).install(with_runtime)
        lower(gen, "extern printd(x)")
        evaluate(with_runtime, gen, "printd(1)")

        bare, bare_gen = make_engine()
        lower(bare_gen, "extern printd(x)")
        with pytest.raises(FatalSymbolError, match="printd"):
            evaluate(bare, bare_gen, "printd(2)")

    def test_uncalled_extern_is_harmless(self):
        engine, gen = make_engine()
        lower(gen, "extern kaleidoNeverCalled(x)")
        assert evaluate(engine, gen, "3") == 3.0


# =============================================================================
# Registry Tests
# =============================================================================

class TestRegistry:

    def test_sanitize_plain(self):
        engine, _ = make_engine()
        assert engine.sanitize_name("foo") == "foo"
        assert engine.sanitize_name("foo_bar1") == "foo_bar1"

    def test_sanitize_leading_digit(self):
        engine, _ = make_engine()
        assert engine.sanitize_name("9lives") == "f9lives"

    def test_sanitize_special_characters(self):
        engine, _ = make_engine()
        assert engine.sanitize_name("a.b") == "a46b"
        assert engine.sanitize_name("x-y") == "x45y"

    def test_sanitize_empty_is_anonymous(self):
        engine, _ = make_engine()
        assert engine.sanitize_name("") == "__anon_expr0"
        assert engine.sanitize_name("") == "__anon_expr1"

    def test_record_ids_unique(self):
        engine, gen = make_engine()
        lower(gen, "extern a(x)\nextern b(x)\ndef c(x) x")
        ids = [engine.find_function(n).id for n in ("a", "b", "c")]
        assert len(set(ids)) == 3

    def test_declare_then_define(self):
        engine, _ = make_engine()
        handle = engine.declare("f", 2)
        assert handle.created
        assert not handle.record.has_body
        with pytest.raises(EngineStateError):
            engine.define(handle)

    def test_known_function_names_exclude_anonymous(self):
        engine, gen = make_engine()
        lower(gen, "def f(x) x")
        lower(gen, "1")
        assert engine.known_function_names() == ["f"]

    def test_discard_without_open_unit(self):
        engine, gen = make_engine()
        handle = lower(gen, "def f(x) x")
        engine.finalize_open_unit()
        with pytest.raises(EngineStateError):
            engine.discard(handle)
