"""
Toy Incremental Compilation Engine
==================================

This module manages the compilation units that Toy definitions are lowered
into and turns them into executable code on demand.

Units
-----
A compilation unit is one llvmlite ``ir.Module``. At most one unit is open
at a time; the code generator always emits into the open unit. A unit
stays open and accumulates definitions until something needs the address
of a function it contains. At that point it is closed (permanently),
optimized, verified and finalized into its own MCJIT execution engine.
The next definition opens a fresh unit.

Cross-unit References
---------------------
Functions are tracked in a registry keyed by symbol name. Each entry
records the arity, the unit that owns the function and, once that unit is
finalized, the index of its executable form. When a function owned by a
closed unit is referenced again, the engine adds a body-less declaration
of it to the open unit. When that unit is finalized, the declaration is
bound to the address produced by the earlier executable form.

Symbol Resolution
-----------------
A symbol is resolved by scanning finalized executable forms oldest to
newest, then the registered runtime symbols, then the process-wide symbol
table. A function that is called but cannot be resolved by any of these
raises FatalSymbolError before LLVM gets a chance to abort the process.

Example:
    engine = Engine()
    handle = engine.declare("double", 1)
    ...emit a body into handle.function...
    engine.define(handle)
    engine.run("double", 21.0)   # -> 42.0
"""

from dataclasses import dataclass, field
from typing import Optional
import ctypes
import logging

from llvmlite import ir
import llvmlite.binding as llvm

from kaleido.errors import EngineStateError, FatalSymbolError, SourceLocation
from kaleido.toy.errors import ArityRedefinitionError, RedefinitionError

# Logger for this module
logger = logging.getLogger(__name__)

# The only value type of the language
DOUBLE = ir.DoubleType()

ANONYMOUS_PREFIX = "__anon_expr"

_native_initialized = False

# Names some engine has bound in the process symbol table. They belong to
# an engine, so the process-wide fallback never resolves them.
_engine_bound_symbols: set[str] = set()


def _initialize_native() -> None:
    """Initialize the native target once per process."""
    global _native_initialized
    if not _native_initialized:
        llvm.initialize_native_target()
        llvm.initialize_native_asmprinter()
        _native_initialized = True


def _release_global_name(module: ir.Module, name: str) -> None:
    """Let a later global in `module` reuse `name`."""
    # ir.Module has no public API for this; its name scope is a private set
    module.scope._useset.discard(name)


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class EngineOptions:
    """
    Engine configuration.

    Attributes:
        optimize: Run the function simplification pipeline before finalizing
        opt_level: Pipeline speed level (1-3); 0 disables optimization
    """
    optimize: bool = True
    opt_level: int = 2

    def __post_init__(self):
        if not 0 <= self.opt_level <= 3:
            raise ValueError(f"opt_level must be between 0 and 3, got {self.opt_level}")


# =============================================================================
# Registry Types
# =============================================================================

@dataclass
class FunctionRecord:
    """
    One logical function, wherever its IR instances live.

    Attributes:
        id: Stable identifier, unique within the engine
        name: Symbol name (already sanitized)
        arity: Number of parameters
        unit_index: Unit holding the body, or the first declaration
        has_body: True once a definition has been lowered successfully
        executable_index: Executable form holding the code, once finalized
    """
    id: int
    name: str
    arity: int
    unit_index: int
    has_body: bool = False
    executable_index: Optional[int] = None

    @property
    def is_anonymous(self) -> bool:
        return self.name.startswith(ANONYMOUS_PREFIX)


@dataclass
class FunctionHandle:
    """
    A function record paired with its IR instance in the open unit.

    Attributes:
        record: The registry entry
        function: The ir.Function in the open unit
        created: True if the registry entry was created for this handle
    """
    record: FunctionRecord
    function: ir.Function
    created: bool = False

    @property
    def name(self) -> str:
        return self.record.name


class CompilationUnit:
    """
    An ordered, append-only group of functions compiled together.

    Attributes:
        index: Position in the engine's unit history
        module: The llvmlite IR module
        closed: True once the unit has been handed to the backend
        executable_index: Index of the finalized executable form
        optimized_ir: IR text after optimization (set when finalized)
    """

    def __init__(self, index: int, triple: str, data_layout: str):
        self.index = index
        self.module = ir.Module(name=f"toy_unit{index}")
        self.module.triple = triple
        self.module.data_layout = data_layout
        self.closed = False
        self.executable_index: Optional[int] = None
        self.optimized_ir: Optional[str] = None

    def get_function(self, name: str) -> Optional[ir.Function]:
        value = self.module.globals.get(name)
        if isinstance(value, ir.Function):
            return value
        return None

    def declare_function(self, name: str, arity: int) -> ir.Function:
        """Add a body-less function double name(double, ...) to the unit."""
        if self.closed:
            raise EngineStateError(f"cannot add '{name}' to closed unit {self.index}")
        fnty = ir.FunctionType(DOUBLE, [DOUBLE] * arity)
        return ir.Function(self.module, fnty, name=name)

    def remove_function(self, name: str) -> None:
        """Drop a function from the unit entirely."""
        if self.closed:
            raise EngineStateError(f"cannot remove '{name}' from closed unit {self.index}")
        self.module.globals.pop(name, None)
        _release_global_name(self.module, name)

    def defined_function_names(self) -> list[str]:
        return [f.name for f in self.module.functions if not f.is_declaration]

    def called_declarations(self) -> dict[str, str]:
        """
        Map each body-less function called from this unit to one caller.
        """
        called: dict[str, str] = {}
        for function in self.module.functions:
            for block in function.blocks:
                for instr in block.instructions:
                    if not isinstance(instr, ir.CallInstr):
                        continue
                    callee = instr.callee
                    if isinstance(callee, ir.Function) and callee.is_declaration:
                        called.setdefault(callee.name, function.name)
        return called

    def __str__(self) -> str:
        return str(self.module)


@dataclass
class ExecutableUnit:
    """
    Finalized machine code for one closed unit.

    Attributes:
        unit_index: The unit this was built from
        execution_engine: MCJIT engine owning the code
        addresses: Symbol name to address of every function defined in the unit
    """
    unit_index: int
    execution_engine: llvm.ExecutionEngine
    addresses: dict[str, int] = field(default_factory=dict)


# =============================================================================
# Engine
# =============================================================================

class Engine:
    """
    Owns the unit history, the function registry and the executable forms.

    Several engines can coexist in one process. Nothing is published to
    the process-wide symbol table ahead of time: right before a unit is
    finalized, each function it calls is bound to the address this engine
    resolved for it, so its code links against its own definitions and its
    own runtime symbols only.
    """

    def __init__(self, options: Optional[EngineOptions] = None):
        self.options = options or EngineOptions()
        _initialize_native()

        self._triple = llvm.get_process_triple()
        self._target = llvm.Target.from_triple(self._triple)
        self._data_layout = str(self._create_target_machine().target_data)

        self.units: list[CompilationUnit] = []
        self.executables: list[ExecutableUnit] = []
        self._open_unit: Optional[CompilationUnit] = None
        self._records: dict[str, FunctionRecord] = {}
        self._runtime_symbols: dict[str, int] = {}
        self._next_record_id = 0
        self._anonymous_count = 0

    def _create_target_machine(self) -> llvm.TargetMachine:
        # MCJIT takes ownership of its target machine, so each use gets a new one
        return self._target.create_target_machine()

    # =========================================================================
    # Naming
    # =========================================================================

    def new_anonymous_name(self) -> str:
        name = f"{ANONYMOUS_PREFIX}{self._anonymous_count}"
        self._anonymous_count += 1
        return name

    def sanitize_name(self, name: str) -> str:
        """
        Map a source-level function name to a symbol-safe identifier.

        An empty name gets a fresh anonymous name. A leading digit is
        prefixed with 'f'. Every character outside [A-Za-z0-9_] is replaced
        by its decimal code point.

        >>> engine.sanitize_name("foo")
        'foo'
        >>> engine.sanitize_name("9lives")
        'f9lives'
        >>> engine.sanitize_name("a.b")
        'a46b'
        """
        if not name:
            return self.new_anonymous_name()
        if name[0].isdigit():
            name = "f" + name
        return "".join(
            c if (c.isascii() and c.isalnum()) or c == "_" else str(ord(c))
            for c in name
        )

    # =========================================================================
    # Units
    # =========================================================================

    @property
    def open_unit(self) -> Optional[CompilationUnit]:
        return self._open_unit

    def open_unit_for_definition(self) -> CompilationUnit:
        """Return the open unit, creating a new one if none is open."""
        if self._open_unit is None:
            unit = CompilationUnit(len(self.units), self._triple, self._data_layout)
            self.units.append(unit)
            self._open_unit = unit
            logger.debug(f"Opened unit {unit.index}")
        return self._open_unit

    def _function_in_open_unit(self, record: FunctionRecord) -> ir.Function:
        unit = self.open_unit_for_definition()
        function = unit.get_function(record.name)
        if function is None:
            function = unit.declare_function(record.name, record.arity)
            if record.unit_index != unit.index:
                logger.debug(
                    f"Declared '{record.name}' in unit {unit.index} "
                    f"(owned by unit {record.unit_index})"
                )
        return function

    # =========================================================================
    # Function Registry
    # =========================================================================

    def find_function(self, name: str) -> Optional[FunctionRecord]:
        """Return the registry entry for a source-level name, if any."""
        if not name:
            return None
        return self._records.get(self.sanitize_name(name))

    def known_function_names(self) -> list[str]:
        return [r.name for r in self._records.values() if not r.is_anonymous]

    def lookup_function(self, name: str) -> Optional[FunctionHandle]:
        """
        Find a function anywhere in the unit history.

        If it lives in a closed unit, a matching declaration is added to the
        open unit so new code can call it without lowering its body again.

        Returns:
            A handle into the open unit, or None if no unit knows the name
        """
        record = self.find_function(name)
        if record is None:
            return None
        return FunctionHandle(record, self._function_in_open_unit(record))

    def declare(
        self,
        name: str,
        arity: int,
        location: Optional[SourceLocation] = None,
    ) -> FunctionHandle:
        """
        Declare a function in the open unit.

        Redeclaring with the same arity is allowed any number of times
        until a body has been supplied.

        Args:
            name: Source-level name; empty for an anonymous expression
            arity: Number of parameters
            location: Source location for diagnostics

        Raises:
            RedefinitionError: If the function already has a body
            ArityRedefinitionError: If it was declared with another arity
        """
        symbol = self.sanitize_name(name)
        record = self._records.get(symbol)

        if record is not None:
            if record.has_body:
                raise RedefinitionError(name, location)
            if record.arity != arity:
                raise ArityRedefinitionError(name, record.arity, arity, location)
            return FunctionHandle(record, self._function_in_open_unit(record))

        unit = self.open_unit_for_definition()
        record = FunctionRecord(
            id=self._next_record_id,
            name=symbol,
            arity=arity,
            unit_index=unit.index,
        )
        self._next_record_id += 1
        self._records[symbol] = record
        function = unit.declare_function(symbol, arity)
        logger.debug(f"Declared '{symbol}'/{arity} in unit {unit.index}")
        return FunctionHandle(record, function, created=True)

    def define(self, handle: FunctionHandle) -> FunctionHandle:
        """Record that handle.function now carries a complete body."""
        unit = self._open_unit
        if unit is None or unit.get_function(handle.name) is not handle.function:
            raise EngineStateError(f"'{handle.name}' is not in the open unit")
        if handle.function.is_declaration:
            raise EngineStateError(f"'{handle.name}' has no body to define")
        handle.record.has_body = True
        handle.record.unit_index = unit.index
        logger.debug(f"Defined '{handle.name}' in unit {unit.index}")
        return handle

    def discard(self, handle: FunctionHandle) -> None:
        """
        Undo a failed definition.

        A function first declared by the failed definition is removed from
        the open unit and the registry. A function that existed before keeps
        its declaration; only the partial body is dropped.
        """
        unit = self._open_unit
        if unit is None:
            raise EngineStateError("no open unit to discard from")
        if handle.created:
            unit.remove_function(handle.name)
            self._records.pop(handle.name, None)
            logger.debug(f"Discarded '{handle.name}' from unit {unit.index}")
        else:
            handle.function.blocks = []
            logger.debug(f"Stripped partial body of '{handle.name}' in unit {unit.index}")

    def forget(self, handle: FunctionHandle) -> None:
        """Drop an anonymous expression from the registry after it ran."""
        if handle.record.is_anonymous:
            self._records.pop(handle.name, None)

    # =========================================================================
    # Symbol Resolution
    # =========================================================================

    def register_runtime_symbol(self, name: str, address: int) -> None:
        """Make a host function callable from Toy code under `name`."""
        self._runtime_symbols[name] = address
        logger.debug(f"Registered runtime symbol '{name}' at 0x{address:x}")

    def _executable_address(self, executable: ExecutableUnit, symbol: str) -> Optional[int]:
        unit = self.units[executable.unit_index]
        if not unit.closed:
            raise EngineStateError(f"address lookup in open unit {unit.index}")
        return executable.addresses.get(symbol)

    def resolve_symbol(self, symbol: str) -> Optional[int]:
        """
        Find the address of a symbol, or None.

        Executable forms are searched oldest to newest, then runtime
        symbols, then the process symbol table. Names that any engine has
        bound are skipped in the process table, since their addresses there
        may belong to another engine.
        """
        for executable in self.executables:
            address = self._executable_address(executable, symbol)
            if address:
                return address
        if symbol in self._runtime_symbols:
            return self._runtime_symbols[symbol]
        if symbol in _engine_bound_symbols:
            return None
        return llvm.address_of_symbol(symbol) or None

    def get_function_address(self, name: str) -> int:
        """
        Return the callable address of a function, finalizing its unit first
        if that unit is still open.

        Raises:
            FatalSymbolError: If no executable form or resolver has the symbol
        """
        record = self.find_function(name)
        symbol = record.name if record else self.sanitize_name(name)

        if record is not None and record.executable_index is None:
            unit = self.units[record.unit_index]
            if not unit.closed:
                self.finalize_open_unit()

        address = self.resolve_symbol(symbol)
        if address is None:
            raise FatalSymbolError(symbol)
        logger.debug(f"Resolved '{symbol}' to 0x{address:x}")
        return address

    # =========================================================================
    # Finalization and Execution
    # =========================================================================

    def finalize_open_unit(self) -> Optional[ExecutableUnit]:
        """
        Close the open unit and turn it into an executable form.

        Returns:
            The new ExecutableUnit, or None if no unit was open

        Raises:
            FatalSymbolError: If the unit calls a function nobody provides
        """
        unit = self._open_unit
        if unit is None:
            return None
        unit.closed = True
        self._open_unit = None
        logger.debug(f"Closed unit {unit.index}")

        # Bind every called declaration before MCJIT resolves relocations
        for symbol, caller in unit.called_declarations().items():
            address = self.resolve_symbol(symbol)
            if address is None:
                raise FatalSymbolError(symbol, referrer=caller)
            _engine_bound_symbols.add(symbol)
            llvm.add_symbol(symbol, address)

        module_ref = llvm.parse_assembly(str(unit.module))
        module_ref.verify()
        self._optimize(module_ref)
        unit.optimized_ir = str(module_ref)

        execution_engine = llvm.create_mcjit_compiler(module_ref, self._create_target_machine())
        execution_engine.finalize_object()

        executable = ExecutableUnit(unit.index, execution_engine)
        for symbol in unit.defined_function_names():
            address = execution_engine.get_function_address(symbol)
            executable.addresses[symbol] = address
            record = self._records.get(symbol)
            if record is not None and record.unit_index == unit.index:
                record.executable_index = len(self.executables)

        unit.executable_index = len(self.executables)
        self.executables.append(executable)
        logger.debug(
            f"Finalized unit {unit.index} as executable {unit.executable_index} "
            f"({len(executable.addresses)} function(s))"
        )
        return executable

    def _optimize(self, module_ref: llvm.ModuleRef) -> None:
        if not self.options.optimize or self.options.opt_level == 0:
            return
        target_machine = self._create_target_machine()
        tuning = llvm.create_pipeline_tuning_options(speed_level=self.options.opt_level)
        pass_builder = llvm.create_pass_builder(target_machine, tuning)
        pass_manager = pass_builder.getFunctionPassManager()
        for function in module_ref.functions:
            if not function.is_declaration:
                pass_manager.run(function, pass_builder)

    def run(self, name: str, *args: float) -> float:
        """
        Call a compiled function with float arguments.

        Raises:
            FatalSymbolError: If the function's address cannot be produced
            EngineStateError: On an argument count mismatch
        """
        record = self.find_function(name)
        if record is not None and record.arity != len(args):
            raise EngineStateError(
                f"'{record.name}' takes {record.arity} argument(s), {len(args)} given"
            )
        address = self.get_function_address(name)
        prototype = ctypes.CFUNCTYPE(ctypes.c_double, *([ctypes.c_double] * len(args)))
        return float(prototype(address)(*args))

    def finalize_and_run(self, handle: FunctionHandle) -> float:
        """
        Evaluate a freshly lowered nullary function.

        The open unit is closed and finalized, the function is called, and
        an anonymous function is then dropped from the registry.
        """
        if handle.record.arity != 0:
            raise EngineStateError(f"'{handle.name}' is not nullary")
        self.finalize_open_unit()
        try:
            address = self.get_function_address(handle.name)
        finally:
            self.forget(handle)
        return float(ctypes.CFUNCTYPE(ctypes.c_double)(address)())
