"""
Toy Runtime Library
===================

Functions that Toy programs can call without defining them. They are
implemented in Python, exposed to compiled code as C callbacks, and
published to the engine's external symbol resolver under their Toy names.

Available functions (declare them with 'extern' before use):

    putchard(x)   write the character with code int(x) mod 256, return 0
    printd(x)     write x as '%f' followed by a newline, return 0

Example:
    extern putchard(c)
    putchard(72) + putchard(105) + putchard(10)
"""

import ctypes
import math
import sys
from typing import Callable, Optional, TextIO

# double (*)(double)
UNARY_DOUBLE = ctypes.CFUNCTYPE(ctypes.c_double, ctypes.c_double)


class Runtime:
    """
    Runtime symbols bound to one output stream.

    The ctypes callback objects must outlive every compiled function that
    may call them, so the Runtime keeps them referenced for its lifetime.

    Attributes:
        output: Stream that putchard/printd write to
    """

    def __init__(self, output: Optional[TextIO] = None):
        self.output = output if output is not None else sys.stdout
        self._callbacks: dict[str, ctypes._CFuncPtr] = {}
        self._define("putchard", self.putchard)
        self._define("printd", self.printd)

    def _define(self, name: str, func: Callable[[float], float]) -> None:
        self._callbacks[name] = UNARY_DOUBLE(func)

    def putchard(self, x: float) -> float:
        # Like C putchar: the code is truncated to a byte; NaN and inf print nothing
        if not math.isfinite(x):
            return 0.0
        self.output.write(chr(int(x) & 0xFF))
        self.output.flush()
        return 0.0

    def printd(self, x: float) -> float:
        self.output.write(f"{x:f}\n")
        self.output.flush()
        return 0.0

    @property
    def symbols(self) -> dict[str, int]:
        """Map of symbol name to callable address."""
        return {
            name: ctypes.cast(callback, ctypes.c_void_p).value
            for name, callback in self._callbacks.items()
        }

    def install(self, engine) -> None:
        """Register every runtime symbol with an Engine."""
        for name, address in self.symbols.items():
            engine.register_runtime_symbol(name, address)
