"""Session handle and execution backends."""

from .backend import EngineBackend, FactFiles
from .compiled import CompiledBackend, build_compiled, load_swig_module
from .interpreted import InterpretedBackend, check_souffle_installed, souffle_version
from .session import Session, SessionState, create_backend, init

__all__ = [
    "EngineBackend",
    "FactFiles",
    "CompiledBackend",
    "build_compiled",
    "load_swig_module",
    "InterpretedBackend",
    "check_souffle_installed",
    "souffle_version",
    "Session",
    "SessionState",
    "create_backend",
    "init",
]
