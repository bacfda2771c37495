"""
Compiled mode: a precompiled Soufflé program loaded in-process.

``souffle -s python prog.dl`` generates a SWIG module (``SwigInterface.py``
plus ``_SwigInterface*.so``). Its program objects expose ``loadAll``,
``run`` and ``printAll``, so fact I/O still goes through a session-private
fact directory, but evaluation happens inside this process.
"""

import importlib
import logging
import subprocess
import sys
import threading
import time
import weakref
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Optional

from ..config import BridgeConfig, ExecutionMode
from ..errors import EngineError, EngineNotFoundError
from ..schemas.facts import FactKind
from ..schemas.program import Program
from .backend import EngineResources, FactFiles, RowBatches
from .interpreted import souffle_version

SWIG_MODULE = "SwigInterface"

# Only one generated SWIG module can be imported per process
_load_lock = threading.Lock()
_loaded_from: Optional[Path] = None


def load_swig_module(artifact_dir: Path, module_name: str = SWIG_MODULE) -> ModuleType:
    """
    Import the SWIG module generated for a compiled program.

    Args:
        artifact_dir: Directory the module was built into
        module_name: Module name (Soufflé generates ``SwigInterface``)

    Raises:
        EngineNotFoundError: If the module is missing or cannot be imported
    """
    global _loaded_from
    artifact_dir = Path(artifact_dir).resolve()
    if not (artifact_dir / f"{module_name}.py").exists():
        raise EngineNotFoundError(
            f"Compiled artifact not found: {artifact_dir / module_name}.py "
            "(build it with build_compiled)"
        )

    with _load_lock:
        if _loaded_from is not None and _loaded_from != artifact_dir:
            raise EngineNotFoundError(
                f"A compiled artifact from {_loaded_from} is already loaded; "
                f"cannot also load {artifact_dir}"
            )
        sys.path.insert(0, str(artifact_dir))
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise EngineNotFoundError(f"Cannot import compiled artifact: {e}") from e
        finally:
            sys.path.remove(str(artifact_dir))
        _loaded_from = artifact_dir
        return module


def build_compiled(
    program: Program,
    config: BridgeConfig,
    logger: Optional[logging.Logger] = None,
) -> Path:
    """
    Compile a program into a SWIG module in ``config.artifact_dir``.

    Needed once, and again whenever the Datalog source changes.

    Returns:
        The artifact directory

    Raises:
        EngineNotFoundError: If souffle or the program source is missing
        EngineError: If compilation fails
    """
    logger = logger or logging.getLogger(__name__)
    if config.artifact_dir is None:
        raise EngineError("artifact_dir must be configured to build a compiled program")
    souffle_version(config.souffle_bin)

    artifact_dir = Path(config.artifact_dir).resolve()
    artifact_dir.mkdir(parents=True, exist_ok=True)
    if program.source is not None:
        source_path = artifact_dir / f"{program.name}.dl"
        source_path.write_text(program.source, encoding="utf-8")
    else:
        source_path = config.program_path(program.name).resolve()
        if not source_path.exists():
            raise EngineNotFoundError(f"Program not found: {source_path}")

    cmd = [config.souffle_bin, "-s", "python", str(source_path)]
    logger.info(f"Compiling program '{program.name}': {' '.join(cmd)}")
    start_time = time.time()
    result = subprocess.run(cmd, cwd=artifact_dir, capture_output=True, text=True)
    if result.returncode != 0:
        raise EngineError(f"Soufflé compilation failed: {result.stderr}", stderr=result.stderr)

    elapsed_ms = int((time.time() - start_time) * 1000)
    logger.info(f"Compiled program '{program.name}' in {elapsed_ms}ms")
    return artifact_dir


class CompiledBackend:
    """
    Runs a program from its compiled SWIG module.

    Args:
        program: The program to run
        config: Bridge configuration (``artifact_dir`` locates the module,
            falling back to ``datalog_dir``)
        module_loader: Callable returning the SWIG module for a directory
        logger: Logger instance
    """

    mode = ExecutionMode.COMPILED

    def __init__(
        self,
        program: Program,
        config: BridgeConfig,
        module_loader: Optional[Callable[[Path], Any]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.program = program
        self.config = config
        self.module_loader = module_loader or load_swig_module
        self.logger = logger or logging.getLogger(__name__)
        self.num_threads = config.num_threads
        self._instance: Any = None
        self._resources = EngineResources(keep_files=config.keep_work_dir)
        self._finalizer = weakref.finalize(self, self._resources.release)

    @property
    def files(self) -> FactFiles:
        if self._resources.files is None:
            raise EngineError("Engine is not started")
        return self._resources.files

    def start(self) -> None:
        artifact_dir = Path(self.config.artifact_dir or self.config.datalog_dir)
        module = self.module_loader(artifact_dir)
        instance = module.newInstance(self.program.name)
        if instance is None:
            raise EngineNotFoundError(
                f"Compiled artifact in {artifact_dir} has no program '{self.program.name}'"
            )
        self._instance = instance

        files = FactFiles(self.config.work_dir, prefix=f"fact_bridge_{self.program.name}_")
        self._resources.files = files
        files.ensure_inputs(k.name for k in self.program.input_kinds)
        self.set_num_threads(self.num_threads)
        self.logger.debug(f"Loaded compiled program '{self.program.name}' from {artifact_dir}")

    def add_rows(self, batches: RowBatches) -> None:
        count = self.files.append(batches)
        self.logger.debug(f"Appended {count} facts to {self.files.facts_dir}")

    def set_num_threads(self, num_threads: int) -> None:
        self.num_threads = num_threads
        if self._instance is None:
            return
        if hasattr(self._instance, "setNumThreads"):
            self._instance.setNumThreads(num_threads)
        elif num_threads != 1:
            self.logger.warning(
                f"Compiled program '{self.program.name}' does not support "
                f"setting threads; ignoring num_threads={num_threads}"
            )

    def run(self) -> None:
        files = self.files
        files.clear_output()
        start_time = time.time()
        try:
            # Relations are sets, so reloading every base fact is idempotent
            self._instance.loadAll(str(files.facts_dir))
            self._instance.run()
            self._instance.printAll(str(files.output_dir))
        except Exception as e:
            raise EngineError(f"Compiled program '{self.program.name}' failed: {e}") from e
        elapsed_ms = int((time.time() - start_time) * 1000)
        self.logger.debug(f"Program '{self.program.name}' evaluated in {elapsed_ms}ms")

    def read_rows(self, kind: FactKind) -> list[tuple]:
        return self.files.read_output(kind)

    def contains_row(self, kind: FactKind, row: tuple) -> bool:
        return self.files.scan_output(kind, row)

    def close(self) -> None:
        self._instance = None
        self._finalizer()
