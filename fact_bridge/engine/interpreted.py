"""Interpreted mode: an external souffle process evaluates the Datalog source."""

import logging
import subprocess
import time
import weakref
from pathlib import Path
from typing import Optional

from ..config import BridgeConfig, ExecutionMode
from ..errors import EngineError, EngineNotFoundError
from ..schemas.declarations import check_kinds, input_relations
from ..schemas.facts import FactKind
from ..schemas.program import Program
from .backend import EngineResources, FactFiles, RowBatches


def souffle_version(souffle_bin: str = "souffle") -> str:
    """
    Return the output of ``souffle --version``.

    Raises:
        EngineNotFoundError: If the binary is missing or does not run
    """
    try:
        result = subprocess.run(
            [souffle_bin, "--version"],
            capture_output=True,
            text=True,
            timeout=5
        )
    except (FileNotFoundError, PermissionError):
        raise EngineNotFoundError(
            f"Soufflé is not installed ({souffle_bin!r} not found). "
            "Install with: apt-get install souffle (Linux) or brew install souffle (macOS)"
        ) from None
    except subprocess.TimeoutExpired:
        raise EngineNotFoundError(f"{souffle_bin} --version timed out") from None
    if result.returncode != 0:
        raise EngineNotFoundError(f"Soufflé returned error: {result.stderr}")
    return result.stdout.strip()


def check_souffle_installed(souffle_bin: str = "souffle") -> bool:
    """Check if Soufflé is installed without raising an error."""
    try:
        souffle_version(souffle_bin)
    except EngineNotFoundError:
        return False
    return True


class InterpretedBackend:
    """
    Runs a program with the souffle interpreter, once per ``run()``.

    Base facts accumulate in a session-private fact directory; each run
    re-evaluates the whole program and rewrites the output directory.

    Usage:
        backend = InterpretedBackend(program, BridgeConfig())
        backend.start()
        backend.add_rows({edge: [("a", "b")]})
        backend.run()
        rows = backend.read_rows(reachable)
    """

    mode = ExecutionMode.INTERPRETED

    def __init__(
        self,
        program: Program,
        config: BridgeConfig,
        logger: Optional[logging.Logger] = None,
    ):
        self.program = program
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.num_threads = config.num_threads
        self.program_path: Optional[Path] = None
        self._resources = EngineResources(keep_files=config.keep_work_dir)
        self._finalizer = weakref.finalize(self, self._resources.release)

    @property
    def files(self) -> FactFiles:
        if self._resources.files is None:
            raise EngineError("Engine is not started")
        return self._resources.files

    def _load_source(self) -> str:
        if self.program.source is not None:
            return self.program.source
        path = self.config.program_path(self.program.name)
        if not path.exists():
            raise EngineNotFoundError(f"Program not found: {path}")
        return path.read_text(encoding="utf-8")

    def start(self) -> None:
        version = souffle_version(self.config.souffle_bin)
        source = self._load_source()
        decls = check_kinds(self.program.kinds, self.program.name, source)
        for kind in self.program.output_kinds:
            if not decls[kind.name].is_output:
                self.logger.warning(
                    f"Fact '{kind.name}' is queryable but program "
                    f"'{self.program.name}' has no .output directive for it"
                )

        files = FactFiles(self.config.work_dir, prefix=f"fact_bridge_{self.program.name}_")
        self._resources.files = files

        if self.program.source is not None:
            self.program_path = files.root / f"{self.program.name}.dl"
            self.program_path.write_text(source, encoding="utf-8")
        else:
            self.program_path = self.config.program_path(self.program.name).resolve()

        files.ensure_inputs(
            input_relations(source) | {k.name for k in self.program.input_kinds}
        )
        self.logger.debug(f"Using {version} for program '{self.program.name}' in {files.root}")

    def add_rows(self, batches: RowBatches) -> None:
        count = self.files.append(batches)
        self.logger.debug(f"Appended {count} facts to {self.files.facts_dir}")

    def set_num_threads(self, num_threads: int) -> None:
        self.num_threads = num_threads

    def command(self) -> list[str]:
        """The souffle command line for one run."""
        return [
            self.config.souffle_bin,
            "-F", str(self.files.facts_dir),
            "-D", str(self.files.output_dir),
            "-j", str(self.num_threads),
            str(self.program_path),
        ]

    def run(self) -> None:
        files = self.files
        files.clear_output()
        cmd = self.command()
        self.logger.debug(f"Running: {' '.join(cmd)}")

        start_time = time.time()
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise EngineError(f"Cannot start Soufflé: {e}") from e
        self._resources.process = process
        try:
            _, stderr = process.communicate(timeout=self.config.run_timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            raise EngineError(
                f"Soufflé timed out after {self.config.run_timeout}s"
            ) from None
        finally:
            if process.poll() is None:
                process.kill()
                process.wait()
            self._resources.process = None

        if process.returncode != 0:
            raise EngineError(f"Soufflé error: {stderr}", stderr=stderr)

        elapsed_ms = int((time.time() - start_time) * 1000)
        self.logger.debug(f"Program '{self.program.name}' evaluated in {elapsed_ms}ms")

    def read_rows(self, kind: FactKind) -> list[tuple]:
        return self.files.read_output(kind)

    def contains_row(self, kind: FactKind, row: tuple) -> bool:
        return self.files.scan_output(kind, row)

    def close(self) -> None:
        self._finalizer()
