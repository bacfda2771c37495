"""Bridge configuration."""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class ExecutionMode(str, Enum):
    """How a session reaches the Datalog engine."""
    INTERPRETED = "interpreted"  # external souffle process per run
    COMPILED = "compiled"        # SWIG module loaded in-process


# Environment variables read by BridgeConfig.from_env
ENV_VARS = {
    "souffle_bin": "SOUFFLE_BIN",
    "datalog_dir": "FACT_BRIDGE_DATALOG_DIR",
    "artifact_dir": "FACT_BRIDGE_ARTIFACT_DIR",
    "work_dir": "FACT_BRIDGE_WORK_DIR",
    "num_threads": "FACT_BRIDGE_NUM_THREADS",
    "run_timeout": "FACT_BRIDGE_RUN_TIMEOUT",
}


class BridgeConfig(BaseModel):
    """
    Configuration shared by both execution modes.

    Attributes:
        souffle_bin: Soufflé executable name or path
        datalog_dir: Directory holding ``<program>.dl`` files
        artifact_dir: Directory holding the compiled SWIG module
        work_dir: Parent directory for per-session temp directories
        num_threads: Engine parallelism
        run_timeout: Seconds before a run is killed (None waits forever)
        keep_work_dir: Leave session fact/output files on disk after shutdown
    """

    souffle_bin: str = "souffle"
    datalog_dir: Path = Path(".")
    artifact_dir: Optional[Path] = None
    work_dir: Optional[Path] = None
    num_threads: int = Field(default=1, ge=1)
    run_timeout: Optional[float] = Field(default=None, gt=0)
    keep_work_dir: bool = False

    @field_validator("souffle_bin")
    @classmethod
    def _non_empty_bin(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("souffle_bin must not be empty")
        return value

    def program_path(self, program_name: str) -> Path:
        """Path of a program's Datalog source."""
        return self.datalog_dir / f"{program_name}.dl"

    @classmethod
    def from_env(cls, **overrides: Any) -> "BridgeConfig":
        """
        Build a config from environment variables.

        Args:
            **overrides: Explicit values, taking precedence over the environment
        """
        values: dict[str, Any] = {}
        for name, env_var in ENV_VARS.items():
            raw = os.getenv(env_var)
            if raw:
                values[name] = raw
        values.update(overrides)
        return cls(**values)
