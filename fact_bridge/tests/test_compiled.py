"""Tests for compiled mode, driven through a fake SWIG module."""

import gc
import subprocess
import sys

import pytest

from fact_bridge.config import BridgeConfig, ExecutionMode
from fact_bridge.engine import CompiledBackend, init
from fact_bridge.engine.compiled import build_compiled, load_swig_module
from fact_bridge.errors import EngineError, EngineNotFoundError
from fact_bridge.testing import (
    PATH_EDGES,
    Edge,
    FakeSwigModule,
    Reachable,
    path_program,
)


@pytest.fixture
def module():
    return FakeSwigModule()


@pytest.fixture
def config(tmp_path):
    return BridgeConfig(artifact_dir=tmp_path / "artifact", work_dir=tmp_path / "work")


def start_session(module, config, program=None):
    program = program or path_program()
    backend = CompiledBackend(program, config, module_loader=module.loader)
    return init(program, ExecutionMode.COMPILED, config=config, backend=backend)


class TestCompiledBackend:

    def test_path_example(self, module, config):
        with start_session(module, config) as session:
            assert session.mode is ExecutionMode.COMPILED
            session.add_facts(Edge(*e) for e in PATH_EDGES)
            session.run()

            reachable = session.get_facts(Reachable)
            assert Reachable("a", "c") in reachable
            assert Reachable("a", "f") in reachable
            assert session.find_fact(Reachable("a", "c")) == Reachable("a", "c")
            assert session.find_fact(Reachable("c", "a")) is None

    def test_one_instance_per_session(self, module, config):
        with start_session(module, config) as session:
            session.add_fact(Edge("a", "b"))
            session.run()
            session.run()
        assert len(module.instances) == 1
        assert module.instances[0].runs == 2

    def test_facts_accumulate_between_runs(self, module, config):
        with start_session(module, config) as session:
            session.add_fact(Edge("a", "b"))
            session.run()
            session.add_fact(Edge("b", "c"))
            session.run()
            assert session.get_facts(Reachable).to_set() == {
                ("a", "b"), ("b", "c"), ("a", "c"),
            }

    def test_missing_program_in_artifact(self, config):
        module = FakeSwigModule(programs=())
        with pytest.raises(EngineNotFoundError, match="no program 'path'"):
            start_session(module, config)

    def test_work_dir_released_on_shutdown(self, module, config):
        session = start_session(module, config)
        files_root = session.backend.files.root
        assert files_root.exists()
        session.shutdown()
        assert not files_root.exists()

    def test_resources_released_when_collected(self, module, config):
        session = start_session(module, config)
        files_root = session.backend.files.root
        process = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
        session.backend._resources.process = process

        del session
        gc.collect()

        assert not files_root.exists()
        assert process.poll() is not None

    def test_keep_work_dir(self, module, tmp_path):
        config = BridgeConfig(work_dir=tmp_path, keep_work_dir=True)
        session = start_session(module, config)
        files_root = session.backend.files.root
        session.shutdown()
        assert files_root.exists()

    def test_engine_failure(self, module, config):
        with start_session(module, config) as session:
            def crash():
                raise RuntimeError("segfault avoided")
            module.instances[0].run = crash
            with pytest.raises(EngineError, match="segfault avoided"):
                session.run()

    def test_threads_ignored_without_support(self, module, config, caplog):
        with start_session(module, config) as session:
            with caplog.at_level("WARNING"):
                session.set_num_threads(4)
            assert session.num_threads == 4
            assert "ignoring num_threads=4" in caplog.text

    def test_threads_passed_when_supported(self, module, config):
        with start_session(module, config) as session:
            received = []
            module.instances[0].setNumThreads = received.append
            session.set_num_threads(2)
            assert received == [2]


class TestLoadSwigModule:

    def test_missing_artifact(self, tmp_path):
        with pytest.raises(EngineNotFoundError, match="not found"):
            load_swig_module(tmp_path)

    def test_init_without_artifact(self, tmp_path):
        config = BridgeConfig(artifact_dir=tmp_path)
        with pytest.raises(EngineNotFoundError):
            init(path_program(), ExecutionMode.COMPILED, config=config)


class TestBuildCompiled:

    def test_requires_artifact_dir(self):
        with pytest.raises(EngineError, match="artifact_dir"):
            build_compiled(path_program(), BridgeConfig())

    def test_requires_souffle(self, tmp_path):
        config = BridgeConfig(artifact_dir=tmp_path, souffle_bin="fact-bridge-no-such-souffle")
        with pytest.raises(EngineNotFoundError):
            build_compiled(path_program(), config)
