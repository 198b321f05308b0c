import pytest

from afprint import config
from afprint.config import ConversionWorker, Settings, StdinStrategy, load_settings


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings({})
        assert settings.stdin_strategy is StdinStrategy.TEMP_FILE
        assert settings.worker is config.default_worker()
        assert settings.use_splice == config.is_splice_available()

    def test_no_temp_selects_direct_streaming(self):
        assert load_settings({"AFPRINT_NO_TEMP": ""}).stdin_strategy is StdinStrategy.DIRECT

    def test_strategy_from_environment(self):
        settings = load_settings({"AFPRINT_STDIN_STRATEGY": "shared-memory"})
        assert settings.stdin_strategy is StdinStrategy.SHARED_MEMORY

    def test_no_temp_wins_over_strategy_variable(self):
        env = {"AFPRINT_NO_TEMP": "1", "AFPRINT_STDIN_STRATEGY": "temp-file"}
        assert load_settings(env).stdin_strategy is StdinStrategy.DIRECT

    def test_explicit_arguments_override_environment(self):
        env = {"AFPRINT_NO_TEMP": "1", "AFPRINT_WORKER": "process"}
        settings = load_settings(env, stdin_strategy="temp-file", worker="thread")
        assert settings == Settings(
            stdin_strategy=StdinStrategy.TEMP_FILE,
            worker=ConversionWorker.THREAD,
            use_splice=config.is_splice_available(),
        )

    def test_worker_from_environment(self):
        assert load_settings({"AFPRINT_WORKER": "thread"}).worker is ConversionWorker.THREAD

    def test_splice_can_be_disabled(self):
        assert load_settings({"AFPRINT_SPLICE": "0"}).use_splice is False

    def test_invalid_strategy(self):
        with pytest.raises(ValueError, match="invalid stdin strategy"):
            load_settings({"AFPRINT_STDIN_STRATEGY": "floppy"})

    def test_invalid_worker(self):
        with pytest.raises(ValueError, match="invalid conversion worker"):
            load_settings({}, worker="gpu")

    def test_thread_worker_without_fork(self, monkeypatch):
        monkeypatch.setattr(config, "is_fork_available", lambda: False)
        assert load_settings({}).worker is ConversionWorker.THREAD


class TestCapabilityChecks:
    def test_fork_check_is_computed_once(self, monkeypatch):
        calls = []

        def start_methods():
            calls.append(1)
            return ["fork", "spawn"]

        config.is_fork_available.cache_clear()
        monkeypatch.setattr(config.multiprocessing, "get_all_start_methods", start_methods)
        try:
            assert config.is_fork_available()
            assert config.is_fork_available()
            assert len(calls) == 1
        finally:
            config.is_fork_available.cache_clear()

    @pytest.mark.parametrize(
        "check",
        [config.is_fork_available, config.is_shared_memory_available, config.is_splice_available],
    )
    def test_repeated_calls_hit_the_cache(self, check):
        check()
        hits = check.cache_info().hits
        check()
        assert check.cache_info().hits == hits + 1
