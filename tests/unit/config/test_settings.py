import pytest
from pydantic import ValidationError

from kiae.config import Config
from kiae.domain.workload.model.workload import WorkloadKind


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("KIAE_CONFIG_FILE", raising=False)


class TestConfig:
    def test_defaults(self):
        config = Config()

        assert config.check.interval == 15.0
        assert config.check.batch_size == 50
        assert config.check.failed_batch_size == 20
        assert config.check.concurrency == 10
        assert config.gc.interval == 300.0
        assert config.server.port == 8080
        assert config.registry.default_registry == ""
        assert config.ignored_image_patterns == []
        assert config.force_check_kinds == frozenset()

    def test_nested_env_override(self, monkeypatch):
        monkeypatch.setenv("KIAE_CHECK__BATCH_SIZE", "5")
        monkeypatch.setenv("KIAE_REGISTRY__PLAIN_HTTP", "true")

        config = Config()

        assert config.check.batch_size == 5
        assert config.registry.plain_http is True

    def test_yaml_file(self, monkeypatch, tmp_path):
        path = tmp_path / "kiae.yaml"
        path.write_text(
            "registry:\n"
            "  default_registry: mirror.internal\n"
            "ignored_images:\n"
            "  - ^internal\\.example\\.com/\n"
            "namespace_label: team=shop\n"
        )
        monkeypatch.setenv("KIAE_CONFIG_FILE", str(path))

        config = Config()

        assert config.registry.default_registry == "mirror.internal"
        assert config.namespace_label == "team=shop"
        [pattern] = config.ignored_image_patterns
        assert pattern.search("internal.example.com/app:1")

    def test_env_wins_over_yaml(self, monkeypatch, tmp_path):
        path = tmp_path / "kiae.yaml"
        path.write_text("namespace_label: from-yaml\n")
        monkeypatch.setenv("KIAE_CONFIG_FILE", str(path))
        monkeypatch.setenv("KIAE_NAMESPACE_LABEL", "from-env")

        assert Config().namespace_label == "from-env"

    def test_invalid_ignore_pattern(self):
        with pytest.raises(ValidationError, match="invalid ignored image pattern"):
            Config(ignored_images=["("])

    def test_force_check_kinds(self):
        config = Config(force_check_disabled_controller_kinds=["cronjob", "Deployment"])
        assert config.force_check_kinds == {WorkloadKind.CRON_JOB, WorkloadKind.DEPLOYMENT}

    def test_force_check_all_kinds(self):
        config = Config(force_check_disabled_controller_kinds=["*"])
        assert config.force_check_kinds == frozenset(WorkloadKind)

    def test_unknown_controller_kind(self):
        with pytest.raises(ValidationError, match="Unknown controller kind"):
            Config(force_check_disabled_controller_kinds=["ReplicaSet"])

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            Config(check={"batch_size": 0})

    def test_frozen(self):
        config = Config()
        with pytest.raises(ValidationError):
            config.namespace_label = "x"
