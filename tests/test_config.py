"""Tests for YAML configuration loading."""

from welltest_core import config
from welltest_core.types.analysis import ResidualScale


class TestLoadConfig:
    """Test reading optional configuration files."""

    def test_missing_file(self, tmp_path):
        assert config.load_config(tmp_path / "missing.yaml") == {}

    def test_values_loaded(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("bourdet_spacing: 0.2\nlm:\n  max_iterations: 20\n")
        data = config.load_config(path)
        assert data["bourdet_spacing"] == 0.2
        assert data["lm"]["max_iterations"] == 20

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("lm: [unclosed\n")
        assert config.load_config(path) == {}

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- 1\n- 2\n")
        assert config.load_config(path) == {}

    def test_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("smooth_factor: 3\n")
        monkeypatch.setenv(config.CONFIG_ENV_VAR, str(path))
        assert config.load_config() == {"smooth_factor": 3}


class TestLMOptionsFromConfig:
    """Test mapping the lm section onto optimizer options."""

    def test_section(self):
        options = config.lm_options_from_config(
            {"max_retries": 3, "residual_scale": "log"}
        )
        assert options.max_retries == 3
        assert options.residual_scale is ResidualScale.LOG

    def test_defaults(self):
        options = config.lm_options_from_config({})
        assert options.max_iterations == 100
