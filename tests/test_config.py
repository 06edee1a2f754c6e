import pytest

from image_porter.config import DEFAULT_RULES, PorterConfig, load_config
from image_porter.errors import ConfigError


def test_defaults_without_file_or_env():
    config = load_config(environ={})

    assert list(config.rules) == list(DEFAULT_RULES)
    assert config.default_platforms() == ("linux/amd64", "linux/arm64")
    assert config.registries.huawei_swr.region == "cn-southwest-2"
    assert config.app.log_level == "info"


def test_porter_config_parsing(tmp_path):
    config_content = """
    github:
      token: ghp_filetoken0123456789
      user: octo
      repo: mirror-requests
    registries:
      generic:
        registry: registry.example.com
        namespace: test
        username: bot
        password: hunter2hunter2
      huawei_swr:
        access_key: AKFILE
        secret_key: SKFILE
    rules:
      "^quay.io": quay
      "^gcr.io":
    platforms: linux/arm64
    app:
      log_level: debug
    """
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)

    config = load_config(config_path, environ={})

    assert config.github.user == "octo"
    assert config.registries.generic.registry == "registry.example.com"
    assert config.rules == {"^quay.io": "quay", "^gcr.io": ""}
    assert list(config.rules) == ["^quay.io", "^gcr.io"]
    assert config.default_platforms() == ("linux/arm64",)
    assert config.credentials().username == "bot"
    assert config.github.build_log_url.startswith("https://github.com/octo/mirror-requests/actions/runs/")


def test_rules_only_file(tmp_path):
    config_path = tmp_path / "rules.yaml"
    config_path.write_text('"^ghcr.io": ghcr\n"^quay.io": quay\n')

    config = load_config(config_path, environ={})

    assert config.rules == {"^ghcr.io": "ghcr", "^quay.io": "quay"}


def test_precedence_flags_file_env(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("github:\n  user: from-file\n")
    environ = {"GITHUB_USER": "from-env", "GITHUB_REPO": "env-repo", "DEBUG": "true"}

    config = load_config(config_path, environ=environ)
    assert config.github.user == "from-file"
    assert config.github.repo == "env-repo"
    assert config.app.debug is True

    config = load_config(config_path, environ=environ, overrides={"github": {"user": "from-flag"}})
    assert config.github.user == "from-flag"
    assert config.github.repo == "env-repo"


def test_incomplete_huawei_section_is_accepted():
    config = load_config(environ={"HUAWEI_SWR_ACCESS_KEY": "AK"})
    assert config.registries.huawei_swr.access_key == "AK"
    assert config.registries.huawei_swr.secret_key == ""


def test_config_invalid_yaml(tmp_path):
    config_path = tmp_path / "invalid_config.yaml"
    config_path.write_text("github: [unclosed\n")

    with pytest.raises(ConfigError):
        load_config(config_path, environ={})


def test_config_invalid_type(tmp_path):
    config_path = tmp_path / "invalid_config.yaml"
    config_path.write_text("app:\n  debug: [1, 2]\n")

    with pytest.raises(ConfigError):
        load_config(config_path, environ={})


def test_config_invalid_rule(tmp_path):
    config_path = tmp_path / "rules.yaml"
    config_path.write_text('"^gcr.io(": ""\n')

    with pytest.raises(ConfigError):
        load_config(config_path, environ={})


def test_validate_for_run_lists_missing_settings():
    config = PorterConfig(github={"token": "t0ken"})
    with pytest.raises(ConfigError) as excinfo:
        config.validate_for_run()
    assert "github.user" in excinfo.value.message
    assert "github.repo" in excinfo.value.message
    assert "github.token" not in excinfo.value.message


def test_safe_dump_masks_secrets():
    config = PorterConfig(
        github={"token": "ghp_abcdefghijklmnop"},
        registries={"generic": {"password": "short"}, "huawei_swr": {"access_key": "AKIAEXAMPLEKEY"}},
    )
    dumped = config.safe_dump()

    assert dumped["github"]["token"] == "ghp_****mnop"
    assert dumped["registries"]["generic"]["password"] == "****"
    assert dumped["registries"]["huawei_swr"]["access_key"] == "AKIA****EKEY"
    assert set(config.secrets()) == {"ghp_abcdefghijklmnop", "short", "AKIAEXAMPLEKEY"}
