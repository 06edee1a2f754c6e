import pytest
from docker.errors import APIError, DockerException

from image_porter.builders.credentials import RegistryCredentials
from image_porter.builders.daemon import DaemonBuilder, connect
from image_porter.errors import BuildError, SystemFailureError
from image_porter.naming import ImageReference, normalize

SOURCE = normalize("gcr.io/google-containers/pause:3.2")
TARGET = ImageReference(registry="registry.example.com", namespace="test", repository="pause", tag="3.2")
CREDENTIALS = RegistryCredentials(registry="registry.example.com", username="bot", password="s3cret-pass")


def test_connect_without_daemon(mocker):
    mocker.patch("image_porter.builders.daemon.docker.from_env", side_effect=DockerException("no socket"))
    with pytest.raises(SystemFailureError):
        connect()


def test_login_skipped_without_credentials(mocker):
    client = mocker.MagicMock()
    DaemonBuilder(client).login(RegistryCredentials())
    client.login.assert_not_called()


def test_login_failure_is_build_error(mocker):
    client = mocker.MagicMock()
    client.login.side_effect = APIError("unauthorized")

    with pytest.raises(BuildError) as excinfo:
        DaemonBuilder(client).login(CREDENTIALS)
    assert excinfo.value.context["registry"] == "registry.example.com"


def test_build_passes_platform_and_tag(mocker):
    client = mocker.MagicMock()
    client.api.build.return_value = iter([{"stream": "Step 1/1 : FROM gcr.io/google-containers/pause:3.2\n"}])

    DaemonBuilder(client).build(SOURCE, TARGET, "linux/arm64")

    kwargs = client.api.build.call_args.kwargs
    assert kwargs["tag"] == "registry.example.com/test/pause:3.2"
    assert kwargs["platform"] == "linux/arm64"
    assert kwargs["custom_context"] is True
    assert kwargs["fileobj"].closed


def test_build_error_event_aborts(mocker):
    client = mocker.MagicMock()
    client.api.build.return_value = iter([{"error": "pull access denied", "errorDetail": {"message": "pull access denied"}}])

    with pytest.raises(BuildError) as excinfo:
        DaemonBuilder(client).build(SOURCE, TARGET, "linux/amd64")
    assert "pull access denied" in excinfo.value.message
    assert excinfo.value.context["platform"] == "linux/amd64"


def test_push_uses_auth_config(mocker):
    client = mocker.MagicMock()
    client.api.push.return_value = iter([{"status": "Pushed"}])

    DaemonBuilder(client).push(TARGET, CREDENTIALS)

    args, kwargs = client.api.push.call_args
    assert args == ("registry.example.com/test/pause",)
    assert kwargs["tag"] == "3.2"
    assert kwargs["auth_config"]["username"] == "bot"


def test_push_error_event(mocker):
    client = mocker.MagicMock()
    client.api.push.return_value = iter([{"error": "denied: requested access to the resource is denied"}])

    with pytest.raises(BuildError) as excinfo:
        DaemonBuilder(client).push(TARGET, CREDENTIALS)
    assert excinfo.value.context["target_image"] == str(TARGET)
