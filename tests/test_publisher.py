import pytest

from image_porter.builders.credentials import RegistryCredentials
from image_porter.errors import BuildError, SystemFailureError, ValidationError
from image_porter.naming import ImageReference, normalize
from image_porter.publisher import ImagePublisher, PublishRun, PublishState
from image_porter.strategy import MultiPlatform, SinglePlatform

SOURCE = normalize("quay.io/coreos/etcd:v3.5.0")
TARGET = ImageReference(registry="registry.example.com", namespace="test", repository="etcd", tag="v3.5.0")


@pytest.fixture
def parts(mocker):
    daemon = mocker.MagicMock()
    buildkit = mocker.MagicMock()
    prober = mocker.MagicMock()
    return daemon, buildkit, prober


def make_publisher(parts):
    daemon, buildkit, prober = parts
    return ImagePublisher(daemon, buildkit, prober, RegistryCredentials(username="bot", password="pw"))


def test_single_platform_uses_daemon(parts):
    daemon, buildkit, prober = parts
    prober.probe_or_default.return_value = (("linux/amd64",), False)

    run = make_publisher(parts).publish(SOURCE, TARGET, ("linux/amd64", "linux/arm64"))

    assert run.state == PublishState.PUSHED
    assert run.history == [PublishState.IDLE, PublishState.LOGGED_IN, PublishState.BUILT, PublishState.PUSHED]
    assert run.strategy == SinglePlatform("linux/amd64")
    assert run.report.skipped == ("linux/arm64",)
    daemon.build.assert_called_once_with(SOURCE, TARGET, "linux/amd64")
    daemon.push.assert_called_once()
    buildkit.build_and_push.assert_not_called()


def test_multi_platform_uses_buildkit(parts):
    daemon, buildkit, prober = parts
    prober.probe_or_default.return_value = (("linux/amd64", "linux/arm64"), False)

    run = make_publisher(parts).publish(SOURCE, TARGET, ("linux/amd64", "linux/arm64"))

    assert run.state == PublishState.PUSHED
    assert isinstance(run.strategy, MultiPlatform)
    buildkit.build_and_push.assert_called_once_with(SOURCE, TARGET, ("linux/amd64", "linux/arm64"))
    daemon.build.assert_not_called()


def test_empty_intersection_fails_after_login(parts):
    daemon, buildkit, prober = parts
    prober.probe_or_default.return_value = (("linux/s390x",), False)

    run = make_publisher(parts).publish(SOURCE, TARGET, ("linux/amd64",))

    assert run.failed
    assert isinstance(run.error, ValidationError)
    assert run.history[-2:] == [PublishState.LOGGED_IN, PublishState.FAILED]
    assert run.report.resolved == ()
    assert run.report.skipped == ("linux/amd64",)
    assert "built:     (none)" in run.architecture_summary
    assert run.error.context["target_image"] == str(TARGET)
    assert run.error.context["platforms"] == ["linux/amd64"]


def test_build_failure_keeps_architecture_report(parts):
    daemon, buildkit, prober = parts
    prober.probe_or_default.return_value = (("linux/amd64",), True)
    daemon.build.side_effect = BuildError("daemon build failed")

    run = make_publisher(parts).publish(SOURCE, TARGET, ("linux/amd64",))

    assert run.failed
    assert run.report.probe_fallback
    assert "assumed, probe failed" in run.architecture_summary
    assert run.error.context["platforms"] == ["linux/amd64"]
    daemon.push.assert_not_called()


def test_login_failure_stops_before_probe(parts):
    daemon, buildkit, prober = parts
    daemon.login.side_effect = BuildError("registry login failed")

    run = make_publisher(parts).publish(SOURCE, TARGET, ("linux/amd64",))

    assert run.history == [PublishState.IDLE, PublishState.FAILED]
    prober.probe_or_default.assert_not_called()


def test_illegal_transition_is_rejected():
    run = PublishRun(source=SOURCE, target=TARGET, requested=("linux/amd64",))
    with pytest.raises(SystemFailureError):
        run.advance(PublishState.PUSHED)

    run.fail(BuildError("boom"))
    with pytest.raises(SystemFailureError):
        run.advance(PublishState.FAILED)


def test_unexpected_error_becomes_system_failure(parts):
    daemon, buildkit, prober = parts
    prober.probe_or_default.return_value = (("linux/amd64",), False)
    daemon.push.side_effect = ConnectionError("connection aborted")

    run = make_publisher(parts).publish(SOURCE, TARGET, ("linux/amd64",))

    assert run.failed
    assert isinstance(run.error, SystemFailureError)
    assert isinstance(run.error.cause, ConnectionError)
    assert run.history[-2:] == [PublishState.BUILT, PublishState.FAILED]
