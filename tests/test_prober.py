import json
import subprocess

import pytest
from docker.errors import APIError, ImageNotFound

from image_porter.errors import ProbeError
from image_porter.prober import ArchitectureProber, clean_platforms, parse_manifest_platforms


def test_parse_manifest_list():
    data = {
        "manifests": [
            {"platform": {"os": "linux", "architecture": "amd64"}},
            {"platform": {"os": "linux", "architecture": "arm64"}},
            {"platform": {"os": "unknown", "architecture": "unknown"}},
        ]
    }
    assert clean_platforms(parse_manifest_platforms(data)) == ("linux/amd64", "linux/arm64")


def test_parse_verbose_entries():
    data = [
        {"Descriptor": {"platform": {"os": "linux", "architecture": "amd64"}}},
        {"Descriptor": {"platform": {"os": "linux", "architecture": "s390x"}}},
    ]
    assert parse_manifest_platforms(data) == ["linux/amd64", "linux/s390x"]


def test_parse_single_manifest():
    assert parse_manifest_platforms({"os": "linux", "architecture": "arm64"}) == ["linux/arm64"]
    assert parse_manifest_platforms({"schemaVersion": 2}) == []


def test_probe_reads_registry_before_cached_single_platform_image(mocker):
    client = mocker.MagicMock()
    client.images.get.return_value.attrs = {"Os": "linux", "Architecture": "amd64"}
    client.images.get_registry_data.return_value.attrs = {
        "Platforms": [
            {"os": "linux", "architecture": "amd64"},
            {"os": "linux", "architecture": "arm64"},
        ]
    }

    assert ArchitectureProber(client).probe("nginx:latest") == ("linux/amd64", "linux/arm64")
    client.images.get.assert_not_called()


def test_probe_uses_manifest_inspect_when_registry_data_fails(mocker):
    client = mocker.MagicMock()
    client.images.get.side_effect = ImageNotFound("missing")
    client.images.get_registry_data.side_effect = APIError("denied")
    run = mocker.patch("image_porter.prober.subprocess.run")
    run.return_value.stdout = json.dumps({"os": "linux", "architecture": "arm64"})

    assert ArchitectureProber(client).probe("quay.io/coreos/etcd:v3.5.0") == ("linux/arm64",)
    assert run.call_args[0][0] == ["docker", "manifest", "inspect", "--verbose", "quay.io/coreos/etcd:v3.5.0"]
    client.images.get.assert_not_called()


def test_probe_falls_back_to_local_cache_last(mocker):
    client = mocker.MagicMock()
    client.images.get_registry_data.side_effect = APIError("denied")
    client.images.get.return_value.attrs = {"Os": "linux", "Architecture": "arm64"}
    mocker.patch(
        "image_porter.prober.subprocess.run",
        side_effect=subprocess.CalledProcessError(1, "docker"),
    )

    assert ArchitectureProber(client).probe("registry.internal/app:1") == ("linux/arm64",)


def test_probe_failure_falls_back_to_default(mocker):
    mocker.patch(
        "image_porter.prober.subprocess.run",
        side_effect=subprocess.CalledProcessError(1, "docker"),
    )
    prober = ArchitectureProber()

    with pytest.raises(ProbeError) as excinfo:
        prober.probe("gcr.io/none/such:1")
    assert excinfo.value.context["attempts"]

    assert prober.probe_or_default("gcr.io/none/such:1") == (("linux/amd64",), True)
