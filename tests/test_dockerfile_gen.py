import tarfile

from image_porter.builders.dockerfile_gen import DockerfileGenerator


def test_dockerfile_gen_single_from_line():
    generator = DockerfileGenerator()
    df = generator.generate(source_image="gcr.io/google-containers/pause:3.2")

    assert df == "FROM gcr.io/google-containers/pause:3.2\n"


def test_dockerfile_gen_keeps_digest():
    df = DockerfileGenerator().generate(source_image="docker.io/library/nginx@sha256:abc123")
    assert "FROM docker.io/library/nginx@sha256:abc123" in df


def test_dockerfile_gen_custom_template():
    generator = DockerfileGenerator(template="FROM {{ source_image }}\nLABEL mirrored=true\n")
    df = generator.generate(source_image="quay.io/coreos/etcd:v3.5.0")
    assert 'LABEL mirrored=true' in df


def test_build_context_holds_only_dockerfile():
    context = DockerfileGenerator().build_context("quay.io/coreos/etcd:v3.5.0")

    with tarfile.open(fileobj=context, mode="r") as tar:
        assert tar.getnames() == ["Dockerfile"]
        content = tar.extractfile("Dockerfile").read().decode("utf-8")
    assert content == "FROM quay.io/coreos/etcd:v3.5.0\n"
