"""Build description synthesis for re-basing an upstream image."""

from __future__ import annotations

import io
import tarfile
from typing import Optional

from jinja2 import Template

# The mirrored image is the upstream image unchanged: a single FROM line.
# BuildKit resolves it per target platform, so the same description serves
# both the daemon and the buildx path.
DOCKERFILE_TEMPLATE = """\
FROM {{ source_image }}
"""

DOCKERFILE_NAME = "Dockerfile"


class DockerfileGenerator:
    """Renders the Dockerfile that re-bases ``FROM <source image>``."""

    def __init__(self, template: Optional[str] = None):
        self.template = Template(template or DOCKERFILE_TEMPLATE, keep_trailing_newline=True)

    def generate(self, source_image: str) -> str:
        """
        Renders the Dockerfile template.

        Args:
            source_image: Fully qualified upstream reference (tag or digest kept).
        """
        return self.template.render(source_image=source_image)

    def build_context(self, source_image: str) -> io.BytesIO:
        """Returns an in-memory tar build context holding only the Dockerfile."""
        content = self.generate(source_image).encode("utf-8")

        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as tar:
            info = tarfile.TarInfo(name=DOCKERFILE_NAME)
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))
        buffer.seek(0)
        return buffer
