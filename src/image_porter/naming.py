"""Image reference parsing and the rule-based name rewriter.

The rewriter never touches the network. It turns whatever the requester typed
into a canonical source reference, maps the source registry onto a namespace
literal using an ordered rule table, and composes the target reference under
the configured target registry/namespace.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Iterable, Iterator, List, Mapping, Optional, Pattern, Tuple

from .errors import ConfigError, ValidationError

logger = logging.getLogger(__name__)

DOCKER_HUB = "docker.io"
DOCKER_HUB_LIBRARY = "library"

MAX_REFERENCE_LENGTH = 255
DANGEROUS_CHARACTERS = (";", "&", "|", "`", "$", "(", ")", "{", "}", "[", "]", "<", ">")
_VALID_REFERENCE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._:/@-]*[a-zA-Z0-9]$")
_SANITIZE_CHARACTERS = ("\n", "\r", "\t", ";", "&", "|", "`", "$")


@dataclass(frozen=True)
class ImageReference:
    """A parsed image reference. ``str()`` renders it back to text."""

    repository: str
    registry: str = ""
    namespace: str = ""
    tag: Optional[str] = None
    digest: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.repository:
            raise ValidationError("image repository name must not be empty")

    @property
    def name(self) -> str:
        """Registry, namespace and repository without tag or digest."""
        return "/".join(p for p in (self.registry, self.namespace, self.repository) if p)

    @property
    def host(self) -> str:
        return self.registry or DOCKER_HUB

    def without_digest(self) -> ImageReference:
        return replace(self, digest=None)

    def __str__(self) -> str:
        text = self.name
        if self.tag:
            text += f":{self.tag}"
        if self.digest:
            text += f"@{self.digest}"
        return text


@dataclass(frozen=True)
class RewriteRule:
    """Maps a registry prefix (anchored regex) onto a literal namespace."""

    source: str
    pattern: Pattern[str]
    namespace: str

    @classmethod
    def compile(cls, pattern: str, namespace: str) -> RewriteRule:
        anchored = pattern if pattern.startswith("^") else f"^{pattern}"
        try:
            compiled = re.compile(anchored)
        except re.error as e:
            raise ConfigError(f"invalid rewrite rule pattern {pattern!r}", cause=e) from e
        return cls(source=pattern, pattern=compiled, namespace=namespace or "")

    def matches(self, text: str) -> bool:
        return self.pattern.match(text) is not None

    def apply(self, text: str) -> str:
        # The replacement is a literal, not a regex template.
        return self.pattern.sub(lambda _m: self.namespace, text, count=1)


class RewriteRuleSet:
    """Ordered rule table, evaluated first-match-wins."""

    def __init__(self, rules: Iterable[RewriteRule]):
        self._rules: List[RewriteRule] = list(rules)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> RewriteRuleSet:
        return cls(RewriteRule.compile(p, ns) for p, ns in mapping.items())

    @property
    def patterns(self) -> List[str]:
        return [rule.source for rule in self._rules]

    def first_match(self, text: str) -> Optional[RewriteRule]:
        for rule in self._rules:
            if rule.matches(text):
                return rule
        return None

    def __iter__(self) -> Iterator[RewriteRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)


def _split_reference(text: str) -> Tuple[str, Optional[str], Optional[str]]:
    """Split ``path[:tag][@digest]`` into its parts.

    The tag is only looked for in the last path segment so a registry port
    (``host:5000/app``) is never mistaken for a tag.
    """
    digest = None
    if "@" in text:
        text, digest = text.split("@", 1)

    tag = None
    head, _, last = text.rpartition("/")
    if ":" in last:
        last, tag = last.rsplit(":", 1)
    path = f"{head}/{last}" if head else last
    return path, tag or None, digest or None


def _has_registry_host(segment: str) -> bool:
    return "." in segment or ":" in segment or segment == "localhost"


def normalize(raw: str) -> ImageReference:
    """Parse ``raw`` into a fully qualified reference.

    ``nginx:latest`` becomes ``docker.io/library/nginx:latest`` and
    ``bitnami/redis`` becomes ``docker.io/bitnami/redis``. A first path
    segment counts as a registry host only when it contains a dot or a port,
    or is ``localhost``.
    """
    text = (raw or "").strip()
    if not text:
        raise ValidationError("image reference must not be empty")

    path, tag, digest = _split_reference(text)
    segments = path.split("/")
    if any(not segment for segment in segments):
        raise ValidationError(f"malformed image reference: {raw}")

    if len(segments) > 1 and _has_registry_host(segments[0]):
        registry, rest = segments[0], segments[1:]
    else:
        registry, rest = DOCKER_HUB, segments

    if registry == DOCKER_HUB and len(rest) == 1:
        rest = [DOCKER_HUB_LIBRARY, rest[0]]

    return ImageReference(
        registry=registry,
        namespace="/".join(rest[:-1]),
        repository=rest[-1],
        tag=tag,
        digest=digest,
    )


def rewrite(ref: ImageReference, rules: RewriteRuleSet) -> ImageReference:
    """Replace the registry prefix of ``ref`` using the first matching rule.

    The digest is dropped first since rules work on names and tags. Raises
    ValidationError when no rule applies: that means the upstream registry is
    not supported, not that the name can be passed through unchanged.
    """
    text = str(ref.without_digest())
    rule = rules.first_match(text)
    rewritten = rule.apply(text) if rule else text

    if rule is None or rewritten == text:
        supported = ", ".join(rules.patterns) or "(none)"
        raise ValidationError(
            f"unsupported registry {ref.host}; supported registries: {supported}",
            context={"image": str(ref), "registry": ref.host},
        )

    path, tag, _ = _split_reference(rewritten)
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        raise ValidationError(
            f"rewrite rule {rule.source!r} left no repository name for {text}",
            context={"image": text, "rule": rule.source},
        )

    logger.debug("Rule %r rewrote %s -> %s", rule.source, text, rewritten)
    return ImageReference(
        registry="",
        namespace="/".join(segments[:-1]),
        repository=segments[-1],
        tag=tag,
    )


def build_target(
    ref: ImageReference, target_registry: str = "", target_namespace: str = ""
) -> ImageReference:
    """Compose ``target_registry/target_namespace/repository:tag``.

    Empty registry or namespace segments are omitted.
    """
    return ImageReference(
        registry=(target_registry or "").strip("/"),
        namespace=(target_namespace or "").strip("/"),
        repository=ref.repository,
        tag=ref.tag,
    )


def validate_reference(text: str, label: str = "image") -> None:
    """Reject references that are empty, too long or could reach a shell."""
    if not text:
        raise ValidationError(f"{label} reference must not be empty")
    if len(text) > MAX_REFERENCE_LENGTH:
        raise ValidationError(
            f"{label} reference exceeds {MAX_REFERENCE_LENGTH} characters",
            context={label: text[:64] + "..."},
        )
    found = [c for c in DANGEROUS_CHARACTERS if c in text]
    if found:
        raise ValidationError(
            f"{label} reference contains forbidden characters: {' '.join(found)}",
            context={label: text},
        )
    if not _VALID_REFERENCE.match(text):
        raise ValidationError(f"invalid {label} reference: {text}", context={label: text})


def sanitize(text: str) -> str:
    """Strip control and shell characters from free-form ticket input."""
    for character in _SANITIZE_CHARACTERS:
        text = text.replace(character, "")
    return text.strip()


class ImageTransformer:
    """Turns a requested image into a validated (source, target) pair."""

    def __init__(self, rules: RewriteRuleSet):
        self.rules = rules

    def transform(
        self, raw: str, target_registry: str = "", target_namespace: str = ""
    ) -> Tuple[ImageReference, ImageReference]:
        validate_reference((raw or "").strip(), label="requested image")

        source = normalize(raw)
        rewritten = rewrite(source, self.rules)
        target = build_target(rewritten, target_registry, target_namespace)

        validate_reference(str(source), label="source image")
        validate_reference(str(target), label="target image")

        logger.info("Image name transformed: %s -> %s", source, target)
        return source, target
