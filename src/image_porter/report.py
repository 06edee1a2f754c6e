"""Renders the Markdown report posted back to the requester."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from jinja2 import Template

from .errors import format_user_error
from .logging_utils import redact

if TYPE_CHECKING:
    from .pipeline import BuildOutcome

TROUBLESHOOTING_HINTS = [
    "Check that the image name and tag are spelled correctly",
    "Confirm the upstream image exists and is publicly pullable",
    "Check the requested platforms against the ones the upstream image provides",
    "Read the full build log for the failing step",
]

SUCCESS_TEMPLATE = """\
**✅ Image ported**

```bash
# Source image
{{ source }}

# Ported image
{{ target }}

# Pull and rename
docker pull {{ target }}{% if pull_platform %} --platform {{ pull_platform }}{% endif %}

docker tag {{ target }} {{ tag_name }}

docker images | grep $(echo {{ tag_name }} | awk -F':' '{print $1}')
```
{% if architecture %}
{{ architecture }}
{% endif %}{% if build_path %}🔧 **Build path**: {{ build_path }}
{% endif %}
{% for warning in hook_warnings %}
⚠️ Post-processing warning: {{ warning }}
{% endfor %}
---
📋 **Build details**: [build log]({{ log_url }})
"""

FAILURE_TEMPLATE = """\
**❌ Image porting failed**

{{ summary }}

**Error details**:
```
{{ details }}
```
{% if architecture %}
{{ architecture }}
{% endif %}{% if build_path %}🔧 **Build path**: {{ build_path }}
{% endif %}
---
🔍 **Troubleshooting**:
{% for hint in hints %}{{ loop.index }}. {{ hint }}
{% endfor %}
📋 **Build details**: [build log]({{ log_url }})
"""

_success = Template(SUCCESS_TEMPLATE, keep_trailing_newline=True)
_failure = Template(FAILURE_TEMPLATE, keep_trailing_newline=True)


def progress_comment(log_url: str) -> str:
    return f"🚀 Porting started, follow the progress in the [build log]({log_url})"


def render_report(
    outcome: BuildOutcome, log_url: str, requester: str = "", secrets: Iterable[str] = ()
) -> str:
    if outcome.success:
        text = _render_success(outcome, log_url)
    else:
        text = _failure.render(
            summary=format_user_error(outcome.error, requester) if outcome.error else "",
            details=outcome.error_detail,
            architecture=outcome.architecture_summary,
            build_path=outcome.strategy.label if outcome.strategy else "",
            hints=TROUBLESHOOTING_HINTS,
            log_url=log_url,
        )
    return redact(text, secrets)


def _render_success(outcome: BuildOutcome, log_url: str) -> str:
    pull_platform = ""
    # docker pull takes a single platform
    if outcome.platforms_named and outcome.report and len(outcome.report.resolved) == 1:
        pull_platform = outcome.report.resolved[0]

    return _success.render(
        source=outcome.source,
        target=outcome.target,
        tag_name=outcome.source.without_digest() if outcome.source else "",
        pull_platform=pull_platform,
        architecture=outcome.architecture_summary,
        build_path=outcome.strategy.label if outcome.strategy else "",
        hook_warnings=outcome.hook_warnings,
        log_url=log_url,
    )
