"""Jinja2 template renderer for ledger comments.

Resolves templates with a two-tier loader:
1. User-specified ``templates_path`` (overrides)
2. Built-in templates shipped with the package

Comments are Markdown, so autoescaping is off; values that come from
requesters are only ever placed inside code spans or fenced blocks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from jinja2 import BaseLoader, ChoiceLoader, Environment, FileSystemLoader, PackageLoader, StrictUndefined

if TYPE_CHECKING:
    from devkeyring.core.types import LedgerMessage


class MessageRenderer:
    """Renders ledger comment bodies from Jinja2 templates."""

    def __init__(self, templates_path: str | None = None) -> None:
        loaders: list[BaseLoader] = []
        if templates_path:
            loaders.append(FileSystemLoader(templates_path))
        loaders.append(PackageLoader("devkeyring.notifications", "templates"))

        self._env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=False,  # noqa: S701
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )

    def render(self, message: LedgerMessage, context: dict[str, Any] | None = None) -> str:
        """Render the comment body for *message*.

        A ``marker`` entry in *context* (a structured event line) is
        appended after the body.
        """
        context = dict(context or {})
        marker = context.pop("marker", None)
        body = self._env.get_template(f"{message.value}.md").render(**context).rstrip() + "\n"
        if marker:
            body += f"\n{marker}\n"
        return body
