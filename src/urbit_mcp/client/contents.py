"""Typed post contents (text, url, mention, code)."""

from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict

from ..models import MalformedNodeError


class TextContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str

    def display(self) -> str:
        return self.text


class UrlContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str

    def display(self) -> str:
        return self.url


class MentionContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    mention: str

    def display(self) -> str:
        return f"~{self.mention.lstrip('~')}"


class CodeContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    expression: str
    output: Any = None

    def display(self) -> str:
        return self.expression

    def to_wire(self) -> dict[str, Any]:
        return {"code": {"expression": self.expression, "output": self.output}}


ContentItem = Union[TextContent, UrlContent, MentionContent, CodeContent]

_SIMPLE_KINDS: dict[str, type[BaseModel]] = {
    "text": TextContent,
    "url": UrlContent,
    "mention": MentionContent,
}


class ContentList(BaseModel):
    """Immutable, ordered list of content items.

    The ``add_*`` builders return a new list; the receiver is never touched.
    An empty list marks a structural node (a comment or revision container).
    """

    model_config = ConfigDict(frozen=True)

    items: tuple[ContentItem, ...] = ()

    def _with(self, item: ContentItem) -> "ContentList":
        return ContentList(items=self.items + (item,))

    def add_text(self, text: str) -> "ContentList":
        return self._with(TextContent(text=text))

    def add_url(self, url: str) -> "ContentList":
        return self._with(UrlContent(url=url))

    def add_mention(self, ship: str) -> "ContentList":
        return self._with(MentionContent(mention=ship))

    def add_code(self, expression: str, output: Any = None) -> "ContentList":
        return self._with(CodeContent(expression=expression, output=output))

    def is_empty(self) -> bool:
        return len(self.items) == 0

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, i: int) -> ContentItem:
        return self.items[i]

    def to_wire_value(self) -> list[dict[str, Any]]:
        wire: list[dict[str, Any]] = []
        for item in self.items:
            if isinstance(item, CodeContent):
                wire.append(item.to_wire())
            else:
                wire.append(item.model_dump())
        return wire

    @classmethod
    def from_wire_value(cls, items: Any) -> "ContentList":
        if not isinstance(items, list):
            raise MalformedNodeError(f"Post contents must be a list, got {type(items).__name__}")

        parsed: list[ContentItem] = []
        for raw in items:
            if not isinstance(raw, dict) or len(raw) != 1:
                raise MalformedNodeError(f"Unrecognised content item: {raw!r}")
            (kind, value), = raw.items()
            if kind == "code":
                if not isinstance(value, dict) or not isinstance(value.get("expression"), str):
                    raise MalformedNodeError(f"Malformed code content: {raw!r}")
                parsed.append(CodeContent(expression=value["expression"], output=value.get("output")))
            elif kind in _SIMPLE_KINDS and isinstance(value, str):
                parsed.append(_SIMPLE_KINDS[kind](**raw))
            else:
                raise MalformedNodeError(f"Unrecognised content item: {raw!r}")
        return cls(items=tuple(parsed))

    def to_display_string(self) -> str:
        """Human-facing rendering; never used for protocol framing."""
        return " ".join(item.display() for item in self.items).strip()
