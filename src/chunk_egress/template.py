# src/chunk_egress/template.py

"""
Object key template engine.

A key template is a plain string containing ``%{name}`` placeholders, for
example ``%{path}/%{time_slice}_%{index}.%{file_extension}``. Templates are
parsed once, at configuration time, into an immutable sequence of literal and
placeholder segments. Every placeholder is classified by when its value
becomes known:

- STATIC: fixed for the lifetime of the output (``path``, ``file_extension``).
- METADATA: fixed for one chunk (``time_slice``).
- ATTEMPT: may change on every collision-resolution attempt (``index``,
  ``hex_random``, ``uuid_flush``).
- UNKNOWN: anything else. Unknown placeholders are left in the key verbatim.

Rendering happens in two passes. ``KeyTemplate.bind`` substitutes the static
and metadata values once per chunk and returns a ``BoundTemplate``;
``BoundTemplate.render`` fills the attempt values and is called once per
attempt. Besides ``%{...}`` placeholders, the first pass expands ``strftime``
directives in literal text against the chunk time and ``${tag}``,
``${tag[N]}`` and ``${name}`` chunk keys from the chunk metadata.
"""

import logging
import re
import socket
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional, Union

from .exceptions import ConfigurationError, InvalidConfigurationError
from .schemas import ChunkMetadata

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"%\{([^}]+)\}")
CHUNK_KEY_PATTERN = re.compile(r"\$\{([^}\[\]]+)(?:\[(-?\d+)\])?\}")
INDEX_FORMAT_PATTERN = re.compile(r"^%(0\d*)?[dxX]$")

REMOVED_PLACEHOLDERS = ("uuid", "uuid:random", "uuid:hostname", "uuid:timestamp")
DEPRECATED_HOSTNAME = "hostname"


class PlaceholderKind(Enum):
    STATIC = "static"
    METADATA = "metadata"
    ATTEMPT = "attempt"
    UNKNOWN = "unknown"


PLACEHOLDER_KINDS: dict[str, PlaceholderKind] = {
    "path": PlaceholderKind.STATIC,
    "file_extension": PlaceholderKind.STATIC,
    "time_slice": PlaceholderKind.METADATA,
    "index": PlaceholderKind.ATTEMPT,
    "hex_random": PlaceholderKind.ATTEMPT,
    "uuid_flush": PlaceholderKind.ATTEMPT,
}


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Placeholder:
    name: str
    kind: PlaceholderKind

    @property
    def token(self) -> str:
        return f"%{{{self.name}}}"


Segment = Union[Literal, Placeholder]


def validate_index_format(index_format: str) -> str:
    """
    Checks a ``%{index}`` format string. ``0`` is the only supported flag and
    is mandatory when a width is given; ``d``, ``x`` and ``X`` are the
    supported types.
    """
    if not INDEX_FORMAT_PATTERN.match(index_format):
        raise InvalidConfigurationError(
            "index_format",
            index_format,
            reason=(
                "should follow `%[flags][width]type`. `0` is the only supported "
                "flag, and is mandatory if width is specified. `d`, `x` and `X` "
                "are supported types"
            ),
        )
    return index_format


def format_index(index_format: str, index: int) -> str:
    return index_format % index


def time_slice_format(timekey_seconds: int) -> str:
    """Returns the strftime pattern matching the time bucket granularity."""
    if timekey_seconds < 60:
        return "%Y%m%d%H%M%S"
    if timekey_seconds < 3600:
        return "%Y%m%d%H%M"
    if timekey_seconds < 86400:
        return "%Y%m%d%H"
    return "%Y%m%d"


def _expand_chunk_keys(text: str, metadata: ChunkMetadata) -> str:
    def replace(match: re.Match) -> str:
        name, position = match.group(1), match.group(2)
        if name == "tag" and metadata.tag is not None:
            if position is None:
                return metadata.tag
            parts = metadata.tag.split(".")
            try:
                return parts[int(position)]
            except IndexError:
                return match.group(0)
        if position is None and name in metadata.variables:
            return metadata.variables[name]
        return match.group(0)

    return CHUNK_KEY_PATTERN.sub(replace, text)


@dataclass(frozen=True)
class BoundTemplate:
    """A template whose static and metadata placeholders are already resolved."""

    parts: tuple[Union[str, Placeholder], ...]

    @property
    def attempt_placeholders(self) -> frozenset[str]:
        return frozenset(
            part.name
            for part in self.parts
            if isinstance(part, Placeholder) and part.kind is PlaceholderKind.ATTEMPT
        )

    def render(self, attempt_values: Mapping[str, str]) -> str:
        rendered = []
        for part in self.parts:
            if isinstance(part, str):
                rendered.append(part)
            elif part.kind is PlaceholderKind.ATTEMPT:
                rendered.append(attempt_values.get(part.name, part.token))
            else:
                rendered.append(part.token)
        return "".join(rendered)


@dataclass(frozen=True)
class KeyTemplate:
    """An immutable, parsed object key template."""

    source: str
    segments: tuple[Segment, ...]

    @classmethod
    def parse(cls, key_format: str, hostname: Optional[str] = None) -> "KeyTemplate":
        """
        Parses and validates a key format.

        Raises ConfigurationError when the format references a removed
        placeholder. ``%{hostname}`` is deprecated and replaced by the host
        name right away.
        """
        for name in REMOVED_PLACEHOLDERS:
            if f"%{{{name}}}" in key_format:
                raise ConfigurationError(
                    f"%{{{name}}} placeholder in object key format is removed",
                    context={"placeholder": name, "key_format": key_format},
                )

        segments: list[Segment] = []
        position = 0
        for match in PLACEHOLDER_PATTERN.finditer(key_format):
            if match.start() > position:
                segments.append(Literal(key_format[position : match.start()]))
            name = match.group(1)
            if name == DEPRECATED_HOSTNAME:
                resolved = hostname or socket.gethostname()
                logger.warning(
                    f"%{{hostname}} will be removed in the future. Use `{resolved}` instead.",
                    extra={"key_format": key_format},
                )
                segments.append(Literal(resolved))
            else:
                kind = PLACEHOLDER_KINDS.get(name, PlaceholderKind.UNKNOWN)
                segments.append(Placeholder(name, kind))
            position = match.end()
        if position < len(key_format):
            segments.append(Literal(key_format[position:]))

        return cls(source=key_format, segments=tuple(segments))

    def uses(self, name: str) -> bool:
        return any(
            isinstance(segment, Placeholder) and segment.name == name
            for segment in self.segments
        )

    @property
    def attempt_placeholders(self) -> frozenset[str]:
        return frozenset(
            segment.name
            for segment in self.segments
            if isinstance(segment, Placeholder)
            and segment.kind is PlaceholderKind.ATTEMPT
        )

    def bind(
        self,
        static_values: Mapping[str, str],
        metadata_values: Mapping[str, str],
        time: Optional[datetime] = None,
        chunk_metadata: Optional[ChunkMetadata] = None,
    ) -> BoundTemplate:
        """
        First rendering pass: substitutes static and metadata placeholders.

        Attempt and unknown placeholders, as well as static or metadata
        placeholders with no supplied value, are kept for the second pass.
        """
        parts: list[Union[str, Placeholder]] = []
        text: list[str] = []

        def flush_text() -> None:
            if text:
                parts.append(self._expand_text("".join(text), time, chunk_metadata))
                text.clear()

        for segment in self.segments:
            if isinstance(segment, Literal):
                text.append(segment.text)
                continue
            if segment.kind is PlaceholderKind.STATIC and segment.name in static_values:
                text.append(static_values[segment.name])
                continue
            if (
                segment.kind is PlaceholderKind.METADATA
                and segment.name in metadata_values
            ):
                text.append(metadata_values[segment.name])
                continue
            flush_text()
            parts.append(segment)
        flush_text()

        return BoundTemplate(parts=tuple(parts))

    @staticmethod
    def _expand_text(
        text: str, time: Optional[datetime], chunk_metadata: Optional[ChunkMetadata]
    ) -> str:
        if time is not None and "%" in text:
            text = time.strftime(text)
        if chunk_metadata is not None and "${" in text:
            text = _expand_chunk_keys(text, chunk_metadata)
        return text


def render(
    template: KeyTemplate,
    static_values: Mapping[str, str],
    metadata_values: Mapping[str, str],
    attempt_values: Mapping[str, str],
) -> str:
    """Renders a template in one call, running both passes."""
    return template.bind(static_values, metadata_values).render(attempt_values)
