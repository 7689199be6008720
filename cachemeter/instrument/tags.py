"""Immutable key/value tag sets shared by every meter.

A ``Tags`` instance is sorted by key and holds at most one value per key.
When the same key is supplied more than once, the last value wins, which is
what lets a binder layer its mandatory ``cache`` tag over caller tags.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Union

from cachemeter.core.errors import InvalidTagsError


@dataclass(frozen=True, order=True)
class Tag:
    key: str
    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key:
            raise InvalidTagsError(f"Tag key must be a non-empty string, got {self.key!r}")
        if not isinstance(self.value, str) or not self.value:
            raise InvalidTagsError(f"Tag value for {self.key!r} must be a non-empty string, got {self.value!r}")


TagsLike = Union["Tags", Mapping[str, str], Iterable[Any], None]


class Tags:
    __slots__ = ("_tags",)

    def __init__(self, tags: Iterable[Tag] = ()) -> None:
        merged: dict[str, Tag] = {}
        for tag in tags:
            merged[tag.key] = tag
        self._tags: tuple[Tag, ...] = tuple(sorted(merged.values()))

    @classmethod
    def empty(cls) -> Tags:
        return cls()

    @classmethod
    def of(cls, *args: Any) -> Tags:
        """Build tags from an even run of strings or a single tags-like value.

        ``Tags.of("region", "eu", "tier", "hot")`` and
        ``Tags.of({"region": "eu"})`` are both accepted, as are iterables of
        ``Tag`` objects or ``(key, value)`` pairs.
        """

        if not args:
            return cls()
        if len(args) == 1 and not isinstance(args[0], str):
            return cls._from_tags_like(args[0])
        if not all(isinstance(arg, str) for arg in args):
            raise InvalidTagsError("Tags given as positional arguments must all be strings")
        if len(args) % 2 != 0:
            raise InvalidTagsError(
                f"Tags must be an even number of key/value strings, got {len(args)}"
            )
        return cls(Tag(args[i], args[i + 1]) for i in range(0, len(args), 2))

    @classmethod
    def _from_tags_like(cls, value: TagsLike) -> Tags:
        if value is None:
            return cls()
        if isinstance(value, Tags):
            return value
        if isinstance(value, Mapping):
            return cls(Tag(k, v) for k, v in value.items())
        tags: list[Tag] = []
        for item in value:
            if isinstance(item, Tag):
                tags.append(item)
                continue
            try:
                key, tag_value = item
            except (TypeError, ValueError):
                raise InvalidTagsError(f"Cannot interpret {item!r} as a key/value tag") from None
            tags.append(Tag(key, tag_value))
        return cls(tags)

    @classmethod
    def concat(cls, tags: TagsLike, *other: Any) -> Tags:
        return cls.of(tags).and_(*other)

    def and_(self, *args: Any) -> Tags:
        """Return a new set with ``args`` merged over this one."""

        extra = Tags.of(*args)
        if not extra:
            return self
        if not self:
            return extra
        return Tags((*self._tags, *extra._tags))

    def as_dict(self) -> dict[str, str]:
        return {tag.key: tag.value for tag in self._tags}

    def get(self, key: str) -> str | None:
        for tag in self._tags:
            if tag.key == key:
                return tag.value
        return None

    def __iter__(self) -> Iterator[Tag]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tags):
            return NotImplemented
        return self._tags == other._tags

    def __hash__(self) -> int:
        return hash(self._tags)

    def __repr__(self) -> str:
        inner = ",".join(f"{tag.key}={tag.value}" for tag in self._tags)
        return f"Tags[{inner}]"


__all__ = ["Tag", "Tags", "TagsLike"]
