"""
ContentAddress value type.

Identifies a node of the content hierarchy (subject / type / content) by path.
Used as the join key between proposals, watch items, audit records and
notifications; never as an ownership pointer.
"""

from urllib.parse import quote, unquote

from pydantic import BaseModel, ConfigDict, model_validator

from reviewflow.utils.exceptions import ValidationError


def _normalize(path: str) -> str:
    segments = [segment for segment in path.strip().split("/") if segment]
    return "/" + "/".join(segments) if segments else ""


class ContentAddress(BaseModel):
    """
    Immutable, normalized content path.

    Canonical shape is ``/subjects/{s}/types/{t}/contents/{c}`` or a prefix of it.
    Other absolute paths are accepted and treated as opaque.
    """

    model_config = ConfigDict(frozen=True)

    path: str

    @model_validator(mode="before")
    @classmethod
    def _normalize_path(cls, data):
        if isinstance(data, str):
            data = {"path": data}
        if isinstance(data, dict) and isinstance(data.get("path"), str):
            data = {**data, "path": _normalize(data["path"])}
        return data

    @model_validator(mode="after")
    def _require_path(self) -> "ContentAddress":
        if not self.path:
            raise ValueError("content address must not be empty")
        return self

    @classmethod
    def parse(cls, value: "str | ContentAddress | None") -> "ContentAddress":
        """
        Parse a path string into a ContentAddress.

        Raises:
            ValidationError: If the path is empty or not a string
        """
        if isinstance(value, ContentAddress):
            return value
        if not isinstance(value, str) or not _normalize(value):
            raise ValidationError(
                "target path must be a non-empty path", context={"target_path": value}
            )
        return cls(path=value)

    @classmethod
    def for_content(
        cls, subject: str, type_id: str | None = None, content: str | None = None
    ) -> "ContentAddress":
        """Build the canonical address of a subject, a type, or a content node."""
        if content is not None and type_id is None:
            raise ValidationError("content address requires a type id")
        parts = ["subjects", subject]
        if type_id is not None:
            parts += ["types", type_id]
        if content is not None:
            parts += ["contents", content]
        return cls.parse("/".join(parts))

    @classmethod
    def from_key(cls, key: str) -> "ContentAddress":
        """Inverse of :attr:`key`."""
        return cls.parse(unquote(key))

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(self.path.strip("/").split("/"))

    @property
    def key(self) -> str:
        """Storage-safe document id for this address (reversible)."""
        return quote(self.path, safe="")

    def ancestors(self) -> list["ContentAddress"]:
        """Every proper prefix of this address, root-most first."""
        segments = self.segments
        return [
            ContentAddress(path="/" + "/".join(segments[:depth]))
            for depth in range(1, len(segments))
        ]

    def lineage(self) -> list["ContentAddress"]:
        """Ancestors followed by the address itself."""
        return [*self.ancestors(), self]

    def is_ancestor_of(self, other: "ContentAddress") -> bool:
        """True if ``other`` lies strictly below this address."""
        return other.path.startswith(self.path + "/")

    def __str__(self) -> str:
        return self.path
