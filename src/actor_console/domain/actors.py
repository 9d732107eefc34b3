from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _unwrap(payload: Any) -> Dict[str, Any]:
    data = _as_dict(payload)
    if "data" in data and isinstance(data["data"], Mapping):
        return dict(data["data"])
    return data


@dataclass(frozen=True)
class ActorSummary:
    """One entry of the actor listing."""

    actor_id: str
    username: str
    name: str
    title: str

    @property
    def label(self) -> str:
        return f"{self.username}/{self.name} - {self.title}"

    @classmethod
    def from_api(cls, item: Mapping[str, Any]) -> "ActorSummary":
        name = str(item.get("name") or "")
        return cls(
            actor_id=str(item.get("id") or ""),
            username=str(item.get("username") or ""),
            name=name,
            title=str(item.get("title") or name),
        )


def parse_actor_listing(payload: Any) -> List[ActorSummary]:
    items = _unwrap(payload).get("items")
    if not isinstance(items, list):
        return []
    return [ActorSummary.from_api(item) for item in items if isinstance(item, Mapping)]


@dataclass(frozen=True)
class ActorDescriptor:
    actor_id: str
    username: str
    name: str
    title: str
    description: str
    is_public: Optional[bool] = None
    categories: List[str] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    default_run_options: Dict[str, Any] = field(default_factory=dict)
    example_input_body: str = ""
    example_input_content_type: str = ""
    created_at: str = ""
    modified_at: str = ""
    picture_url: str = ""

    @classmethod
    def placeholder(cls, actor_id: str) -> "ActorDescriptor":
        """Descriptor shown before upstream details arrive (``user/name`` ids)."""
        username, _, name = actor_id.partition("/")
        return cls(
            actor_id=actor_id,
            username=username if name else "unknown",
            name=name or actor_id,
            title=actor_id,
            description="Loading actor details...",
        )

    @classmethod
    def from_api(cls, payload: Any) -> "ActorDescriptor":
        data = _unwrap(payload)
        name = str(data.get("name") or "")
        example = _as_dict(data.get("exampleRunInput"))
        is_public = data.get("isPublic")
        categories = data.get("categories")
        return cls(
            actor_id=str(data.get("id") or ""),
            username=str(data.get("username") or ""),
            name=name,
            title=str(data.get("title") or name),
            description=str(data.get("description") or "No description available"),
            is_public=is_public if isinstance(is_public, bool) else None,
            categories=[str(c) for c in categories] if isinstance(categories, list) else [],
            stats=_as_dict(data.get("stats")),
            default_run_options=_as_dict(data.get("defaultRunOptions")),
            example_input_body=str(example.get("body") or ""),
            example_input_content_type=str(example.get("contentType") or ""),
            created_at=str(data.get("createdAt") or ""),
            modified_at=str(data.get("modifiedAt") or ""),
            picture_url=str(data.get("pictureUrl") or ""),
        )

    @property
    def full_name(self) -> str:
        return f"{self.username}/{self.name}"

    @property
    def example_input(self) -> str:
        return self.example_input_body or "{}"
