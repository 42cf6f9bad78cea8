"""Exception types shared across gitjump components."""

from __future__ import annotations


class GitjumpError(RuntimeError):
    pass


class EntityNotFoundError(GitjumpError):
    def __init__(self, entity_type: str, entity_id: int | str) -> None:
        super().__init__(f"Unknown {entity_type}: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class RepoNotFoundError(EntityNotFoundError):
    def __init__(self, full_name: str) -> None:
        super().__init__("repo", full_name)
        self.full_name = full_name
