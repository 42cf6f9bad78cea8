"""Unified search and ranking across repos, pull requests and issues."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from gitjump.models import EntityType, Issue, PullRequest, Repo, SearchResultItem
from gitjump.storage.base import LocalStore

logger = logging.getLogger(__name__)

EXACT_SCORE = 1000
PREFIX_SCORE = 500
WORD_BOUNDARY_SCORE = 300
SUBSTRING_SCORE = 100
NUMBER_MATCH_SCORE = 800

TYPE_WEIGHTS: dict[EntityType, int] = {
    EntityType.REPO: 100,
    EntityType.PR: 10,
    EntityType.ISSUE: 5,
}


@dataclass
class SearchableEntity:
    repo: Repo
    issues: list[Issue] = field(default_factory=list)
    prs: list[PullRequest] = field(default_factory=list)


def normalize_query(query: str | None) -> str:
    return (query or "").strip().lower()


def match_score(text: str | None, query: str) -> int:
    """Four-tier text match: exact > prefix > after whitespace > substring."""
    if not text or not query:
        return 0
    lowered_text = text.lower()
    lowered_query = query.lower()
    if lowered_text == lowered_query:
        return EXACT_SCORE
    if lowered_text.startswith(lowered_query):
        return PREFIX_SCORE
    if f" {lowered_query}" in lowered_text:
        return WORD_BOUNDARY_SCORE
    if lowered_query in lowered_text:
        return SUBSTRING_SCORE
    return 0


def query_number(query: str) -> int | None:
    digits = query[1:] if query.startswith("#") else query
    if digits.isdigit():
        return int(digits)
    return None


def repo_match_score(repo: Repo, query: str) -> int:
    return max(
        match_score(repo.full_name, query),
        match_score(repo.name, query),
        match_score(repo.description, query),
    )


def item_match_score(item: Issue, query: str) -> int:
    number = query_number(query)
    if number is not None and number == item.number:
        return NUMBER_MATCH_SCORE
    return match_score(item.title, query)


def _repo_result(repo: Repo, raw_score: int) -> SearchResultItem:
    return SearchResultItem(
        type=EntityType.REPO,
        id=f"{EntityType.REPO.value}-{repo.id}",
        entity_id=repo.id,
        title=repo.full_name,
        url=repo.html_url,
        score=raw_score * TYPE_WEIGHTS[EntityType.REPO],
        last_visited_at=repo.last_visited_at,
        updated_at=repo.pushed_at,
    )


def _item_result(repo: Repo, item: Issue, entity_type: EntityType, raw_score: int) -> SearchResultItem:
    is_pull = isinstance(item, PullRequest)
    return SearchResultItem(
        type=entity_type,
        id=f"{entity_type.value}-{item.id}",
        entity_id=item.id,
        title=item.title,
        url=item.html_url,
        repo_id=repo.id,
        repo_name=repo.full_name,
        number=item.number,
        state=item.state,
        user=item.user,
        draft=item.draft if is_pull else None,
        merged=item.merged if is_pull else None,
        score=raw_score * TYPE_WEIGHTS[entity_type],
        last_visited_at=item.last_visited_at,
        updated_at=item.updated_at,
    )


def build_results(entities: Iterable[SearchableEntity], query: str | None = "") -> list[SearchResultItem]:
    """Flatten entities into scored results; non-matching items are dropped under a non-empty query."""
    normalized = normalize_query(query)
    results: list[SearchResultItem] = []
    for entity in entities:
        repo = entity.repo
        score = repo_match_score(repo, normalized) if normalized else 0
        if not normalized or score > 0:
            results.append(_repo_result(repo, score))

        for pull in entity.prs:
            score = item_match_score(pull, normalized) if normalized else 0
            if not normalized or score > 0:
                results.append(_item_result(repo, pull, EntityType.PR, score))

        for issue in entity.issues:
            score = item_match_score(issue, normalized) if normalized else 0
            if not normalized or score > 0:
                results.append(_item_result(repo, issue, EntityType.ISSUE, score))
    return results


def _stamp(value: datetime | None) -> float:
    return value.timestamp() if value is not None else 0.0


def sort_results(results: list[SearchResultItem], has_query: bool) -> list[SearchResultItem]:
    def key(item: SearchResultItem) -> tuple[float, float, float]:
        score = float(item.score) if has_query else 0.0
        return (-score, -_stamp(item.last_visited_at), -_stamp(item.updated_at))

    return sorted(results, key=key)


def search_entities(entities: Iterable[SearchableEntity], query: str | None = "") -> list[SearchResultItem]:
    results = build_results(entities, query)
    return sort_results(results, has_query=bool(normalize_query(query)))


def extract_contributors(
    results: Iterable[SearchResultItem],
    current_username: str | None,
    limit: int = 2,
) -> list[str]:
    """Most frequent PR/issue authors other than the current user."""
    if not current_username or limit <= 0:
        return []
    current = current_username.lower()
    counts: Counter[str] = Counter()
    for item in results:
        if item.type == EntityType.REPO or item.user is None:
            continue
        if item.user.login.lower() == current:
            continue
        counts[item.user.login] += 1
    return [login for login, _ in counts.most_common(limit)]


class UnifiedSearch:
    def __init__(self, storage: LocalStore) -> None:
        self.storage = storage

    def load_entities(self) -> list[SearchableEntity]:
        # Only indexed repos are searchable; stored items of de-indexed repos stay hidden.
        entities: list[SearchableEntity] = []
        for repo in self.storage.get_indexed_repos():
            entities.append(
                SearchableEntity(
                    repo=repo,
                    issues=self.storage.get_issues_by_repo(repo.id),
                    prs=self.storage.get_pull_requests_by_repo(repo.id),
                )
            )
        return entities

    def search(self, query: str | None = "") -> list[SearchResultItem]:
        entities = self.load_entities()
        results = search_entities(entities, query)
        logger.debug("Search %r matched %s items across %s repos", query, len(results), len(entities))
        return results
