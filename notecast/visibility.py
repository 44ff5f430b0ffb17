from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .config_schema import FeedConfig
from .note import KIND_MUTE_LIST, KIND_PEOPLE_LIST

# Active-list selector meaning "no follow filtering".
GLOBAL_LIST = "global"


def people_block_list_for(pubkey: str) -> str:
    """Address of the viewer's people list holding muted users."""
    return f"{KIND_PEOPLE_LIST}:{pubkey}:mute"


def mute_list_for(pubkey: str) -> str:
    """Address of the viewer's replaceable mute list."""
    return f"{KIND_MUTE_LIST}:{pubkey}:"


@dataclass(frozen=True)
class VisibilitySet:
    """Read-only snapshot of what a viewer follows and hides, plus the selected list."""

    viewer: str
    active_list: str = GLOBAL_LIST
    followed_authors: frozenset[str] = frozenset()
    followed_hashtags: frozenset[str] = frozenset()
    followed_geotags: frozenset[str] = frozenset()
    hidden_authors: frozenset[str] = frozenset()

    @classmethod
    def build(
        cls,
        viewer: str,
        *,
        active_list: str = GLOBAL_LIST,
        followed_authors: Iterable[str] = (),
        followed_hashtags: Iterable[str] = (),
        followed_geotags: Iterable[str] = (),
        hidden_authors: Iterable[str] = (),
    ) -> "VisibilitySet":
        return cls(
            viewer=viewer,
            active_list=active_list,
            followed_authors=frozenset(followed_authors),
            followed_hashtags=frozenset(t.lower() for t in followed_hashtags),
            followed_geotags=frozenset(t.lower() for t in followed_geotags),
            hidden_authors=frozenset(hidden_authors),
        )

    @classmethod
    def from_config(cls, feed: FeedConfig, *, default_viewer: str) -> "VisibilitySet":
        return cls.build(
            feed.viewer or default_viewer,
            active_list=feed.active_list,
            followed_authors=feed.followed_authors,
            followed_hashtags=feed.followed_hashtags,
            followed_geotags=feed.followed_geotags,
            hidden_authors=feed.hidden_authors,
        )

    @property
    def is_global(self) -> bool:
        return self.active_list == GLOBAL_LIST

    @property
    def is_hidden_list(self) -> bool:
        """True when the viewer is looking at their own block or mute list."""
        return self.active_list in (
            people_block_list_for(self.viewer),
            mute_list_for(self.viewer),
        )

    def is_hidden(self, author: str | None) -> bool:
        return author is not None and author in self.hidden_authors
