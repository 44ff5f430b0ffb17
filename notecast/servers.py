from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Sequence

from .config_schema import ServerConfig


class RecordProtocol(str, Enum):
    """How a published record points at its media."""

    EXTERNAL_LINK = "external_link"
    CONTENT_ADDRESSED = "content_addressed"


@dataclass(frozen=True)
class ServerTarget:
    """One publishing destination: a hosting server paired with a record protocol."""

    server: str
    protocol: RecordProtocol
    upload_url: str | None = None
    url_field: str = "url"
    file_field: str = "file"
    auth_env: str | None = None

    @property
    def key(self) -> str:
        return f"{self.server}:{self.protocol.value}"

    @property
    def is_external_link(self) -> bool:
        return self.protocol is RecordProtocol.EXTERNAL_LINK

    @property
    def is_content_addressed(self) -> bool:
        return self.protocol is RecordProtocol.CONTENT_ADDRESSED

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class Identity:
    """The publishing user: author key plus preferred hosting server name."""

    pubkey: str
    default_server: str | None = None


class ServerRegistry:
    """
    Lookup table of publishing targets keyed by server name.

    A server may register both protocols. Selecting it by name yields the
    external-link target; `counterpart()` yields the content-addressed one.
    """

    def __init__(self, targets: Iterable[ServerTarget]) -> None:
        self._targets: dict[tuple[str, RecordProtocol], ServerTarget] = {}
        self._order: list[str] = []

        for target in targets:
            slot = (target.server, target.protocol)
            if slot in self._targets:
                raise ValueError(f"duplicate server target: {target.key}")
            self._targets[slot] = target
            if target.server not in self._order:
                self._order.append(target.server)

    @classmethod
    def from_config(cls, servers: Sequence[ServerConfig]) -> "ServerRegistry":
        targets: list[ServerTarget] = []
        for s in servers:
            for variant in s.variants:
                targets.append(
                    ServerTarget(
                        server=s.name,
                        protocol=RecordProtocol(variant),
                        upload_url=s.upload_url,
                        url_field=s.url_field,
                        file_field=s.file_field,
                        auth_env=s.auth_env,
                    )
                )
        return cls(targets)

    def __iter__(self) -> Iterator[ServerTarget]:
        for name in self._order:
            for protocol in RecordProtocol:
                target = self._targets.get((name, protocol))
                if target is not None:
                    yield target

    def __len__(self) -> int:
        return len(self._targets)

    def names(self) -> list[str]:
        return list(self._order)

    def get(self, server: str, protocol: RecordProtocol) -> ServerTarget | None:
        return self._targets.get(((server or "").strip().lower(), protocol))

    def resolve(self, server: str | None) -> ServerTarget | None:
        """Resolve a server name to a target, preferring the external-link protocol."""
        name = (server or "").strip().lower()
        if not name:
            return None
        return self.get(name, RecordProtocol.EXTERNAL_LINK) or self.get(
            name, RecordProtocol.CONTENT_ADDRESSED
        )

    def counterpart(self, target: ServerTarget) -> ServerTarget | None:
        """The content-addressed target registered for the same server, if distinct."""
        if not target.is_external_link:
            return None
        return self.get(target.server, RecordProtocol.CONTENT_ADDRESSED)

    def default_for(self, identity: Identity | None) -> ServerTarget | None:
        """The identity's preferred target, without any load-time override."""
        if identity is None:
            return None
        return self.resolve(identity.default_server)

    def preferred_for_load(self, identity: Identity | None) -> ServerTarget | None:
        """
        The target `load()` selects: the identity default, switched to the same
        server's content-addressed counterpart when one is registered.
        """
        default = self.default_for(identity)
        if default is None:
            return None
        return self.counterpart(default) or default
