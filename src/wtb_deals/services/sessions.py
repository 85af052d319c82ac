"""Session store for claim contexts and upload windows."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from wtb_deals.domain.sessions import ClaimContext, UploadKind, UploadSession
from wtb_deals.services.cache import InMemoryCache


class SessionStore(Protocol):
    """Keyed ephemeral state; a best-effort hint, never an authority."""

    def get_claim(self, channel_id: str) -> ClaimContext | None:
        """Return the claim context cached for a deal channel."""

    def set_claim(self, context: ClaimContext) -> None:
        """Store or refresh a claim context."""

    def delete_claim(self, channel_id: str) -> None:
        """Forget the claim context for a deal channel."""

    def get_upload(self, actor_id: str, deal_id: str) -> UploadSession | None:
        """Return the live upload session for an actor and deal."""

    def open_upload(
        self,
        actor_id: str,
        deal_id: str,
        kind: UploadKind,
        tracking_code: str | None = None,
        started_at: datetime | None = None,
    ) -> UploadSession:
        """Create or refresh an upload session and return it."""

    def delete_upload(self, actor_id: str, deal_id: str) -> None:
        """Close the upload session for an actor and deal."""

    def uploads_for_actor(self, actor_id: str) -> list[UploadSession]:
        """Return live upload sessions of an actor, newest first."""


def _upload_key(actor_id: str, deal_id: str) -> str:
    return f"{actor_id}:{deal_id}"


@dataclass
class InMemorySessionStore(SessionStore):
    """Process-local session store backed by two TTL caches."""

    upload_ttl_seconds: float = 15 * 60
    claim_ttl_seconds: float = 60 * 60
    claims: InMemoryCache = field(default_factory=InMemoryCache)
    uploads: InMemoryCache = field(default_factory=InMemoryCache)

    def get_claim(self, channel_id: str) -> ClaimContext | None:
        """Return the claim context cached for a deal channel."""
        value = self.claims.get(channel_id)
        return value if isinstance(value, ClaimContext) else None

    def set_claim(self, context: ClaimContext) -> None:
        """Store or refresh a claim context."""
        self.claims.set(context.channel_id, context, self.claim_ttl_seconds)

    def delete_claim(self, channel_id: str) -> None:
        """Forget the claim context for a deal channel."""
        self.claims.delete(channel_id)

    def get_upload(self, actor_id: str, deal_id: str) -> UploadSession | None:
        """Return the live upload session for an actor and deal."""
        value = self.uploads.get(_upload_key(actor_id, deal_id))
        return value if isinstance(value, UploadSession) else None

    def open_upload(
        self,
        actor_id: str,
        deal_id: str,
        kind: UploadKind,
        tracking_code: str | None = None,
        started_at: datetime | None = None,
    ) -> UploadSession:
        """Create or refresh an upload session and return it.

        ``started_at`` rebuilds a session whose window began earlier, e.g.
        from a persisted payment request after a restart.
        """
        created_at = started_at or self.uploads.clock()
        session = UploadSession(
            actor_id=actor_id,
            deal_id=deal_id,
            kind=kind,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=self.upload_ttl_seconds),
            tracking_code=tracking_code,
        )
        self.uploads.set_until(
            _upload_key(actor_id, deal_id), session, session.expires_at
        )
        return session

    def delete_upload(self, actor_id: str, deal_id: str) -> None:
        """Close the upload session for an actor and deal."""
        self.uploads.delete(_upload_key(actor_id, deal_id))

    def uploads_for_actor(self, actor_id: str) -> list[UploadSession]:
        """Return live upload sessions of an actor, newest first."""
        sessions = [
            value
            for _, value in self.uploads.live_items(prefix=f"{actor_id}:")
            if isinstance(value, UploadSession)
        ]
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)

    def counts(self) -> dict[str, int]:
        """Return the number of live sessions per kind."""
        return {"claims": len(self.claims), "uploads": len(self.uploads)}
