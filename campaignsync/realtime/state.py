"""State builders for realtime session snapshots."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from campaignsync.realtime.session import GameSession


def _music_to_dict(session: GameSession) -> dict[str, Any] | None:
    music = session.music.state
    if music is None:
        return None
    return {"trackId": music.track_id, "updatedAt": music.updated_at}


def build_session_snapshot(session: GameSession) -> dict[str, Any]:
    """Return a JSON-friendly view of everything the session currently holds."""
    return {
        "gameId": session.game_id,
        "status": session.status,
        "connected": session.connected,
        "story": session.story.latest,
        "personaPrompts": session.impersonation.prompts,
        "personaStatuses": session.impersonation.statuses,
        "tradeSessions": session.trades.sessions,
        "onlineUsers": session.presence.online_users,
        "music": _music_to_dict(session),
        "musicError": session.music.error,
        "alerts": [
            {
                "id": entry.id,
                "message": entry.message,
                "senderName": entry.sender_name,
                "issuedAt": entry.issued_at,
                "senderId": entry.sender_id,
            }
            for entry in session.alerts.entries
        ],
        "alertError": session.alerts.error,
    }
