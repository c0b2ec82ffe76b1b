"""
Coach authorization.

Who counts as a coach is decided outside the core. Services and routes
receive an Authorizer and ask it; they never compare email addresses
themselves.
"""

from typing import Any, Iterable, Optional, Protocol


class Authorizer(Protocol):
    def is_coach(self, identity: Optional[str]) -> bool:
        ...


class AllowListAuthorizer:
    """Coaches are the identities on a configured allow-list (case-insensitive)."""

    def __init__(self, coach_identities: Iterable[str]) -> None:
        self._coaches = frozenset(
            identity.strip().lower() for identity in coach_identities if identity.strip()
        )

    def is_coach(self, identity: Optional[str]) -> bool:
        if not identity:
            return False
        return identity.strip().lower() in self._coaches


def is_client_document(data: dict[str, Any], authorizer: Optional[Authorizer] = None) -> bool:
    """
    Whether a document in the clients collection is an actual client.

    Documents with a role must have role "client". Older documents have no
    role; those count as clients when they have an email that isn't a coach's.
    """
    role = data.get("role")
    if role:
        return role == "client"

    email = (data.get("email") or "").strip().lower()
    if not email:
        return False
    return not (authorizer and authorizer.is_coach(email))


def can_access_client(
    authorizer: Authorizer,
    identity: Optional[str],
    client_data: Optional[dict[str, Any]],
) -> bool:
    """
    Whether an identity may read and write a client's records.

    Coaches may access every client. Anyone else only the client document
    whose email is their own.
    """
    if authorizer.is_coach(identity):
        return True
    if not identity or not client_data:
        return False
    email = (client_data.get("email") or "").strip().lower()
    return bool(email) and email == identity.strip().lower()
