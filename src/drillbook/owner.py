"""Owner keys used to scope dictionaries, words and rounds."""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from drillbook.errors import UnauthorizedError, report


@dataclass(frozen=True)
class AuthenticatedOwner:
    """A signed-in user."""
    user_id: str

    def filter(self, model: Any):
        """Return a clause matching rows of ``model`` owned by this user."""
        return model.user_id == self.user_id

    def columns(self) -> Dict[str, Optional[str]]:
        """Column values to stamp on a new row."""
        return {"user_id": self.user_id, "session_id": None}


@dataclass(frozen=True)
class AnonymousOwner:
    """An anonymous device or browser session."""
    session_id: str

    def filter(self, model: Any):
        """Return a clause matching rows of ``model`` owned by this session."""
        return model.session_id == self.session_id

    def columns(self) -> Dict[str, Optional[str]]:
        """Column values to stamp on a new row."""
        return {"user_id": None, "session_id": self.session_id}


Owner = Union[AuthenticatedOwner, AnonymousOwner]


def resolve_owner(user_id: Optional[str] = None, session_id: Optional[str] = None) -> Owner:
    """Resolve a request identity to an owner key.

    An authenticated user always wins over the anonymous session id, so a
    user who signs in mid-session starts seeing their own data.
    """
    if user_id:
        return AuthenticatedOwner(user_id)
    if session_id:
        return AnonymousOwner(session_id)
    raise report(UnauthorizedError("Must be authenticated or provide a session id"))
