"""
Member Directory - username <-> member id resolution.

The identity service owns users; the ledger only reads them. Two backends:
- SqlMemberDirectory reads the shared USERS table
- HttpMemberDirectory asks the identity service over HTTP

Both are called before a write transaction is opened, never inside one.
"""
from typing import Dict, Iterable, List, Optional

import requests
from sqlalchemy import select

from groupledger.users.model import User
from groupledger.utils.errors import InfrastructureError, MemberNotFoundError
from groupledger.utils.logging import get_logger

logger = get_logger(__name__)

UNKNOWN_MEMBER = "Unknown"


class MemberDirectory:
    """Interface used by the ledger services."""

    def lookup_usernames(self, usernames: List[str]) -> Dict[str, int]:
        raise NotImplementedError

    def lookup_ids(self, member_ids: List[int]) -> Dict[int, str]:
        raise NotImplementedError

    def search(self, prefix: str, limit: int = 20) -> List[Dict]:
        raise NotImplementedError

    def resolve(self, usernames: Iterable[str]) -> Dict[str, int]:
        """
        Resolve every username to a member id.

        Raises:
            MemberNotFoundError: listing the usernames that did not resolve
        """
        wanted = list(dict.fromkeys(usernames))
        if not wanted:
            return {}
        found = self.lookup_usernames(wanted)
        missing = [name for name in wanted if name not in found]
        if missing:
            raise MemberNotFoundError(missing)
        return {name: found[name] for name in wanted}

    def require_ids(self, member_ids: Iterable[int]) -> None:
        """
        Raises:
            MemberNotFoundError: listing the member ids the directory does not know
        """
        wanted = list(dict.fromkeys(member_ids))
        if not wanted:
            return
        found = self.lookup_ids(wanted)
        missing = [str(member_id) for member_id in wanted if member_id not in found]
        if missing:
            raise MemberNotFoundError(missing)

    def display_names(self, member_ids: Iterable[int]) -> Dict[int, str]:
        wanted = list(dict.fromkeys(member_ids))
        if not wanted:
            return {}
        found = self.lookup_ids(wanted)
        return {member_id: found.get(member_id) or UNKNOWN_MEMBER for member_id in wanted}


class SqlMemberDirectory(MemberDirectory):
    def __init__(self, db):
        self.db = db

    def lookup_usernames(self, usernames):
        with self.db.reader(operation="lookup_usernames") as session:
            rows = session.execute(
                select(User.id, User.username).where(User.username.in_(usernames))
            ).all()
        return {row.username: row.id for row in rows}

    def lookup_ids(self, member_ids):
        with self.db.reader(operation="lookup_ids") as session:
            rows = session.execute(
                select(User.id, User.username).where(User.id.in_(member_ids))
            ).all()
        return {row.id: row.username for row in rows}

    def search(self, prefix, limit=20):
        with self.db.reader(operation="search_members") as session:
            rows = session.execute(
                select(User.id, User.username, User.email)
                .where(User.username.istartswith(prefix, autoescape=True))
                .order_by(User.username)
                .limit(limit)
            ).all()
        return [
            {"user_id": row.id, "username": row.username, "email": row.email}
            for row in rows
        ]


class HttpMemberDirectory(MemberDirectory):
    """
    Identity-service client.

    Expected endpoints (relative to ``base_url``):
        GET /api/v1/users/lookup?username=a&username=b
        GET /api/v1/users/lookup?id=1&id=2
        GET /api/v1/users/search?q=al
    Lookups answer ``{"users": [{"user_id": 1, "username": "alice"}, ...]}``.
    """

    def __init__(self, base_url: str, timeout: int = 10, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def lookup_usernames(self, usernames):
        users = self._get("/api/v1/users/lookup", {"username": usernames}).get("users", [])
        return {u["username"]: int(u["user_id"]) for u in users if u.get("username")}

    def lookup_ids(self, member_ids):
        users = self._get("/api/v1/users/lookup", {"id": member_ids}).get("users", [])
        return {int(u["user_id"]): u.get("username") for u in users}

    def search(self, prefix, limit=20):
        data = self._get("/api/v1/users/search", {"q": prefix})
        users = data if isinstance(data, list) else data.get("users", [])
        return users[:limit]

    def _get(self, path, params):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            logger.error("member_directory_unavailable", url=url, error=str(exc))
            raise InfrastructureError() from exc
        except ValueError as exc:
            logger.error("member_directory_bad_response", url=url, error=str(exc))
            raise InfrastructureError() from exc
