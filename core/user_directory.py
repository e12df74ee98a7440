"""
Requester directory: resolves a display name to an email address.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


def normalize_name(name) -> str:
    """Lower-case a name and collapse every run of non-alphanumerics to one space."""
    return re.sub(r'[^a-z0-9]+', ' ', str(name or '').lower()).strip()


@dataclass
class LookupResult:
    """
    Outcome of a name lookup.

    ``email`` is only set for a single exact or token match. Ambiguous
    lookups set ``conflict`` and list the ``candidates``.
    """
    email: Optional[str]
    confidence: str
    match: Optional[str] = None
    conflict: bool = False
    candidates: List[str] = field(default_factory=list)


@dataclass
class DirectoryUser:
    name: str
    email: str
    normalized: str


class UserDirectory:
    """In-memory list of known requesters loaded from ``users.json``."""

    def __init__(self, users: Optional[List[Dict[str, str]]] = None):
        self.users: List[DirectoryUser] = []
        for user in users or []:
            if not isinstance(user, dict) or not user.get('name') or not user.get('email'):
                continue
            self.users.append(DirectoryUser(
                name=str(user['name']),
                email=str(user['email']),
                normalized=normalize_name(user['name'])
            ))

    @classmethod
    def from_file(cls, path: str) -> 'UserDirectory':
        """
        Load the directory from a JSON list of ``{name, email}`` objects.

        A missing or unreadable file gives an empty directory.
        """
        users_file = Path(path)
        if not users_file.exists():
            logger.warning(f"User directory {users_file} not found; email lookup disabled")
            return cls([])
        try:
            with open(users_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read user directory {users_file}: {e}")
            return cls([])
        if not isinstance(data, list):
            logger.warning(f"User directory {users_file} is not a list; email lookup disabled")
            return cls([])
        directory = cls(data)
        logger.info(f"Loaded {len(directory.users)} users from {users_file}")
        return directory

    def find_by_prefix(self, prefix: str) -> Optional[DirectoryUser]:
        lower = str(prefix or '').lower()
        return next((u for u in self.users if u.name.lower().startswith(lower)), None)

    def find_email_by_name(self, name) -> LookupResult:
        """
        Find the email for a display name.

        Stages, first decisive one wins: exact normalized match, then token
        match (every single-letter token prefixes a name part, every longer
        token is a name part, and at least one token is longer than a letter),
        then prefix match. Prefix matches never yield an email.
        """
        normalized = normalize_name(name)
        if not normalized:
            return LookupResult(email=None, confidence='empty')

        exact = [u for u in self.users if u.normalized == normalized]
        if len(exact) == 1:
            return LookupResult(email=exact[0].email, confidence='exact', match=exact[0].name)
        if exact:
            return self._conflict('exact', exact)

        tokens = normalized.split()
        if len(tokens) >= 2 and any(len(tok) > 1 for tok in tokens):
            token_matches = [u for u in self.users if self._tokens_match(tokens, u.normalized.split())]
            if len(token_matches) == 1:
                match = token_matches[0]
                return LookupResult(email=match.email, confidence='tokens', match=match.name)
            if token_matches:
                return self._conflict('tokens', token_matches)

        prefix = [u for u in self.users if u.normalized.startswith(normalized)]
        if len(prefix) == 1:
            return LookupResult(email=None, confidence='weak-prefix', match=prefix[0].name)
        if prefix:
            return self._conflict('weak-prefix', prefix)

        return LookupResult(email=None, confidence='no-match')

    @staticmethod
    def _tokens_match(tokens: List[str], parts: List[str]) -> bool:
        for tok in tokens:
            if len(tok) == 1:
                if not any(part.startswith(tok) for part in parts):
                    return False
            elif tok not in parts:
                return False
        return True

    @staticmethod
    def _conflict(stage: str, users: List[DirectoryUser]) -> LookupResult:
        return LookupResult(
            email=None,
            confidence=stage,
            conflict=True,
            candidates=[u.name for u in users]
        )
