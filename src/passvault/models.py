"""Vault data model: items and the credentials they hold."""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .errors import NotFound


@dataclass
class Credential:
    """A username and its encrypted password."""

    username: str
    password: str  # ciphertext blob, never plaintext at rest

    def to_dict(self) -> Dict[str, str]:
        return {"username": self.username, "password": self.password}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        return cls(username=data["username"], password=data["password"])


@dataclass
class Item:
    """A named entry (usually a site) grouping one or more credentials."""

    name: str
    credentials: List[Credential] = field(default_factory=list)

    def usernames(self) -> List[str]:
        return [c.username for c in self.credentials]

    def has_username(self, username: str) -> bool:
        return any(c.username == username for c in self.credentials)

    def get_credential(self, username: str) -> Credential:
        """Return the first credential with this username.

        Raises:
            NotFound: If no credential matches

        """
        for credential in self.credentials:
            if credential.username == username:
                return credential
        raise NotFound(f"No credential for '{username}' under '{self.name}'")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "credentials": [c.to_dict() for c in self.credentials],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        return cls(
            name=data["name"],
            credentials=[Credential.from_dict(c) for c in data["credentials"]],
        )
