"""Store interface shared by the kv and sql backends.

Both backends soft-delete: reads filter tombstoned rows except the ``*_record``
variants and the recover paths. Multi-step mutations (user delete and its miner
cascade, signer batches, migration steps with their version bump) commit in a
single transaction.
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from filauth.storage.records import KeyPair, Miner, Signer, User, UserRateLimit

MAX_PAGE_LIMIT = 1000


def clamp_page(skip: int, limit: int) -> Tuple[int, int]:
    """Normalize pagination: ``skip >= 0`` and ``1 <= limit <= 1000``"""
    return max(skip, 0), min(max(limit, 1), MAX_PAGE_LIMIT)


class Store(ABC):
    """Persistent state of the auth service"""

    # ---------------------------------------------------------------------------
    # Credentials
    # ---------------------------------------------------------------------------

    @abstractmethod
    def put_token(self, kp: KeyPair) -> None:
        """Insert or overwrite the credential keyed by ``kp.token`` (clears any tombstone)"""

    @abstractmethod
    def get_token(self, token: str) -> KeyPair:
        """Live credential; raises NotFound"""

    @abstractmethod
    def get_token_record(self, token: str) -> KeyPair:
        """Credential including soft-deleted ones; raises NotFound"""

    @abstractmethod
    def has_token(self, token: str) -> bool:
        ...

    @abstractmethod
    def token_by_name(self, name: str) -> List[KeyPair]:
        ...

    @abstractmethod
    def list_tokens(self, skip: int, limit: int) -> List[KeyPair]:
        """Live credentials ordered by (name, create_time, token)"""

    @abstractmethod
    def update_token(self, kp: KeyPair) -> None:
        """Overwrite an existing credential record; raises NotFound"""

    @abstractmethod
    def delete_token(self, token: str) -> None:
        """Soft-delete a live credential; raises NotFound"""

    # ---------------------------------------------------------------------------
    # Users
    # ---------------------------------------------------------------------------

    @abstractmethod
    def put_user(self, user: User) -> None:
        """Insert a new user; raises Duplicate if the name is taken (live or deleted)"""

    @abstractmethod
    def get_user(self, name: str) -> User:
        ...

    @abstractmethod
    def get_user_record(self, name: str) -> User:
        ...

    @abstractmethod
    def has_user(self, name: str) -> bool:
        ...

    @abstractmethod
    def list_users(self, skip: int, limit: int, state: int) -> List[User]:
        """Live users ordered by (create_time, name); ``state == 0`` means any state"""

    @abstractmethod
    def update_user(self, user: User) -> None:
        ...

    @abstractmethod
    def delete_user(self, name: str) -> None:
        """Soft-delete the user and, in the same transaction, its miner bindings"""

    @abstractmethod
    def recover_user(self, name: str) -> None:
        ...

    # ---------------------------------------------------------------------------
    # Miner bindings
    # ---------------------------------------------------------------------------

    @abstractmethod
    def upsert_miner(self, miner: str, user: str, open_mining: bool) -> bool:
        """Bind ``miner`` to ``user``; returns True if no live binding existed"""

    @abstractmethod
    def has_miner(self, miner: str, user: Optional[str] = None) -> bool:
        ...

    @abstractmethod
    def get_miner(self, miner: str) -> Miner:
        ...

    @abstractmethod
    def get_user_by_miner(self, miner: str) -> User:
        ...

    @abstractmethod
    def list_miners(self, user: str) -> List[Miner]:
        ...

    @abstractmethod
    def del_miner(self, miner: str) -> bool:
        """Soft-delete the binding; returns whether a live binding existed"""

    def miner_exist_in_user(self, miner: str, user: str) -> bool:
        return self.has_miner(miner, user)

    # ---------------------------------------------------------------------------
    # Signer bindings
    # ---------------------------------------------------------------------------

    @abstractmethod
    def upsert_signer(self, signer: str, user: str) -> bool:
        """Bind ``signer`` to ``user``; returns True if the pair was not live"""

    @abstractmethod
    def has_signer(self, signer: str, user: Optional[str] = None) -> bool:
        """Whether ``signer`` is bound to ``user``, or to anyone when user is empty"""

    @abstractmethod
    def get_user_by_signer(self, signer: str) -> List[User]:
        ...

    @abstractmethod
    def list_signers(self, user: str) -> List[Signer]:
        ...

    @abstractmethod
    def del_signer(self, signer: str) -> bool:
        """Soft-delete the signer for every user; returns whether any binding existed"""

    @abstractmethod
    def register_signers(self, user: str, signers: List[str]) -> None:
        ...

    @abstractmethod
    def unregister_signers(self, user: str, signers: List[str]) -> None:
        ...

    def signer_exist_in_user(self, signer: str, user: str) -> bool:
        return self.has_signer(signer, user)

    # ---------------------------------------------------------------------------
    # Rate limits
    # ---------------------------------------------------------------------------

    @abstractmethod
    def get_rate_limits(self, name: str, rule_id: str = "") -> List[UserRateLimit]:
        ...

    @abstractmethod
    def put_rate_limit(self, rule: UserRateLimit) -> str:
        ...

    @abstractmethod
    def del_rate_limit(self, name: str, rule_id: str) -> str:
        """Delete the rule; raises NotFound"""

    # ---------------------------------------------------------------------------
    # Versioning
    # ---------------------------------------------------------------------------

    @abstractmethod
    def version(self) -> int:
        ...

    @abstractmethod
    def migrate_to_v1(self) -> None:
        """Move the legacy per-user ``miner`` attribute into miner bindings"""

    @abstractmethod
    def migrate_to_v2(self) -> None:
        """Default ``open_mining`` to true where it was never set"""

    @abstractmethod
    def migrate_to_v3(self) -> None:
        """Normalize missing soft-delete flags to false"""

    @abstractmethod
    def migrate_to_v4(self) -> None:
        """Index credentials by the digest of the bearer instead of the bearer itself"""

    @abstractmethod
    def close(self) -> None:
        ...
