"""Embedded ordered key/value store backend (LMDB).

Key layout, one record per key, values are JSON documents:

    TOKEN:<sha256 of token>
    USER:<name>
    MINER:<miner>
    SIGNER:<signer>\\x00<user>
    RATELIMIT:<name>\\x00<id>
    StoreVersion

LMDB allows a single write transaction at a time, so every check-then-write
sequence below (uniqueness guards, tombstone writes, cascades) runs inside one
write transaction.
"""
import json
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type, TypeVar, Union

import lmdb
from pydantic import BaseModel

from filauth.errors import BadRequest, Duplicate, NotFound, StorageError
from filauth.storage.records import (
    USER_STATE_ENABLED,
    KeyPair,
    Miner,
    Signer,
    User,
    UserRateLimit,
    utcnow,
)
from filauth.storage.store import Store, clamp_page
from filauth.utils.address import canonical_miner
from filauth.utils.auth import generate_rule_id, token_digest
from filauth.utils.logger import logger

PREFIX_TOKEN = b"TOKEN:"
PREFIX_USER = b"USER:"
PREFIX_MINER = b"MINER:"
PREFIX_SIGNER = b"SIGNER:"
PREFIX_RATE_LIMIT = b"RATELIMIT:"
KEY_STORE_VERSION = b"StoreVersion"

SEPARATOR = b"\x00"

R = TypeVar("R", bound=BaseModel)


def _key(prefix: bytes, *parts: str) -> bytes:
    return prefix + SEPARATOR.join(part.encode() for part in parts)


def _token_key(token: str) -> bytes:
    # bearers can exceed the LMDB key size limit; the full bearer lives in the value
    return PREFIX_TOKEN + token_digest(token).encode()


def _get(txn: lmdb.Transaction, key: bytes, model: Type[R]) -> Optional[R]:
    raw = txn.get(key)
    if raw is None:
        return None
    return model.model_validate_json(raw)


def _put(txn: lmdb.Transaction, key: bytes, record: BaseModel) -> None:
    txn.put(key, record.model_dump_json().encode())


def _scan(txn: lmdb.Transaction, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
    cursor = txn.cursor()
    if not cursor.set_range(prefix):
        return
    for key, value in cursor:
        if not key.startswith(prefix):
            break
        yield key, value


def _scan_records(txn: lmdb.Transaction, prefix: bytes, model: Type[R]) -> Iterator[R]:
    for _, value in _scan(txn, prefix):
        yield model.model_validate_json(value)


def _scan_raw(txn: lmdb.Transaction, prefix: bytes) -> List[Tuple[bytes, Dict[str, Any]]]:
    return [(key, json.loads(value)) for key, value in _scan(txn, prefix)]


# ---------------------------------------------------------------------------
# Background compaction
# ---------------------------------------------------------------------------

class Compactor:
    """Periodically reclaims space held by stale readers and flushes the environment.

    Runs on a daemon thread; :meth:`stop` signals it and joins, so shutdown
    never races a compaction in progress.
    """

    def __init__(self, env: lmdb.Environment, interval: float = 300):
        self._env = env
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0

    def start(self) -> bool:
        if self._thread and self._thread.is_alive():
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._thread_main, name="filauth-kv-compactor", daemon=True)
        self._thread.start()
        return True

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def _thread_main(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.compact()

    def compact(self) -> None:
        try:
            stale = self._env.reader_check()
            self._env.sync(True)
        except lmdb.Error as exc:
            logger.error(f"kv compaction failed: {exc}", extra={"action": "compact"})
            return
        self.runs += 1
        logger.debug(f"kv compaction done, cleared {stale} stale readers", extra={"action": "compact"})


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class KVStore(Store):
    """LMDB backed store"""

    def __init__(self, path: Union[str, Path], map_size: int = 1 << 30, compact_interval: float = 300):
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        try:
            self._env = lmdb.open(str(path), map_size=map_size)
        except lmdb.Error as exc:
            raise StorageError(f"open kv store at {path}: {exc}") from exc
        self._compactor = Compactor(self._env, compact_interval)
        self._compactor.start()
        logger.info(f"kv store opened at {path}")

    @contextmanager
    def _txn(self, write: bool = False) -> Iterator[lmdb.Transaction]:
        try:
            with self._env.begin(write=write) as txn:
                yield txn
        except lmdb.Error as exc:
            raise StorageError(f"kv store: {exc}") from exc

    def compact(self) -> None:
        self._compactor.compact()

    def close(self) -> None:
        self._compactor.stop()
        self._env.close()

    # ----- credentials -----

    def put_token(self, kp: KeyPair) -> None:
        with self._txn(write=True) as txn:
            _put(txn, _token_key(kp.token), kp.model_copy(update={"is_deleted": False}))

    def get_token(self, token: str) -> KeyPair:
        kp = self.get_token_record(token)
        if kp.is_deleted:
            raise NotFound("token not found")
        return kp

    def get_token_record(self, token: str) -> KeyPair:
        with self._txn() as txn:
            kp = _get(txn, _token_key(token), KeyPair)
        if kp is None:
            raise NotFound("token not found")
        return kp

    def has_token(self, token: str) -> bool:
        with self._txn() as txn:
            kp = _get(txn, _token_key(token), KeyPair)
        return kp is not None and not kp.is_deleted

    def token_by_name(self, name: str) -> List[KeyPair]:
        with self._txn() as txn:
            kps = [kp for kp in _scan_records(txn, PREFIX_TOKEN, KeyPair) if kp.name == name and not kp.is_deleted]
        return sorted(kps, key=lambda kp: (kp.create_time, kp.token))

    def list_tokens(self, skip: int, limit: int) -> List[KeyPair]:
        skip, limit = clamp_page(skip, limit)
        with self._txn() as txn:
            kps = [kp for kp in _scan_records(txn, PREFIX_TOKEN, KeyPair) if not kp.is_deleted]
        kps.sort(key=lambda kp: (kp.name, kp.create_time, kp.token))
        return kps[skip:skip + limit]

    def update_token(self, kp: KeyPair) -> None:
        key = _token_key(kp.token)
        with self._txn(write=True) as txn:
            if txn.get(key) is None:
                raise NotFound("token not found")
            _put(txn, key, kp)

    def delete_token(self, token: str) -> None:
        key = _token_key(token)
        with self._txn(write=True) as txn:
            kp = _get(txn, key, KeyPair)
            if kp is None or kp.is_deleted:
                raise NotFound("token not found")
            _put(txn, key, kp.model_copy(update={"is_deleted": True}))

    # ----- users -----

    def put_user(self, user: User) -> None:
        key = _key(PREFIX_USER, user.name)
        with self._txn(write=True) as txn:
            existing = _get(txn, key, User)
            if existing is not None:
                if existing.is_deleted:
                    raise Duplicate(f"user {user.name} was deleted, recover it instead")
                raise Duplicate(f"user {user.name} already exists")
            _put(txn, key, user)

    def get_user(self, name: str) -> User:
        user = self.get_user_record(name)
        if user.is_deleted:
            raise NotFound(f"user {name} not found")
        return user

    def get_user_record(self, name: str) -> User:
        with self._txn() as txn:
            user = _get(txn, _key(PREFIX_USER, name), User)
        if user is None:
            raise NotFound(f"user {name} not found")
        return user

    def has_user(self, name: str) -> bool:
        with self._txn() as txn:
            user = _get(txn, _key(PREFIX_USER, name), User)
        return user is not None and not user.is_deleted

    def list_users(self, skip: int, limit: int, state: int) -> List[User]:
        skip, limit = clamp_page(skip, limit)
        with self._txn() as txn:
            users = [
                user for user in _scan_records(txn, PREFIX_USER, User)
                if not user.is_deleted and (state == 0 or user.state == state)
            ]
        users.sort(key=lambda user: (user.create_time, user.name))
        return users[skip:skip + limit]

    def update_user(self, user: User) -> None:
        key = _key(PREFIX_USER, user.name)
        with self._txn(write=True) as txn:
            existing = _get(txn, key, User)
            if existing is None or existing.is_deleted:
                raise NotFound(f"user {user.name} not found")
            _put(txn, key, user.model_copy(update={"update_time": utcnow(), "is_deleted": False}))

    def delete_user(self, name: str) -> None:
        key = _key(PREFIX_USER, name)
        now = utcnow()
        with self._txn(write=True) as txn:
            user = _get(txn, key, User)
            if user is None or user.is_deleted:
                raise NotFound(f"user {name} not found")
            _put(txn, key, user.model_copy(update={"is_deleted": True, "update_time": now}))
            for miner in list(_scan_records(txn, PREFIX_MINER, Miner)):
                if miner.user == name and not miner.is_deleted:
                    _put(txn, _key(PREFIX_MINER, miner.miner),
                         miner.model_copy(update={"is_deleted": True, "update_time": now}))

    def recover_user(self, name: str) -> None:
        key = _key(PREFIX_USER, name)
        with self._txn(write=True) as txn:
            user = _get(txn, key, User)
            if user is None:
                raise NotFound(f"user {name} not found")
            if not user.is_deleted:
                return
            _put(txn, key, user.model_copy(
                update={"is_deleted": False, "state": USER_STATE_ENABLED, "update_time": utcnow()}
            ))

    # ----- miners -----

    def upsert_miner(self, miner: str, user: str, open_mining: bool) -> bool:
        key = _key(PREFIX_MINER, miner)
        now = utcnow()
        with self._txn(write=True) as txn:
            existing = _get(txn, key, Miner)
            if existing is None:
                _put(txn, key, Miner(miner=miner, user=user, open_mining=open_mining, create_time=now, update_time=now))
                return True
            is_create = existing.is_deleted
            _put(txn, key, existing.model_copy(
                update={"user": user, "open_mining": open_mining, "is_deleted": False, "update_time": now}
            ))
            return is_create

    def has_miner(self, miner: str, user: Optional[str] = None) -> bool:
        with self._txn() as txn:
            rec = _get(txn, _key(PREFIX_MINER, miner), Miner)
        if rec is None or rec.is_deleted:
            return False
        return not user or rec.user == user

    def get_miner(self, miner: str) -> Miner:
        with self._txn() as txn:
            rec = _get(txn, _key(PREFIX_MINER, miner), Miner)
        if rec is None or rec.is_deleted:
            raise NotFound(f"miner {miner} not found")
        return rec

    def get_user_by_miner(self, miner: str) -> User:
        rec = self.get_miner(miner)
        return self.get_user(rec.user)

    def list_miners(self, user: str) -> List[Miner]:
        with self._txn() as txn:
            miners = [m for m in _scan_records(txn, PREFIX_MINER, Miner) if m.user == user and not m.is_deleted]
        return sorted(miners, key=lambda m: (m.create_time, m.miner))

    def del_miner(self, miner: str) -> bool:
        key = _key(PREFIX_MINER, miner)
        with self._txn(write=True) as txn:
            rec = _get(txn, key, Miner)
            if rec is None or rec.is_deleted:
                return False
            _put(txn, key, rec.model_copy(update={"is_deleted": True, "update_time": utcnow()}))
            return True

    # ----- signers -----

    @staticmethod
    def _upsert_signer(txn: lmdb.Transaction, signer: str, user: str) -> bool:
        key = _key(PREFIX_SIGNER, signer, user)
        now = utcnow()
        existing = _get(txn, key, Signer)
        if existing is None:
            _put(txn, key, Signer(signer=signer, user=user, create_time=now, update_time=now))
            return True
        if not existing.is_deleted:
            return False
        _put(txn, key, existing.model_copy(update={"is_deleted": False, "update_time": now}))
        return True

    def upsert_signer(self, signer: str, user: str) -> bool:
        with self._txn(write=True) as txn:
            return self._upsert_signer(txn, signer, user)

    def has_signer(self, signer: str, user: Optional[str] = None) -> bool:
        with self._txn() as txn:
            if user:
                rec = _get(txn, _key(PREFIX_SIGNER, signer, user), Signer)
                return rec is not None and not rec.is_deleted
            return any(
                not rec.is_deleted
                for rec in _scan_records(txn, _key(PREFIX_SIGNER, signer) + SEPARATOR, Signer)
            )

    def get_user_by_signer(self, signer: str) -> List[User]:
        users = []
        with self._txn() as txn:
            for rec in _scan_records(txn, _key(PREFIX_SIGNER, signer) + SEPARATOR, Signer):
                if rec.is_deleted:
                    continue
                user = _get(txn, _key(PREFIX_USER, rec.user), User)
                if user is not None and not user.is_deleted:
                    users.append(user)
        return sorted(users, key=lambda u: u.name)

    def list_signers(self, user: str) -> List[Signer]:
        with self._txn() as txn:
            signers = [s for s in _scan_records(txn, PREFIX_SIGNER, Signer) if s.user == user and not s.is_deleted]
        return sorted(signers, key=lambda s: (s.create_time, s.signer))

    def del_signer(self, signer: str) -> bool:
        existed = False
        now = utcnow()
        with self._txn(write=True) as txn:
            for key, value in list(_scan(txn, _key(PREFIX_SIGNER, signer) + SEPARATOR)):
                rec = Signer.model_validate_json(value)
                if rec.is_deleted:
                    continue
                existed = True
                _put(txn, key, rec.model_copy(update={"is_deleted": True, "update_time": now}))
        return existed

    def register_signers(self, user: str, signers: List[str]) -> None:
        with self._txn(write=True) as txn:
            for signer in signers:
                self._upsert_signer(txn, signer, user)

    def unregister_signers(self, user: str, signers: List[str]) -> None:
        now = utcnow()
        with self._txn(write=True) as txn:
            for signer in signers:
                key = _key(PREFIX_SIGNER, signer, user)
                rec = _get(txn, key, Signer)
                if rec is None or rec.is_deleted:
                    continue
                _put(txn, key, rec.model_copy(update={"is_deleted": True, "update_time": now}))

    # ----- rate limits -----

    def get_rate_limits(self, name: str, rule_id: str = "") -> List[UserRateLimit]:
        with self._txn() as txn:
            if rule_id:
                rule = _get(txn, _key(PREFIX_RATE_LIMIT, name, rule_id), UserRateLimit)
                return [rule] if rule is not None else []
            return list(_scan_records(txn, _key(PREFIX_RATE_LIMIT, name) + SEPARATOR, UserRateLimit))

    def put_rate_limit(self, rule: UserRateLimit) -> str:
        if not rule.id:
            rule = rule.model_copy(update={"id": generate_rule_id()})
        with self._txn(write=True) as txn:
            _put(txn, _key(PREFIX_RATE_LIMIT, rule.name, rule.id), rule)
        return rule.id

    def del_rate_limit(self, name: str, rule_id: str) -> str:
        key = _key(PREFIX_RATE_LIMIT, name, rule_id)
        with self._txn(write=True) as txn:
            if not txn.delete(key):
                raise NotFound(f"rate limit {rule_id} of user {name} not found")
        return rule_id

    # ----- versioning -----

    def version(self) -> int:
        with self._txn() as txn:
            raw = txn.get(KEY_STORE_VERSION)
        return int(raw) if raw is not None else 0

    @staticmethod
    def _set_version(txn: lmdb.Transaction, version: int) -> None:
        txn.put(KEY_STORE_VERSION, str(version).encode())

    def migrate_to_v1(self) -> None:
        now = utcnow().isoformat()
        with self._txn(write=True) as txn:
            for key, doc in _scan_raw(txn, PREFIX_USER):
                legacy = doc.pop("miner", None)
                if legacy is None:
                    continue
                if legacy:
                    try:
                        miner = canonical_miner(legacy)
                    except BadRequest as exc:
                        logger.warning(f"skip invalid miner {legacy!r} of user {doc.get('name')}: {exc}")
                        miner = None
                    if miner and txn.get(_key(PREFIX_MINER, miner)) is None:
                        txn.put(_key(PREFIX_MINER, miner), json.dumps({
                            "miner": miner,
                            "user": doc["name"],
                            "open_mining": True,
                            "create_time": doc.get("create_time", now),
                            "update_time": now,
                            "is_deleted": doc.get("is_deleted", False),
                        }).encode())
                txn.put(key, json.dumps(doc).encode())
            self._set_version(txn, 1)

    def migrate_to_v2(self) -> None:
        with self._txn(write=True) as txn:
            for key, doc in _scan_raw(txn, PREFIX_MINER):
                if doc.get("open_mining") is None:
                    doc["open_mining"] = True
                    txn.put(key, json.dumps(doc).encode())
            self._set_version(txn, 2)

    def migrate_to_v3(self) -> None:
        with self._txn(write=True) as txn:
            for prefix in (PREFIX_TOKEN, PREFIX_USER, PREFIX_MINER, PREFIX_SIGNER):
                for key, doc in _scan_raw(txn, prefix):
                    if doc.get("is_deleted") is None:
                        doc["is_deleted"] = False
                        txn.put(key, json.dumps(doc).encode())
            self._set_version(txn, 3)

    def migrate_to_v4(self) -> None:
        with self._txn(write=True) as txn:
            for key, doc in _scan_raw(txn, PREFIX_TOKEN):
                token = doc.get("token") or key[len(PREFIX_TOKEN):].decode()
                new_key = _token_key(token)
                if new_key == key:
                    continue
                doc["token"] = token
                txn.delete(key)
                txn.put(new_key, json.dumps(doc).encode())
            self._set_version(txn, 4)
