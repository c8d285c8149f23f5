"""Relational store backend (SQLAlchemy).

Tables are created on open; data-level migrations run through alembic
operations bound to the live connection.
"""
from contextlib import contextmanager
from datetime import timedelta
from typing import Iterator, List, Optional

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from filauth import models as orm
from filauth.database import Base, make_engine, make_session_factory
from filauth.errors import AuthError, BadRequest, Duplicate, NotFound, StorageError
from filauth.storage.records import (
    USER_STATE_ENABLED,
    KeyPair,
    Miner,
    ReqLimit,
    Signer,
    User,
    UserRateLimit,
    utcnow,
)
from filauth.storage.store import Store, clamp_page
from filauth.utils.address import canonical_miner
from filauth.utils.auth import generate_rule_id, token_digest
from filauth.utils.logger import logger


def _rule_from_row(row: orm.UserRateLimit) -> UserRateLimit:
    req_limit = row.req_limit or {}
    return UserRateLimit(
        id=row.id,
        name=row.name,
        service=row.service or "",
        api=row.api or "",
        req_limit=ReqLimit(
            cap=req_limit.get("cap", 0),
            reset_dur=timedelta(seconds=req_limit.get("reset_dur", 0)),
        ),
    )


class SQLStore(Store):
    """SQLAlchemy backed store (MySQL in production, SQLite in tests)"""

    def __init__(self, url: str, **pool_options):
        try:
            self._engine = make_engine(url, **pool_options)
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"open sql store: {exc}") from exc
        self._session_factory = make_session_factory(self._engine)
        logger.info(f"sql store opened ({self._engine.dialect.name})")

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise Duplicate(f"record already exists: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"sql store: {exc}") from exc
        except AuthError:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self._engine.dispose()

    # ----- credentials -----

    def put_token(self, kp: KeyPair) -> None:
        with self._session() as db:
            row = db.query(orm.Token).filter(orm.Token.token_digest == token_digest(kp.token)).first()
            if row is None:
                row = orm.Token(token=kp.token, token_digest=token_digest(kp.token))
                db.add(row)
            row.name = kp.name
            row.perm = kp.perm
            row.extra = kp.extra
            row.create_time = kp.create_time
            row.is_deleted = False

    def get_token(self, token: str) -> KeyPair:
        kp = self.get_token_record(token)
        if kp.is_deleted:
            raise NotFound("token not found")
        return kp

    def get_token_record(self, token: str) -> KeyPair:
        with self._session() as db:
            row = db.query(orm.Token).filter(orm.Token.token_digest == token_digest(token)).first()
            if row is None:
                raise NotFound("token not found")
            return KeyPair.model_validate(row)

    def has_token(self, token: str) -> bool:
        with self._session() as db:
            return db.query(orm.Token).filter(
                orm.Token.token_digest == token_digest(token),
                orm.Token.is_deleted == False,
            ).count() > 0

    def token_by_name(self, name: str) -> List[KeyPair]:
        with self._session() as db:
            rows = db.query(orm.Token).filter(
                orm.Token.name == name,
                orm.Token.is_deleted == False,
            ).order_by(orm.Token.create_time, orm.Token.token).all()
            return [KeyPair.model_validate(row) for row in rows]

    def list_tokens(self, skip: int, limit: int) -> List[KeyPair]:
        skip, limit = clamp_page(skip, limit)
        with self._session() as db:
            rows = db.query(orm.Token).filter(
                orm.Token.is_deleted == False,
            ).order_by(orm.Token.name, orm.Token.create_time, orm.Token.token).offset(skip).limit(limit).all()
            return [KeyPair.model_validate(row) for row in rows]

    def update_token(self, kp: KeyPair) -> None:
        with self._session() as db:
            row = db.query(orm.Token).filter(orm.Token.token_digest == token_digest(kp.token)).first()
            if row is None:
                raise NotFound("token not found")
            row.name = kp.name
            row.perm = kp.perm
            row.extra = kp.extra
            row.is_deleted = kp.is_deleted

    def delete_token(self, token: str) -> None:
        with self._session() as db:
            row = db.query(orm.Token).filter(
                orm.Token.token_digest == token_digest(token),
                orm.Token.is_deleted == False,
            ).first()
            if row is None:
                raise NotFound("token not found")
            row.is_deleted = True

    # ----- users -----

    def put_user(self, user: User) -> None:
        with self._session() as db:
            existing = db.query(orm.User).filter(orm.User.name == user.name).first()
            if existing is not None:
                if existing.is_deleted:
                    raise Duplicate(f"user {user.name} was deleted, recover it instead")
                raise Duplicate(f"user {user.name} already exists")
            db.add(orm.User(
                id=user.id,
                name=user.name,
                comment=user.comment,
                state=user.state,
                create_time=user.create_time,
                update_time=user.update_time,
                is_deleted=False,
            ))

    def get_user(self, name: str) -> User:
        user = self.get_user_record(name)
        if user.is_deleted:
            raise NotFound(f"user {name} not found")
        return user

    def get_user_record(self, name: str) -> User:
        with self._session() as db:
            row = db.query(orm.User).filter(orm.User.name == name).first()
            if row is None:
                raise NotFound(f"user {name} not found")
            return User.model_validate(row)

    def has_user(self, name: str) -> bool:
        with self._session() as db:
            return db.query(orm.User).filter(
                orm.User.name == name,
                orm.User.is_deleted == False,
            ).count() > 0

    def list_users(self, skip: int, limit: int, state: int) -> List[User]:
        skip, limit = clamp_page(skip, limit)
        with self._session() as db:
            query = db.query(orm.User).filter(orm.User.is_deleted == False)
            if state:
                query = query.filter(orm.User.state == state)
            rows = query.order_by(orm.User.create_time, orm.User.name).offset(skip).limit(limit).all()
            return [User.model_validate(row) for row in rows]

    def update_user(self, user: User) -> None:
        with self._session() as db:
            row = db.query(orm.User).filter(
                orm.User.name == user.name,
                orm.User.is_deleted == False,
            ).first()
            if row is None:
                raise NotFound(f"user {user.name} not found")
            row.comment = user.comment
            row.state = user.state
            row.update_time = utcnow()

    def delete_user(self, name: str) -> None:
        now = utcnow()
        with self._session() as db:
            row = db.query(orm.User).filter(
                orm.User.name == name,
                orm.User.is_deleted == False,
            ).first()
            if row is None:
                raise NotFound(f"user {name} not found")
            row.is_deleted = True
            row.update_time = now
            db.query(orm.Miner).filter(
                orm.Miner.user == name,
                orm.Miner.is_deleted == False,
            ).update({"is_deleted": True, "update_time": now}, synchronize_session=False)

    def recover_user(self, name: str) -> None:
        with self._session() as db:
            row = db.query(orm.User).filter(orm.User.name == name).first()
            if row is None:
                raise NotFound(f"user {name} not found")
            if not row.is_deleted:
                return
            row.is_deleted = False
            row.state = USER_STATE_ENABLED
            row.update_time = utcnow()

    # ----- miners -----

    def upsert_miner(self, miner: str, user: str, open_mining: bool) -> bool:
        now = utcnow()
        with self._session() as db:
            row = db.query(orm.Miner).filter(orm.Miner.miner == miner).with_for_update().first()
            if row is None:
                db.add(orm.Miner(miner=miner, user=user, open_mining=open_mining,
                                 create_time=now, update_time=now, is_deleted=False))
                return True
            is_create = bool(row.is_deleted)
            row.user = user
            row.open_mining = open_mining
            row.is_deleted = False
            row.update_time = now
            return is_create

    def has_miner(self, miner: str, user: Optional[str] = None) -> bool:
        with self._session() as db:
            query = db.query(orm.Miner).filter(orm.Miner.miner == miner, orm.Miner.is_deleted == False)
            if user:
                query = query.filter(orm.Miner.user == user)
            return query.count() > 0

    def get_miner(self, miner: str) -> Miner:
        with self._session() as db:
            row = db.query(orm.Miner).filter(orm.Miner.miner == miner, orm.Miner.is_deleted == False).first()
            if row is None:
                raise NotFound(f"miner {miner} not found")
            return Miner.model_validate(row)

    def get_user_by_miner(self, miner: str) -> User:
        rec = self.get_miner(miner)
        return self.get_user(rec.user)

    def list_miners(self, user: str) -> List[Miner]:
        with self._session() as db:
            rows = db.query(orm.Miner).filter(
                orm.Miner.user == user,
                orm.Miner.is_deleted == False,
            ).order_by(orm.Miner.create_time, orm.Miner.miner).all()
            return [Miner.model_validate(row) for row in rows]

    def del_miner(self, miner: str) -> bool:
        with self._session() as db:
            row = db.query(orm.Miner).filter(orm.Miner.miner == miner, orm.Miner.is_deleted == False).first()
            if row is None:
                return False
            row.is_deleted = True
            row.update_time = utcnow()
            return True

    # ----- signers -----

    @staticmethod
    def _upsert_signer(db: Session, signer: str, user: str) -> bool:
        now = utcnow()
        row = db.query(orm.Signer).filter(orm.Signer.signer == signer, orm.Signer.user == user).first()
        if row is None:
            db.add(orm.Signer(signer=signer, user=user, create_time=now, update_time=now, is_deleted=False))
            return True
        if not row.is_deleted:
            return False
        row.is_deleted = False
        row.update_time = now
        return True

    def upsert_signer(self, signer: str, user: str) -> bool:
        with self._session() as db:
            return self._upsert_signer(db, signer, user)

    def has_signer(self, signer: str, user: Optional[str] = None) -> bool:
        with self._session() as db:
            query = db.query(orm.Signer).filter(orm.Signer.signer == signer, orm.Signer.is_deleted == False)
            if user:
                query = query.filter(orm.Signer.user == user)
            return query.count() > 0

    def get_user_by_signer(self, signer: str) -> List[User]:
        with self._session() as db:
            rows = db.query(orm.User).join(orm.Signer, orm.Signer.user == orm.User.name).filter(
                orm.Signer.signer == signer,
                orm.Signer.is_deleted == False,
                orm.User.is_deleted == False,
            ).order_by(orm.User.name).all()
            return [User.model_validate(row) for row in rows]

    def list_signers(self, user: str) -> List[Signer]:
        with self._session() as db:
            rows = db.query(orm.Signer).filter(
                orm.Signer.user == user,
                orm.Signer.is_deleted == False,
            ).order_by(orm.Signer.create_time, orm.Signer.signer).all()
            return [Signer.model_validate(row) for row in rows]

    def del_signer(self, signer: str) -> bool:
        with self._session() as db:
            count = db.query(orm.Signer).filter(
                orm.Signer.signer == signer,
                orm.Signer.is_deleted == False,
            ).update({"is_deleted": True, "update_time": utcnow()}, synchronize_session=False)
            return count > 0

    def register_signers(self, user: str, signers: List[str]) -> None:
        with self._session() as db:
            for signer in signers:
                self._upsert_signer(db, signer, user)
                db.flush()

    def unregister_signers(self, user: str, signers: List[str]) -> None:
        if not signers:
            return
        with self._session() as db:
            db.query(orm.Signer).filter(
                orm.Signer.user == user,
                orm.Signer.signer.in_(signers),
                orm.Signer.is_deleted == False,
            ).update({"is_deleted": True, "update_time": utcnow()}, synchronize_session=False)

    # ----- rate limits -----

    def get_rate_limits(self, name: str, rule_id: str = "") -> List[UserRateLimit]:
        with self._session() as db:
            query = db.query(orm.UserRateLimit).filter(orm.UserRateLimit.name == name)
            if rule_id:
                query = query.filter(orm.UserRateLimit.id == rule_id)
            return [_rule_from_row(row) for row in query.order_by(orm.UserRateLimit.id).all()]

    def put_rate_limit(self, rule: UserRateLimit) -> str:
        rule_id = rule.id or generate_rule_id()
        with self._session() as db:
            row = db.query(orm.UserRateLimit).filter(
                orm.UserRateLimit.name == rule.name,
                orm.UserRateLimit.id == rule_id,
            ).first()
            if row is None:
                row = orm.UserRateLimit(id=rule_id, name=rule.name)
                db.add(row)
            row.service = rule.service
            row.api = rule.api
            row.req_limit = {
                "cap": rule.req_limit.cap,
                "reset_dur": rule.req_limit.reset_dur.total_seconds(),
            }
        return rule_id

    def del_rate_limit(self, name: str, rule_id: str) -> str:
        with self._session() as db:
            count = db.query(orm.UserRateLimit).filter(
                orm.UserRateLimit.name == name,
                orm.UserRateLimit.id == rule_id,
            ).delete(synchronize_session=False)
            if count == 0:
                raise NotFound(f"rate limit {rule_id} of user {name} not found")
        return rule_id

    # ----- versioning -----

    def version(self) -> int:
        with self._session() as db:
            row = db.query(orm.StoreVersion).order_by(orm.StoreVersion.id).first()
            return row.version if row is not None else 0

    @contextmanager
    def _migration(self, version: int) -> Iterator[Operations]:
        """Yield alembic operations on one transaction that also records ``version``"""
        try:
            with self._engine.begin() as conn:
                op = Operations(MigrationContext.configure(conn))
                yield op
                versions = orm.StoreVersion.__table__
                if conn.execute(sa.select(versions.c.id)).first() is None:
                    op.execute(versions.insert().values(id=1, version=version))
                else:
                    op.execute(versions.update().values(version=version))
        except SQLAlchemyError as exc:
            raise StorageError(f"migrate sql store to version {version}: {exc}") from exc

    def migrate_to_v1(self) -> None:
        with self._migration(1) as op:
            conn = op.get_bind()
            columns = {col["name"] for col in sa.inspect(conn).get_columns("users")}
            if "miner" not in columns:
                return
            users = sa.Table("users", sa.MetaData(), autoload_with=conn)
            miners = orm.Miner.__table__
            now = utcnow()
            for row in conn.execute(sa.select(users.c.name, users.c.miner, users.c.is_deleted)).all():
                if not row.miner:
                    continue
                try:
                    miner = canonical_miner(row.miner)
                except BadRequest as exc:
                    logger.warning(f"skip invalid miner {row.miner!r} of user {row.name}: {exc}")
                    continue
                if conn.execute(sa.select(miners.c.miner).where(miners.c.miner == miner)).first() is not None:
                    continue
                op.execute(miners.insert().values(
                    miner=miner, user=row.name, open_mining=True,
                    create_time=now, update_time=now, is_deleted=bool(row.is_deleted),
                ))
            with op.batch_alter_table("users") as batch_op:
                batch_op.drop_column("miner")

    def migrate_to_v2(self) -> None:
        with self._migration(2) as op:
            miners = orm.Miner.__table__
            op.execute(miners.update().where(miners.c.open_mining.is_(None)).values(open_mining=True))

    def migrate_to_v3(self) -> None:
        with self._migration(3) as op:
            for model in (orm.Token, orm.User, orm.Miner, orm.Signer):
                table = model.__table__
                op.execute(table.update().where(table.c.is_deleted.is_(None)).values(is_deleted=False))

    def migrate_to_v4(self) -> None:
        with self._migration(4) as op:
            conn = op.get_bind()
            inspector = sa.inspect(conn)
            if "token_digest" in {col["name"] for col in inspector.get_columns("token")}:
                return
            if "ix_token_token" in {index["name"] for index in inspector.get_indexes("token")}:
                op.drop_index("ix_token_token", table_name="token")
            op.add_column("token", sa.Column("token_digest", sa.String(64), nullable=True))

            tokens = sa.Table("token", sa.MetaData(), autoload_with=conn)
            for row in conn.execute(sa.select(tokens.c.id, tokens.c.token)).all():
                op.execute(tokens.update().where(tokens.c.id == row.id).values(token_digest=token_digest(row.token)))

            with op.batch_alter_table("token") as batch_op:
                batch_op.alter_column("token", type_=sa.Text(), existing_type=sa.String(512), existing_nullable=False)
                batch_op.alter_column("token_digest", nullable=False, existing_type=sa.String(64))
            op.create_index("ix_token_token_digest", "token", ["token_digest"], unique=True)
