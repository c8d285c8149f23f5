"""Default admin credential bootstrap"""
import os
from pathlib import Path
from typing import Optional

from filauth.errors import NotFound
from filauth.services.auth_service import AuthService
from filauth.utils.logger import logger
from filauth.utils.perm import PERM_ADMIN, admin_context

DEFAULT_ADMIN_NAME = "defaultAdmin"


def ensure_default_admin(service: AuthService, token_path: Optional[Path] = None) -> str:
    """Return the bearer of the default admin account, minting it on first start.

    An existing ``admin`` credential of ``defaultAdmin`` is reused. The bearer
    is written to ``token_path`` so operators can bootstrap other accounts.
    """
    ctx = admin_context(DEFAULT_ADMIN_NAME)

    token = next((kp.token for kp in service.engine.by_name(DEFAULT_ADMIN_NAME) if kp.perm == PERM_ADMIN), None)
    if token is None:
        try:
            user = service.store.get_user_record(DEFAULT_ADMIN_NAME)
        except NotFound:
            service.create_user(ctx, DEFAULT_ADMIN_NAME, comment="default admin account")
        else:
            if user.is_deleted:
                service.recover_user(ctx, DEFAULT_ADMIN_NAME)
        token = service.generate_token(ctx, DEFAULT_ADMIN_NAME, PERM_ADMIN)
        logger.info("Minted default admin token", extra={"account": DEFAULT_ADMIN_NAME, "action": "bootstrap"})

    if token_path is not None:
        token_path.parent.mkdir(parents=True, exist_ok=True)
        token_path.write_text(token)
        os.chmod(token_path, 0o600)
    return token
