# multipost/services/token_refresh.py
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from multipost.config import settings
from multipost.db import crud_accounts
from multipost.db.base import utcnow
from multipost.services.platforms.base import RefreshMode
from multipost.services.registry import CapabilityRegistry, get_registry

logger = structlog.get_logger(__name__)

@dataclass
class RefreshReport:
    refreshed: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return {"refreshed": self.refreshed, "skipped": self.skipped, "failed": self.failed}

def refresh_expired_tokens(
    db: Session,
    registry: Optional[CapabilityRegistry] = None,
    now: Optional[datetime] = None,
) -> RefreshReport:
    """Renew credentials that expire within the lookahead window, across all organizations.

    Accounts that have already expired are outside the window and are left for
    the user to reconnect. One account failing never stops the others.
    """
    registry = registry or get_registry()
    now = now or utcnow()
    until = now + timedelta(seconds=settings.token_refresh_lookahead)
    report = RefreshReport()

    for account in crud_accounts.list_accounts_expiring(db, now, until):
        log = logger.bind(account_id=account.id, platform=account.platform)
        capability = registry.get(account.platform)
        if capability is None or capability.refresh_mode is None:
            log.warning("token_refresh_skipped", reason="no_refresh_capability")
            report.skipped += 1
            continue
        if capability.refresh_mode == RefreshMode.REFRESH_TOKEN and not account.refresh_token_encrypted:
            log.warning("token_refresh_skipped", reason="no_refresh_token")
            report.skipped += 1
            continue

        try:
            token = capability.refresh(crud_accounts.credential_for(account))
            crud_accounts.update_account_tokens(
                db, account, token.access_token, token.refresh_token, token.expires_in, now=now,
            )
        except Exception as e:
            db.rollback()
            log.error("token_refresh_failed", error_type=type(e).__name__, error=str(e))
            report.failed += 1
            continue
        log.info("token_refreshed", rotated=bool(token.refresh_token), expires_in=token.expires_in)
        report.refreshed += 1

    logger.info("token_refresh_finished", **report.as_dict())
    return report
