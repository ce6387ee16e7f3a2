# multipost/db/crud_accounts.py
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional
from sqlalchemy.orm import Session
from multipost.db.base import utcnow
from multipost.db.models import SocialAccount
from multipost.db import token_crypto
from multipost.services.platforms.base import AccountIdentity, Credential

def create_account(
    db: Session,
    organization_id: str,
    platform: str,
    access_token: str,
    refresh_token: str | None = None,
    expires_in: int | None = None,
    platform_user_id: str = "",
    username: str = "",
) -> SocialAccount:
    acct = SocialAccount(
        organization_id=organization_id,
        platform=platform,
        access_token_encrypted=token_crypto.encrypt_token(access_token),
        refresh_token_encrypted=token_crypto.encrypt_token(refresh_token) if refresh_token else None,
        token_expires_at=utcnow() + timedelta(seconds=expires_in) if expires_in is not None else None,
        platform_user_id=platform_user_id,
        username=username,
    )
    db.add(acct)
    db.commit()
    db.refresh(acct)
    return acct

def get_accounts(db: Session, org_id: str, account_ids: Iterable[str]) -> Dict[str, SocialAccount]:
    """Load every requested account in one round trip, keyed by id. Missing ids are simply absent."""
    ids = list(dict.fromkeys(account_ids))
    if not ids:
        return {}
    rows = (
        db.query(SocialAccount)
        .filter(SocialAccount.organization_id == org_id, SocialAccount.id.in_(ids))
        .all()
    )
    return {row.id: row for row in rows}

def list_accounts_expiring(db: Session, now: datetime, until: datetime) -> List[SocialAccount]:
    # (now, until]: already-expired credentials are left for the user to reconnect
    return (
        db.query(SocialAccount)
        .filter(SocialAccount.token_expires_at > now, SocialAccount.token_expires_at <= until)
        .order_by(SocialAccount.token_expires_at.asc())
        .all()
    )

def credential_for(account: SocialAccount) -> Credential:
    return Credential(
        access_token=token_crypto.decrypt_token(account.access_token_encrypted),
        refresh_token=(
            token_crypto.decrypt_token(account.refresh_token_encrypted)
            if account.refresh_token_encrypted else None
        ),
        expires_at=account.token_expires_at,
    )

def identity_for(account: SocialAccount) -> AccountIdentity:
    return AccountIdentity(
        id=account.id,
        platform=account.platform,
        platform_user_id=account.platform_user_id or "",
        username=account.username or "",
    )

def update_account_tokens(
    db: Session,
    account: SocialAccount,
    access_token: str,
    refresh_token: Optional[str],
    expires_in: Optional[int],
    now: datetime | None = None,
) -> None:
    now = now or utcnow()
    account.access_token_encrypted = token_crypto.encrypt_token(access_token)
    if refresh_token:
        # only platforms that rotate send a new one; keep the stored token otherwise
        account.refresh_token_encrypted = token_crypto.encrypt_token(refresh_token)
    account.token_expires_at = now + timedelta(seconds=expires_in) if expires_in is not None else None
    db.add(account)
    db.commit()

def touch_last_sync(db: Session, accounts: Iterable[SocialAccount], when: datetime | None = None) -> None:
    when = when or utcnow()
    for acct in accounts:
        acct.last_sync_at = when
        db.add(acct)
