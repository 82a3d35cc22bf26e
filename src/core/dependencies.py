from typing import List
from db.database import get_db
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
from services.consent_service import ConsentService, consent_service
from services.health_record_service import HealthRecordService, health_record_service
from services.identity_service import (
    IdentityKind,
    IdentityService,
    ResolvedIdentity,
    identity_service,
)
from services.query_service import QueryService, query_service
from utils.exceptions import ForbiddenException, UnauthorizedException
from utils.logger import setup_logger
from utils.security import decode_access_token

logger = setup_logger("AUTH_DEPENDENCIES")


def get_identity_service() -> IdentityService:
    return identity_service


def get_consent_service() -> ConsentService:
    return consent_service


def get_health_record_service() -> HealthRecordService:
    return health_record_service


def get_query_service() -> QueryService:
    return query_service


async def get_current_principal(
    authorization: str = Header(default=None, alias="Authorization"),
) -> str:
    """
    Dependency to get the caller principal from a bearer JWT

    Args:
        authorization: Bearer token from Authorization header

    Returns:
        The token's subject, compared by value everywhere downstream

    Raises:
        UnauthorizedException: 401 if the header is missing or the token invalid
    """
    if not authorization:
        logger.warning("Authorization header missing")
        raise UnauthorizedException("Authorization header is missing")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.warning("Invalid auth scheme")
        raise UnauthorizedException("Invalid authentication scheme")

    principal = decode_access_token(parts[1])
    if principal is None:
        raise UnauthorizedException("Could not validate credentials")

    logger.debug(f"Authenticated principal: {principal}")
    return principal


async def get_current_identity(
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    identities: IdentityService = Depends(get_identity_service),
) -> ResolvedIdentity:
    return await identities.resolve(db, principal)


class RoleChecker:
    def __init__(self, allowed_kinds: List[IdentityKind]):
        self.allowed_kinds = allowed_kinds

    def __call__(
        self, identity: ResolvedIdentity = Depends(get_current_identity)
    ) -> ResolvedIdentity:
        if identity.kind not in self.allowed_kinds:
            logger.warning(
                f"{identity.principal} ({identity.kind.value}) denied; "
                f"requires {[k.value for k in self.allowed_kinds]}"
            )
            raise ForbiddenException(
                f"Requires a registered "
                f"{' or '.join(k.value for k in self.allowed_kinds)} profile"
            )
        return identity


require_patient = RoleChecker([IdentityKind.PATIENT])
require_provider = RoleChecker([IdentityKind.PROVIDER])
