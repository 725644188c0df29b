from fastapi import APIRouter, HTTPException

from synthesis.api.deps import CurrentIdentity, LedgerDep
from synthesis.models import QuotaAccountPublic, QuotaGrant

router = APIRouter()


@router.get("/{identity}", response_model=QuotaAccountPublic)
async def read_balance(identity: str, ledger: LedgerDep) -> QuotaAccountPublic:
    balance = await ledger.get_balance(identity)
    return QuotaAccountPublic(identity=identity, balance=balance)


@router.post("/{identity}/grant", response_model=QuotaAccountPublic)
async def grant_points(
    identity: str,
    grant: QuotaGrant,
    ledger: LedgerDep,
    current_identity: CurrentIdentity,
) -> QuotaAccountPublic:
    """Add points to an account. Only privileged identities may grant."""
    if not current_identity.privileged:
        raise HTTPException(status_code=403, detail="Only privileged identities may grant quota")
    balance = await ledger.grant(identity, grant.amount)
    return QuotaAccountPublic(identity=identity, balance=balance)
