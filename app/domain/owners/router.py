"""Owner router - FastAPI endpoints for owners, wallets and transactions"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import Owner, User
from ...shared.serializers import row_to_dict
from .schemas import OwnerCreate, OwnerUpdate, TransactionCreate, WalletPayment
from .service import OwnerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/owners", tags=["Owners"])


def get_owner_service(db: Session = Depends(get_db)) -> OwnerService:
    """Dependency injection for OwnerService"""
    return OwnerService(db)


def serialize_owner(owner: Owner) -> dict:
    data = row_to_dict(owner)
    data["wallet"] = row_to_dict(owner.wallet)
    data["user"] = row_to_dict(owner.user, exclude=("password_hash",))
    return data


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("")
async def list_owners(
    current_user: User = Depends(require_admin),
    service: OwnerService = Depends(get_owner_service),
):
    """List all owners with their wallets"""
    return [serialize_owner(o) for o in service.list_owners()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_owner(
    data: OwnerCreate,
    current_user: User = Depends(require_admin),
    service: OwnerService = Depends(get_owner_service),
):
    return serialize_owner(service.create_owner(data))


@router.get("/{owner_id}")
async def get_owner(
    owner_id: str,
    current_user: User = Depends(get_current_user),
    service: OwnerService = Depends(get_owner_service),
):
    service.ensure_can_view(current_user, owner_id)
    return serialize_owner(service.get_owner(owner_id))


@router.patch("/{owner_id}")
async def update_owner(
    owner_id: str,
    data: OwnerUpdate,
    current_user: User = Depends(require_admin),
    service: OwnerService = Depends(get_owner_service),
):
    return serialize_owner(service.update_owner(owner_id, data))


@router.delete("/{owner_id}")
async def delete_owner(
    owner_id: str,
    current_user: User = Depends(require_admin),
    service: OwnerService = Depends(get_owner_service),
):
    service.delete_owner(owner_id)
    return {"success": True}


# ============================================================================
# WALLET
# ============================================================================


@router.get("/{owner_id}/wallet")
async def get_wallet(
    owner_id: str,
    current_user: User = Depends(get_current_user),
    service: OwnerService = Depends(get_owner_service),
):
    """Wallet, transactions (newest first) and the recalculated balance"""
    service.ensure_can_view(current_user, owner_id)
    result = service.get_wallet(owner_id)
    return {
        **row_to_dict(result["wallet"]),
        "transactions": [row_to_dict(t) for t in result["transactions"]],
        "calculatedBalance": result["calculatedBalance"],
    }


@router.post("/{owner_id}/wallet/pay-balance")
async def pay_balance(
    owner_id: str,
    data: WalletPayment,
    current_user: User = Depends(require_admin),
    service: OwnerService = Depends(get_owner_service),
):
    result = service.pay_balance(owner_id, data)
    return {
        **result,
        "wallet": row_to_dict(result["wallet"]),
        "transaction": row_to_dict(result["transaction"]),
    }


@router.post("/{owner_id}/wallet/pay-commission")
async def pay_commission(
    owner_id: str,
    data: WalletPayment,
    current_user: User = Depends(require_admin),
    service: OwnerService = Depends(get_owner_service),
):
    result = service.pay_commission(owner_id, data)
    return {
        **result,
        "wallet": row_to_dict(result["wallet"]),
        "transaction": row_to_dict(result["transaction"]),
    }


# ============================================================================
# TRANSACTIONS
# ============================================================================


@router.get("/{owner_id}/transactions")
async def list_transactions(
    owner_id: str,
    current_user: User = Depends(get_current_user),
    service: OwnerService = Depends(get_owner_service),
):
    service.ensure_can_view(current_user, owner_id)
    return [row_to_dict(t) for t in service.list_transactions(owner_id)]


@router.post("/{owner_id}/transactions", status_code=status.HTTP_201_CREATED)
async def create_transaction(
    owner_id: str,
    data: TransactionCreate,
    current_user: User = Depends(require_admin),
    service: OwnerService = Depends(get_owner_service),
):
    return row_to_dict(service.create_transaction(owner_id, data))
