# labtrack/api/v1/endpoints/transactions.py
from typing import List

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, Request, status
from loguru import logger

from labtrack.api.deps import get_coordinator
from labtrack.core.coordinator import TransactionCoordinator
from labtrack.core.rate_limiter import limiter
from labtrack.models.enum import ALL_STATUSES_FILTER, TransactionStatus
from labtrack.models.transaction import Transaction

router = APIRouter(
    prefix="/transactions",
    tags=["Transactions"]
)


@router.post(
    "/",
    response_model=Transaction,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("30/minute")
async def create_transaction(
    request: Request,
    transaction_in: Transaction.Create = Body(...),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Open a borrow transaction. Staff-created ones start Ongoing, self-service ones start as a Request."""
    logger.info(
        f"Creating transaction for student '{transaction_in.student_id}' "
        f"({len(transaction_in.items)} line(s), staff={transaction_in.is_staff_created})."
    )
    return await coordinator.create(
        transaction_in.student_id,
        transaction_in.items,
        transaction_in.due_date,
        transaction_in.is_staff_created,
        student_name=transaction_in.student_name,
        student_email=transaction_in.student_email,
    )


@router.get("/", response_model=List[Transaction])
async def read_transactions(
    status_filter: str = Query(ALL_STATUSES_FILTER, alias="status", description="Status name or 'All'"),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    if status_filter != ALL_STATUSES_FILTER:
        try:
            TransactionStatus(status_filter)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status '{status_filter}'.")
    return await coordinator.get_by_status(status_filter)


@router.get("/student/{student_id}", response_model=List[Transaction])
async def read_student_transactions(
    student_id: str = Path(...),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_by_student(student_id)


@router.get("/{transaction_id}", response_model=Transaction)
async def read_transaction(
    transaction_id: str = Path(...),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    return await coordinator.get(transaction_id)


@router.patch(
    "/{transaction_id}/approve",
    response_model=Transaction.StatusChange,
    status_code=status.HTTP_200_OK,
)
@limiter.limit("60/minute")
async def approve_transaction(
    request: Request,
    transaction_id: str = Path(...),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Approves a Request, moving it to Ongoing and notifying the borrower."""
    logger.info(f"Approving transaction '{transaction_id}'.")
    transaction = await coordinator.approve(transaction_id)
    return Transaction.StatusChange(
        message="Transaction approved successfully",
        transaction_id=transaction_id,
        new_status=transaction.status,
    )


@router.patch(
    "/{transaction_id}/deny",
    response_model=Transaction.StatusChange,
    status_code=status.HTTP_200_OK,
)
@limiter.limit("60/minute")
async def deny_transaction(
    request: Request,
    transaction_id: str = Path(...),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Denies a Request: reserved units go back to inventory and the request is removed."""
    logger.info(f"Denying transaction '{transaction_id}'.")
    await coordinator.deny(transaction_id)
    return Transaction.StatusChange(message="Transaction denied and removed", transaction_id=transaction_id)


@router.post(
    "/{transaction_id}/complete",
    response_model=Transaction.StatusChange,
    status_code=status.HTTP_200_OK,
)
@limiter.limit("60/minute")
async def complete_transaction(
    request: Request,
    transaction_id: str = Path(...),
    return_in: Transaction.Complete = Body(...),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Records returned quantities (absolute totals per item id); archives once everything is back."""
    logger.info(f"Completing transaction '{transaction_id}' with {len(return_in.items)} item update(s).")
    final_status = await coordinator.complete(transaction_id, return_in.items)
    message = (
        "Transaction completed and archived" if final_status.is_terminal
        else "Partial return recorded"
    )
    return Transaction.StatusChange(message=message, transaction_id=transaction_id, new_status=final_status)


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_transaction(
    request: Request,
    transaction_id: str = Path(...),
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """Removes a live transaction without archiving it; unreturned units go back to inventory."""
    logger.info(f"Deleting transaction '{transaction_id}'.")
    await coordinator.delete(transaction_id)
    return None
