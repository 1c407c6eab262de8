"""
gameport/ledger.py - Wallet balance and transaction ledger.

Fees (tournament entry, team create/join) move the balance immediately
and are recorded as completed. Deposit and withdrawal requests are
recorded as pending and leave the balance alone until an approver
flips their status.
"""

import logging
from datetime import datetime

from .errors import InsufficientBalance, ValidationError
from .models import Transaction, TxStatus, TxType, User, Wallet, new_id

logger = logging.getLogger(__name__)


def require_positive(amount: int, message: str | None = None) -> int:
    """Return amount if it is a whole number above zero, else raise ValidationError."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(message or "Amount must be a whole number.")
    if amount <= 0:
        raise ValidationError(message or "Amount must be greater than zero.")
    return amount


def ensure_funds(user: User, amount: int, message: str | None = None) -> None:
    """Raise InsufficientBalance unless the wallet covers amount."""
    if user.wallet.balance < amount:
        raise InsufficientBalance(message) if message else InsufficientBalance()


def debit(
    user: User,
    amount: int,
    description: str,
    now: datetime,
    status: TxStatus = TxStatus.COMPLETED,
    prefix: str = "tx",
) -> Transaction:
    """Take amount out of the wallet now and record it.

    Raises InsufficientBalance before touching anything if the balance
    does not cover it.
    """
    if amount < 0:
        raise ValidationError("Amount must not be negative.")
    ensure_funds(user, amount)
    tx = Transaction(
        id=new_id(prefix),
        description=description,
        amount=amount,
        type=TxType.DEBIT,
        date=now,
        status=status,
    )
    user.wallet.balance -= amount
    user.wallet.transactions.insert(0, tx)
    return tx


def credit(user: User, amount: int, description: str, now: datetime, prefix: str = "tx") -> Transaction:
    """Add amount to the wallet now and record it as completed."""
    require_positive(amount)
    tx = Transaction(
        id=new_id(prefix),
        description=description,
        amount=amount,
        type=TxType.CREDIT,
        date=now,
        status=TxStatus.COMPLETED,
    )
    user.wallet.balance += amount
    user.wallet.transactions.insert(0, tx)
    return tx


def record_request(
    user: User,
    amount: int,
    tx_type: TxType,
    description: str,
    now: datetime,
    proof_url: str | None = None,
) -> Transaction:
    """Log a pending deposit/withdrawal. The balance does not move."""
    require_positive(amount)
    tx = Transaction(
        id=new_id("tx"),
        description=description,
        amount=amount,
        type=tx_type,
        date=now,
        status=TxStatus.PENDING,
        proof_url=proof_url,
    )
    user.wallet.transactions.insert(0, tx)
    return tx


def settled_balance(initial: int, wallet: Wallet) -> int:
    """Balance implied by the completed ledger lines on top of an initial balance."""
    total = initial
    for tx in wallet.transactions:
        if tx.status is not TxStatus.COMPLETED:
            continue
        total += tx.amount if tx.type is TxType.CREDIT else -tx.amount
    return total
