# Overview: Service-layer operations for payments, wallets and refunds.

"""
Financial Ledger Service

WHY: Keeps order payments, customer wallets and refunds in one place so
balance bookkeeping has a single writer.

DESIGN PRINCIPLES:
- Amounts are integer cents; callers supply already-computed amounts.
- Wallet transactions are an append-only log.
- apply_wallet_transaction() writes the log row and the balance change in
  one transaction. update_wallet_balance() and create_wallet_transaction()
  remain available as separate calls for callers that keep both sides in
  sync themselves.
- Status timestamps (completed_at, processed_at) are stamped only when the
  status becomes 'completed'.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Order, Payment, Refund, User, Wallet, WalletTransaction
from ..models.finance import PAYMENT_STATUSES, REFUND_STATUSES, WALLET_TRANSACTION_TYPES
from ..models.orders import PAYMENT_METHODS
from marketcore.time_utils import utcnow
from ..validation import require_amount, require_choice
from . import entity_store as store
from .concurrency import hold_keys, run_with_retry


# =============================================================================
# PAYMENTS
# =============================================================================

def create_payment(
    *,
    order_id: int,
    customer_id: int,
    amount_cents: int,
    method: str,
    transaction_id: str | None = None,
) -> Payment:
    """Record a pending payment for an order."""
    require_amount("amount_cents", amount_cents, allow_zero=False)
    require_choice("method", method, PAYMENT_METHODS)

    def _op():
        store.require(Order, order_id, label="Order")
        store.require(User, customer_id, label="Customer")
        payment = store.insert(Payment(
            order_id=order_id,
            customer_id=customer_id,
            amount_cents=amount_cents,
            method=method,
            status="pending",
            transaction_id=transaction_id,
        ))
        db.session.commit()
        return payment

    return run_with_retry(_op)


def get_payment(payment_id: int) -> Payment:
    return store.require(Payment, payment_id, label="Payment")


def update_payment_status(payment_id: int, status: str) -> Payment:
    """Set status; completed_at is stamped only when status becomes 'completed'."""
    require_choice("status", status, PAYMENT_STATUSES)

    def _op():
        with hold_keys(("payment", payment_id)):
            payment = store.require(Payment, payment_id, lock=True, label="Payment")
            payment.status = status
            if status == "completed":
                payment.completed_at = utcnow()
            db.session.commit()
            return payment

    return run_with_retry(_op)


def list_payments_for_customer(customer_id: int) -> list[Payment]:
    return store.list_where(Payment, customer_id=customer_id)


def list_payments_for_order(order_id: int) -> list[Payment]:
    return store.list_where(Payment, order_id=order_id)


# =============================================================================
# WALLETS
# =============================================================================

def create_wallet(customer_id: int, *, initial_balance_cents: int = 0) -> Wallet:
    require_amount("initial_balance_cents", initial_balance_cents)

    def _op():
        with hold_keys(("wallet", customer_id)):
            store.require(User, customer_id, label="Customer")
            if store.get_one_by(Wallet, customer_id=customer_id) is not None:
                raise ConflictError(f"Customer {customer_id} already has a wallet")
            wallet = store.insert(Wallet(customer_id=customer_id, balance_cents=initial_balance_cents))
            db.session.commit()
            return wallet

    return run_with_retry(_op)


def get_wallet(customer_id: int) -> Wallet:
    """The customer's wallet (NotFoundError if none)."""
    wallet = store.get_one_by(Wallet, customer_id=customer_id)
    if wallet is None:
        raise NotFoundError("Wallet for customer", customer_id)
    return wallet


def _apply_balance_change(wallet: Wallet, amount_cents: int) -> Wallet:
    """Core balance change without locking, retry, or commit."""
    wallet.balance_cents = wallet.balance_cents + amount_cents
    if amount_cents > 0:
        wallet.total_earned_cents = wallet.total_earned_cents + amount_cents
    else:
        wallet.total_spent_cents = wallet.total_spent_cents + abs(amount_cents)
    wallet.updated_at = utcnow()
    return wallet


def _locked_wallet(customer_id: int) -> Wallet:
    wallet = store.get_one_by(Wallet, lock=True, customer_id=customer_id)
    if wallet is None:
        raise NotFoundError("Wallet for customer", customer_id)
    return wallet


def update_wallet_balance(customer_id: int, amount_cents: int) -> Wallet:
    """
    Add amount_cents (signed) to the customer's wallet balance.

    Positive amounts grow total_earned_cents; zero or negative amounts grow
    total_spent_cents by their magnitude. No WalletTransaction is written:
    callers using this directly must record one with
    create_wallet_transaction(), or use apply_wallet_transaction().
    """
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise ValidationError("amount_cents must be an integer")

    def _op():
        with hold_keys(("wallet", customer_id)):
            wallet = _locked_wallet(customer_id)
            _apply_balance_change(wallet, amount_cents)
            db.session.commit()
            return wallet

    return run_with_retry(_op)


def create_wallet_transaction(
    *,
    wallet_id: int,
    type: str,
    amount_cents: int,
    description: str = "",
    related_order_id: int | None = None,
) -> WalletTransaction:
    """Append a wallet log row. Does not touch the balance."""
    require_choice("type", type, WALLET_TRANSACTION_TYPES)
    require_amount("amount_cents", amount_cents, allow_zero=False)

    def _op():
        store.require(Wallet, wallet_id, label="Wallet")
        txn = store.insert(WalletTransaction(
            wallet_id=wallet_id,
            type=type,
            amount_cents=amount_cents,
            description=description,
            related_order_id=related_order_id,
        ))
        db.session.commit()
        return txn

    return run_with_retry(_op)


def apply_wallet_transaction(
    *,
    customer_id: int,
    type: str,
    amount_cents: int,
    description: str = "",
    related_order_id: int | None = None,
) -> WalletTransaction:
    """
    Record a credit/debit and move the balance in the same transaction.

    amount_cents is the positive magnitude; 'debit' subtracts it.
    The balance may go negative; overdraft policy belongs to the caller.
    """
    require_choice("type", type, WALLET_TRANSACTION_TYPES)
    require_amount("amount_cents", amount_cents, allow_zero=False)

    def _op():
        with hold_keys(("wallet", customer_id)):
            wallet = _locked_wallet(customer_id)
            txn = store.insert(WalletTransaction(
                wallet_id=wallet.id,
                type=type,
                amount_cents=amount_cents,
                description=description,
                related_order_id=related_order_id,
            ))
            _apply_balance_change(wallet, txn.signed_amount_cents)
            db.session.commit()
            return txn

    return run_with_retry(_op)


def list_wallet_transactions(customer_id: int) -> list[WalletTransaction]:
    wallet = get_wallet(customer_id)
    return store.list_where(WalletTransaction, wallet_id=wallet.id)


# =============================================================================
# REFUNDS
# =============================================================================

def create_refund(*, payment_id: int, amount_cents: int, reason: str, order_id: int | None = None) -> Refund:
    """Open a pending refund. order_id defaults to the payment's order."""
    require_amount("amount_cents", amount_cents, allow_zero=False)

    def _op():
        payment = store.require(Payment, payment_id, label="Payment")
        if amount_cents > payment.amount_cents:
            raise ValidationError("Refund amount exceeds payment amount")
        refund = store.insert(Refund(
            payment_id=payment.id,
            order_id=order_id if order_id is not None else payment.order_id,
            amount_cents=amount_cents,
            reason=reason,
            status="pending",
        ))
        db.session.commit()
        return refund

    return run_with_retry(_op)


def get_refund(refund_id: int) -> Refund:
    return store.require(Refund, refund_id, label="Refund")


def update_refund_status(refund_id: int, status: str) -> Refund:
    """Set status; processed_at is stamped only when status becomes 'completed'."""
    require_choice("status", status, REFUND_STATUSES)

    def _op():
        with hold_keys(("refund", refund_id)):
            refund = store.require(Refund, refund_id, lock=True, label="Refund")
            refund.status = status
            if status == "completed":
                refund.processed_at = utcnow()
            db.session.commit()
            return refund

    return run_with_retry(_op)
