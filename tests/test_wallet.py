"""Tests for gameport.ledger and the wallet operations on the engine."""

from datetime import datetime, timezone

import pytest

from gameport import ledger
from gameport.errors import InsufficientBalance, ValidationError
from gameport.models import TxStatus, TxType, User

NOW = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def user():
    return User(id="u1", name="Ram")


# ======================================================================
# Ledger primitives
# ======================================================================


class TestLedger:
    def test_credit(self, user):
        tx = ledger.credit(user, 100, "Prize", NOW)
        assert user.wallet.balance == 100
        assert user.wallet.transactions == [tx]
        assert tx.type is TxType.CREDIT
        assert tx.status is TxStatus.COMPLETED

    def test_debit_newest_first(self, user):
        ledger.credit(user, 100, "Prize", NOW)
        tx = ledger.debit(user, 30, "Fee", NOW)
        assert user.wallet.balance == 70
        assert user.wallet.transactions[0] is tx

    def test_debit_refuses_overdraft(self, user):
        ledger.credit(user, 10, "Prize", NOW)
        with pytest.raises(InsufficientBalance):
            ledger.debit(user, 11, "Fee", NOW)
        assert user.wallet.balance == 10
        assert len(user.wallet.transactions) == 1

    def test_zero_debit_allowed(self, user):
        ledger.debit(user, 0, "Free entry", NOW)
        assert user.wallet.balance == 0

    def test_negative_amounts_rejected(self, user):
        with pytest.raises(ValidationError):
            ledger.debit(user, -5, "Fee", NOW)
        with pytest.raises(ValidationError):
            ledger.credit(user, -5, "Prize", NOW)

    @pytest.mark.parametrize("amount", [0, -1, 2.5, True])
    def test_request_amount_must_be_positive_int(self, user, amount):
        with pytest.raises(ValidationError):
            ledger.record_request(user, amount, TxType.CREDIT, "Deposit", NOW)

    def test_request_leaves_balance(self, user):
        tx = ledger.record_request(user, 500, TxType.CREDIT, "Deposit", NOW, proof_url="shot.png")
        assert user.wallet.balance == 0
        assert tx.status is TxStatus.PENDING
        assert tx.proof_url == "shot.png"

    def test_custom_message(self, user):
        with pytest.raises(InsufficientBalance, match="Insufficient Balance"):
            ledger.ensure_funds(user, 1, "Insufficient Balance")

    def test_require_positive(self):
        assert ledger.require_positive(5) == 5
        with pytest.raises(ValidationError, match="Choose a valid package."):
            ledger.require_positive("5", "Choose a valid package.")

    def test_settled_balance_matches_wallet(self, user):
        ledger.credit(user, 200, "Prize", NOW)
        ledger.debit(user, 50, "Fee", NOW)
        ledger.record_request(user, 1000, TxType.CREDIT, "Deposit", NOW)
        ledger.debit(user, 20, "Topup", NOW, status=TxStatus.PENDING)
        # Pending debits already moved the balance
        assert ledger.settled_balance(0, user.wallet) == user.wallet.balance + 20


# ======================================================================
# Engine wallet operations
# ======================================================================


class TestAddMoney:
    def test_pending_deposit(self, app, make_player):
        make_player("Ram")
        user = app.add_money_request(500, "eSewa", "https://img.example/shot.png")
        assert user.wallet.balance == 0
        tx = user.wallet.transactions[0]
        assert tx.status is TxStatus.PENDING
        assert tx.type is TxType.CREDIT
        assert tx.description == "Deposit via esewa"
        assert tx.proof_url == "https://img.example/shot.png"

    def test_unknown_method(self, app, make_player):
        make_player("Ram")
        with pytest.raises(ValidationError):
            app.add_money_request(500, "paypal", "shot.png")

    def test_screenshot_required(self, app, make_player):
        make_player("Ram")
        with pytest.raises(ValidationError):
            app.add_money_request(500, "khalti", "")
        assert app.current_user.wallet.transactions == []


class TestWithdraw:
    def test_pending_withdrawal(self, app, make_player):
        make_player("Ram", balance=300)
        user = app.withdraw_request(200, "khalti", " 9800000000 ")
        assert user.wallet.balance == 300
        tx = user.wallet.transactions[0]
        assert tx.status is TxStatus.PENDING
        assert tx.type is TxType.DEBIT
        assert tx.description == "Withdraw to khalti (9800000000)"

    def test_cannot_exceed_balance(self, app, make_player):
        make_player("Ram", balance=100)
        with pytest.raises(InsufficientBalance):
            app.withdraw_request(200, "esewa", "9800000000")

    @pytest.mark.parametrize("amount", ["10", 0, 2.5])
    def test_amount_checked_before_balance(self, app, make_player, amount):
        make_player("Ram", balance=100)
        with pytest.raises(ValidationError):
            app.withdraw_request(amount, "esewa", "9800000000")
        assert app.current_user.wallet.transactions[0].description == "Test top-up"

    def test_account_required(self, app, make_player):
        make_player("Ram", balance=100)
        with pytest.raises(ValidationError):
            app.withdraw_request(50, "esewa", "  ")


class TestDiamondTopup:
    def test_paid_immediately_delivered_later(self, app, make_player):
        make_player("Ram", balance=200)
        user = app.diamond_topup_request("512345678", 110, 150)
        assert user.wallet.balance == 50
        tx = user.wallet.transactions[0]
        assert tx.status is TxStatus.PENDING
        assert tx.type is TxType.DEBIT
        assert tx.id.startswith("tx_dia_")
        assert tx.description == "Diamond Topup (110D) for 512345678"

    def test_insufficient(self, app, make_player):
        make_player("Ram", balance=100)
        with pytest.raises(InsufficientBalance, match="Insufficient Balance"):
            app.diamond_topup_request("512345678", 110, 150)
        assert app.current_user.wallet.balance == 100

    def test_player_id_required(self, app, make_player):
        make_player("Ram", balance=200)
        with pytest.raises(ValidationError):
            app.diamond_topup_request("", 110, 150)

    @pytest.mark.parametrize("diamonds, price", [("110", 150), (110, "150"), (0, 150), (110, -5)])
    def test_invalid_package(self, app, make_player, diamonds, price):
        make_player("Ram", balance=200)
        with pytest.raises(ValidationError, match="Choose a valid package."):
            app.diamond_topup_request("512345678", diamonds, price)
        assert app.current_user.wallet.balance == 200
