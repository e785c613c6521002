"""
Tests for the settlement engine.

Covers:
- Pay / Earn
- GiveLoan and Split scenarios
- Repay request, full and partial settlement, decline
- Atomicity when a step fails midway
- Balance conservation
"""

from contextlib import asynccontextmanager

import pytest
from pydantic import ValidationError

from money_manager.core.errors import (
    AlreadyExistsError,
    InsufficientFundsError,
    IntegrityFaultError,
    InvalidDebtStateError,
    NotFoundError,
)
from money_manager.models.category import CategoryType
from money_manager.models.debt import DebtState
from money_manager.schemas.settlement import (
    AcceptPaymentCommand,
    DeclinePaymentCommand,
    GiveLoanCommand,
    PayCommand,
    EarnCommand,
    RequestRepayCommand,
    SplitCommand,
)
from money_manager.services.settlement_service import SettlementService
from tests.conftest import SnapshotTransactionRunner


# Reserved before a unit opens, so they may advance even when the unit aborts
SHARED_SEQUENCES = ("debt_status", "users")


async def snapshot(db):
    """Everything the engine can write inside a unit, for before/after comparisons."""
    state = {}
    for name in ("wallets", "money_history", "debt_status", "debts", "counters"):
        query = {"_id": {"$nin": list(SHARED_SEQUENCES)}} if name == "counters" else {}
        docs = await db[name].find(query).to_list(None)
        state[name] = sorted(
            ({key: value for key, value in doc.items() if key != "updated_at"} for doc in docs),
            key=repr
        )
    return state


async def history_of(service, user_id):
    return [row async for row in service.history.find_history(user_id)]


def loan_command(ids, category_ids, amount=30, description="Bills"):
    return GiveLoanCommand(
        creditor_id=ids["hrisi"],
        debtor_id=ids["lily"],
        amount=amount,
        loan_category_id=category_ids["loan"],
        debt_category_id=category_ids["debt"],
        description=description,
    )


def split_command(ids, category_ids, amount=60, description="Restaurant"):
    return SplitCommand(
        creditor_id=ids["george"],
        debtor_id=ids["peter"],
        amount=amount,
        expense_category_id=category_ids["food"],
        loan_category_id=category_ids["loan"],
        description=description,
    )


class FailingStep(Exception):
    pass


# ===== PAY / EARN =====

@pytest.mark.asyncio
async def test_pay_debits_and_logs_expense(service, funded_users, category_ids):
    ids = await funded_users(hrisi=100)

    result = await service.pay(PayCommand(
        user_id=ids["hrisi"], amount=5, category_id=category_ids["food"], description="Bread"
    ))

    assert result.balance == 95
    rows = await history_of(service, ids["hrisi"])
    assert rows[-1].amount == 5
    assert rows[-1].category_name == "food"
    assert rows[-1].c_type == CategoryType.EXPENSE


@pytest.mark.asyncio
async def test_pay_insufficient_funds_leaves_no_history(service, funded_users, category_ids, test_db):
    ids = await funded_users(hrisi=10)
    before = await snapshot(test_db)

    with pytest.raises(InsufficientFundsError):
        await service.pay(PayCommand(
            user_id=ids["hrisi"], amount=11, category_id=category_ids["food"]
        ))

    assert await snapshot(test_db) == before


@pytest.mark.asyncio
async def test_pay_unknown_wallet(service, category_ids):
    with pytest.raises(InsufficientFundsError):
        await service.pay(PayCommand(user_id=77, amount=1, category_id=category_ids["food"]))


@pytest.mark.asyncio
async def test_pay_rejects_income_category(service, funded_users, category_ids):
    ids = await funded_users(hrisi=100)

    with pytest.raises(NotFoundError):
        await service.pay(PayCommand(
            user_id=ids["hrisi"], amount=5, category_id=category_ids["salary"]
        ))

    assert (await service.check_balance(ids["hrisi"])).balance == 100


@pytest.mark.asyncio
async def test_earn_credits_and_logs_income(service, funded_users, category_ids):
    ids = await funded_users(peter=0)

    result = await service.earn(EarnCommand(
        user_id=ids["peter"], amount=250, category_id=category_ids["gift"], description="Birthday"
    ))

    assert result.balance == 250
    rows = await history_of(service, ids["peter"])
    assert [(row.amount, row.category_name) for row in rows] == [(250, "gift")]


@pytest.mark.asyncio
async def test_earn_unknown_wallet_rolls_back_history(service, category_ids, test_db):
    before = await snapshot(test_db)

    with pytest.raises(NotFoundError):
        await service.earn(EarnCommand(user_id=77, amount=5, category_id=category_ids["salary"]))

    assert await snapshot(test_db) == before


def test_amounts_must_be_positive():
    with pytest.raises(ValidationError):
        PayCommand(user_id=1, amount=0, category_id=2)
    with pytest.raises(ValidationError):
        EarnCommand(user_id=1, amount=-5, category_id=10)


# ===== GIVE LOAN =====

@pytest.mark.asyncio
async def test_give_loan_scenario(service, funded_users, category_ids):
    """creditor 100, debtor 50, loan 30 -> 70 / 80 and one ongoing debt of 30."""
    ids = await funded_users(hrisi=100, lily=50)

    result = await service.give_loan(loan_command(ids, category_ids))

    assert result.creditor_balance == 70
    assert result.debtor_balance == 80
    assert (await service.check_balance(ids["hrisi"])).balance == 70
    assert (await service.check_balance(ids["lily"])).balance == 80

    debts = await service.debts.find_active_debts(ids["lily"])
    assert len(debts) == 1
    assert debts[0].status_id == result.status_id
    assert debts[0].creditor_id == ids["hrisi"]
    assert debts[0].amount == 30
    assert debts[0].status == DebtState.ONGOING

    creditor_rows = await history_of(service, ids["hrisi"])
    debtor_rows = await history_of(service, ids["lily"])
    assert (creditor_rows[-1].amount, creditor_rows[-1].category_name) == (30, "loan")
    assert (debtor_rows[-1].amount, debtor_rows[-1].category_name) == (30, "debt")


@pytest.mark.asyncio
async def test_give_loan_insufficient_funds_changes_nothing(service, funded_users, category_ids, test_db):
    ids = await funded_users(hrisi=20, lily=50)
    before = await snapshot(test_db)

    with pytest.raises(InsufficientFundsError):
        await service.give_loan(loan_command(ids, category_ids, amount=30))

    assert await snapshot(test_db) == before
    assert (await service.check_balance(ids["lily"])).balance == 50


@pytest.mark.asyncio
async def test_give_loan_to_missing_wallet_rolls_back_debit(service, funded_users, category_ids, test_db):
    ids = await funded_users(hrisi=100)
    ids["lily"] = 999
    before = await snapshot(test_db)

    with pytest.raises(NotFoundError):
        await service.give_loan(loan_command(ids, category_ids))

    assert await snapshot(test_db) == before
    assert (await service.check_balance(ids["hrisi"])).balance == 100


@pytest.mark.asyncio
@pytest.mark.parametrize("failing_step", [
    ("wallets", "credit"),
    ("history", "append"),
    ("debts", "create_debt"),
])
async def test_give_loan_is_atomic(service, funded_users, category_ids, test_db, monkeypatch, failing_step):
    """Any step failing midway leaves wallets, history and debts untouched."""
    ids = await funded_users(hrisi=100, lily=50)
    before = await snapshot(test_db)

    attribute, method = failing_step

    async def fail(*args, **kwargs):
        raise FailingStep(method)

    monkeypatch.setattr(getattr(service, attribute), method, fail)

    with pytest.raises(FailingStep):
        await service.give_loan(loan_command(ids, category_ids))

    assert await snapshot(test_db) == before


def test_loan_parties_must_differ():
    with pytest.raises(ValidationError):
        GiveLoanCommand(
            creditor_id=1, debtor_id=1, amount=10,
            loan_category_id=1, debt_category_id=8
        )


# ===== SPLIT =====

@pytest.mark.asyncio
async def test_split_scenario(service, funded_users, category_ids):
    """creditor 100 splits 60 -> creditor 40, debtor owes 30, debtor unchanged."""
    ids = await funded_users(george=100, peter=90)

    result = await service.split(split_command(ids, category_ids))

    assert result.debt_amount == 30
    assert result.creditor_share == 30
    assert (await service.check_balance(ids["george"])).balance == 40
    assert (await service.check_balance(ids["peter"])).balance == 90

    debts = await service.debts.find_active_debts(ids["peter"])
    assert len(debts) == 1
    assert debts[0].amount == 30
    assert debts[0].creditor_id == ids["george"]
    assert debts[0].category_id == category_ids["food"]

    rows = await history_of(service, ids["george"])
    assert [(row.amount, row.category_name) for row in rows[-2:]] == [(30, "food"), (30, "loan")]
    assert len(await history_of(service, ids["peter"])) == 1


@pytest.mark.asyncio
async def test_split_odd_amount_keeps_remainder_with_creditor(service, funded_users, category_ids):
    ids = await funded_users(george=100, peter=0)

    result = await service.split(split_command(ids, category_ids, amount=61))

    assert result.debt_amount == 30
    assert result.creditor_share == 31
    assert result.creditor_balance == 39
    rows = await history_of(service, ids["george"])
    assert sum(row.amount for row in rows[-2:]) == 61


@pytest.mark.asyncio
@pytest.mark.parametrize("failing_step", [
    ("wallets", "debit"),
    ("history", "append"),
    ("debts", "create_debt"),
])
async def test_split_is_atomic(service, funded_users, category_ids, test_db, monkeypatch, failing_step):
    ids = await funded_users(george=100, peter=0)
    before = await snapshot(test_db)

    attribute, method = failing_step

    async def fail(*args, **kwargs):
        raise FailingStep(method)

    monkeypatch.setattr(getattr(service, attribute), method, fail)

    with pytest.raises(FailingStep):
        await service.split(split_command(ids, category_ids))

    assert await snapshot(test_db) == before


@pytest.mark.asyncio
async def test_split_with_unknown_debtor(service, funded_users, category_ids, test_db):
    ids = await funded_users(george=100)
    ids["peter"] = 404
    before = await snapshot(test_db)

    with pytest.raises(NotFoundError):
        await service.split(split_command(ids, category_ids))

    assert await snapshot(test_db) == before


def test_split_needs_at_least_two():
    with pytest.raises(ValidationError):
        SplitCommand(
            creditor_id=1, debtor_id=2, amount=1,
            expense_category_id=2, loan_category_id=1
        )


# ===== REPAY / ACCEPT / DECLINE =====

@pytest.fixture
def accept(category_ids):
    def build(status_id, creditor_id=None):
        return AcceptPaymentCommand(
            status_id=status_id,
            repay_category_id=category_ids["repay"],
            creditor_id=creditor_id,
        )
    return build


@pytest.mark.asyncio
async def test_full_settlement_scenario(service, funded_users, category_ids, accept, test_db):
    ids = await funded_users(hrisi=100, lily=50)
    loan = await service.give_loan(loan_command(ids, category_ids))

    request = await service.request_repay(RequestRepayCommand(
        status_id=loan.status_id, amount=30, debtor_id=ids["lily"]
    ))
    assert request.pending_amount == 30
    pending = await service.debts.find_pending_requests(ids["hrisi"])
    assert [(debt.status, debt.status_amount) for debt in pending] == [(DebtState.PENDING, 30)]

    result = await service.accept_payment(accept(loan.status_id, creditor_id=ids["hrisi"]))

    assert result.transferred == 30
    assert result.remaining == 0
    assert result.settled
    assert (await service.check_balance(ids["lily"])).balance == 80 - 30
    assert (await service.check_balance(ids["hrisi"])).balance == 70 + 30
    assert await test_db["debts"].find_one({"status_id": loan.status_id}) is None
    assert await test_db["debt_status"].find_one({"_id": loan.status_id}) is None

    creditor_rows = await history_of(service, ids["hrisi"])
    debtor_rows = await history_of(service, ids["lily"])
    assert (creditor_rows[-1].amount, creditor_rows[-1].category_name) == (30, "repay")
    assert creditor_rows[-1].c_type == CategoryType.INCOME
    assert (debtor_rows[-1].amount, debtor_rows[-1].category_name) == (30, "loan")
    assert debtor_rows[-1].c_type == CategoryType.EXPENSE


@pytest.mark.asyncio
async def test_partial_settlement_scenario(service, funded_users, category_ids, accept):
    ids = await funded_users(hrisi=100, lily=50)
    loan = await service.give_loan(loan_command(ids, category_ids))

    await service.request_repay(RequestRepayCommand(status_id=loan.status_id, amount=10))
    result = await service.accept_payment(accept(loan.status_id))

    assert result.transferred == 10
    assert result.remaining == 20
    assert not result.settled
    debt = await service.debts.get_debt(loan.status_id)
    assert debt.status == DebtState.ONGOING
    assert debt.amount == 20
    assert debt.status_amount == 20
    assert (await service.check_balance(ids["lily"])).balance == 70
    assert (await service.check_balance(ids["hrisi"])).balance == 80


@pytest.mark.asyncio
async def test_split_debt_repay_logged_under_expense_category(service, funded_users, category_ids, accept):
    ids = await funded_users(george=100, peter=90)
    split = await service.split(split_command(ids, category_ids))

    await service.request_repay(RequestRepayCommand(status_id=split.status_id, amount=30))
    await service.accept_payment(accept(split.status_id))

    rows = await history_of(service, ids["peter"])
    assert (rows[-1].amount, rows[-1].category_name) == (30, "food")
    assert (await service.check_balance(ids["george"])).balance == 70


@pytest.mark.asyncio
async def test_repay_clamped_to_outstanding(service, funded_users, category_ids):
    ids = await funded_users(hrisi=100, lily=50)
    loan = await service.give_loan(loan_command(ids, category_ids))

    request = await service.request_repay(RequestRepayCommand(status_id=loan.status_id, amount=75))

    assert request.pending_amount == 30
    assert (await service.debts.get_debt(loan.status_id)).status_amount == 30


@pytest.mark.asyncio
async def test_accept_settled_debt_twice_does_not_double_credit(service, funded_users, category_ids, accept):
    ids = await funded_users(hrisi=100, lily=50)
    loan = await service.give_loan(loan_command(ids, category_ids))
    await service.request_repay(RequestRepayCommand(status_id=loan.status_id, amount=30))
    await service.accept_payment(accept(loan.status_id))

    with pytest.raises(NotFoundError):
        await service.accept_payment(accept(loan.status_id))

    assert (await service.check_balance(ids["hrisi"])).balance == 100
    assert (await service.check_balance(ids["lily"])).balance == 50


@pytest.mark.asyncio
async def test_accept_when_debtor_cannot_pay_is_atomic(service, funded_users, category_ids, accept, test_db):
    ids = await funded_users(hrisi=100, lily=0)
    loan = await service.give_loan(loan_command(ids, category_ids))
    await service.pay(PayCommand(user_id=ids["lily"], amount=25, category_id=category_ids["food"]))
    await service.request_repay(RequestRepayCommand(status_id=loan.status_id, amount=30))
    before = await snapshot(test_db)

    with pytest.raises(InsufficientFundsError):
        await service.accept_payment(accept(loan.status_id))

    assert await snapshot(test_db) == before
    assert (await service.debts.get_debt(loan.status_id)).is_pending


@pytest.mark.asyncio
@pytest.mark.parametrize("failing_step", [
    ("wallets", "credit"),
    ("history", "append"),
])
async def test_accept_payment_is_atomic(service, funded_users, category_ids, accept, test_db, monkeypatch, failing_step):
    ids = await funded_users(hrisi=100, lily=50)
    loan = await service.give_loan(loan_command(ids, category_ids))
    await service.request_repay(RequestRepayCommand(status_id=loan.status_id, amount=30))
    before = await snapshot(test_db)

    attribute, method = failing_step

    async def fail(*args, **kwargs):
        raise FailingStep(method)

    monkeypatch.setattr(getattr(service, attribute), method, fail)

    with pytest.raises(FailingStep):
        await service.accept_payment(accept(loan.status_id))

    assert await snapshot(test_db) == before


@pytest.mark.asyncio
async def test_accept_integrity_fault_changes_nothing(service, funded_users, category_ids, accept, test_db):
    ids = await funded_users(hrisi=100, lily=50)
    loan = await service.give_loan(loan_command(ids, category_ids))
    await test_db["debt_status"].update_one(
        {"_id": loan.status_id}, {"$set": {"status": "pending", "amount": 31}}
    )
    before = await snapshot(test_db)

    with pytest.raises(IntegrityFaultError):
        await service.accept_payment(accept(loan.status_id))

    assert await snapshot(test_db) == before


@pytest.mark.asyncio
async def test_decline_payment(service, funded_users, category_ids):
    ids = await funded_users(hrisi=100, lily=50)
    loan = await service.give_loan(loan_command(ids, category_ids))
    await service.request_repay(RequestRepayCommand(status_id=loan.status_id, amount=10))

    result = await service.decline_payment(DeclinePaymentCommand(
        status_id=loan.status_id, creditor_id=ids["hrisi"]
    ))

    assert result.amount == 30
    debt = await service.debts.get_debt(loan.status_id)
    assert debt.status == DebtState.ONGOING
    assert debt.status_amount == 30
    assert (await service.check_balance(ids["lily"])).balance == 80


@pytest.mark.asyncio
async def test_only_parties_may_transition(service, funded_users, category_ids, accept):
    ids = await funded_users(hrisi=100, lily=50, peter=0)
    loan = await service.give_loan(loan_command(ids, category_ids))

    # creditor cannot request a repay of their own loan
    with pytest.raises(NotFoundError):
        await service.request_repay(RequestRepayCommand(
            status_id=loan.status_id, amount=10, debtor_id=ids["hrisi"]
        ))

    await service.request_repay(RequestRepayCommand(
        status_id=loan.status_id, amount=10, debtor_id=ids["lily"]
    ))

    with pytest.raises(NotFoundError):
        await service.accept_payment(accept(loan.status_id, creditor_id=ids["lily"]))
    with pytest.raises(NotFoundError):
        await service.decline_payment(DeclinePaymentCommand(
            status_id=loan.status_id, creditor_id=ids["peter"]
        ))


@pytest.mark.asyncio
async def test_accept_ongoing_debt_rejected(service, funded_users, category_ids, accept):
    ids = await funded_users(hrisi=100, lily=50)
    loan = await service.give_loan(loan_command(ids, category_ids))

    with pytest.raises(InvalidDebtStateError):
        await service.accept_payment(accept(loan.status_id))

    assert (await service.check_balance(ids["hrisi"])).balance == 70


# ===== OVERVIEWS AND INVARIANTS =====

@pytest.mark.asyncio
async def test_overviews(service, funded_users, category_ids):
    ids = await funded_users(hrisi=100, lily=50)
    first = await service.give_loan(loan_command(ids, category_ids, amount=30, description="Bills"))
    second = await service.give_loan(loan_command(ids, category_ids, amount=20, description="Taxi"))
    await service.request_repay(RequestRepayCommand(status_id=second.status_id, amount=5))

    debts = await service.debts_overview(ids["lily"])
    loans = await service.loans_overview(ids["hrisi"])

    assert [debt.status_id for debt in debts.active] == [first.status_id]
    assert [debt.status_id for debt in debts.pending] == [second.status_id]
    assert debts.balance == 100
    assert [debt.description for debt in loans.active] == ["Bills"]
    assert [debt.status_amount for debt in loans.pending] == [5]
    assert loans.balance == 50


@pytest.mark.asyncio
async def test_balance_conservation(service, funded_users, category_ids, accept, test_db):
    """
    Transfers between users never create or destroy money.

    GiveLoan, AcceptPayment and DeclinePayment keep the sum of all wallets
    fixed. Split, Pay and Earn move money across the system boundary by
    exactly their amount.
    """
    ids = await funded_users(hrisi=100, lily=50, george=80, peter=10)

    async def wallets_total():
        wallets = await test_db["wallets"].find({}).to_list(None)
        return sum(doc["balance"] for doc in wallets)

    start = await wallets_total()

    loan = await service.give_loan(loan_command(ids, category_ids, amount=30))
    assert await wallets_total() == start

    await service.request_repay(RequestRepayCommand(status_id=loan.status_id, amount=10))
    await service.accept_payment(accept(loan.status_id))
    assert await wallets_total() == start

    await service.request_repay(RequestRepayCommand(status_id=loan.status_id, amount=5))
    await service.decline_payment(DeclinePaymentCommand(status_id=loan.status_id))
    assert await wallets_total() == start

    await service.request_repay(RequestRepayCommand(status_id=loan.status_id, amount=20))
    await service.accept_payment(accept(loan.status_id))
    assert await wallets_total() == start

    await service.split(split_command(ids, category_ids, amount=40))
    assert await wallets_total() == start - 40

    await service.pay(PayCommand(user_id=ids["peter"], amount=10, category_id=category_ids["food"]))
    await service.earn(EarnCommand(user_id=ids["peter"], amount=15, category_id=category_ids["gift"]))
    assert await wallets_total() == start - 40 - 10 + 15


@pytest.mark.asyncio
async def test_permissive_policy_allows_negative_balance(test_db, category_ids):
    service = SettlementService(
        test_db, transactions=SnapshotTransactionRunner(test_db), allow_negative=True
    )
    user = await service.open_account("spender")

    result = await service.pay(PayCommand(
        user_id=user.id, amount=40, category_id=category_ids["food"]
    ))

    assert result.balance == -40


@pytest.mark.asyncio
async def test_open_account_twice(service):
    await service.open_account("hrisi")

    with pytest.raises(AlreadyExistsError):
        await service.open_account("hrisi")


@pytest.mark.asyncio
async def test_every_operation_runs_in_one_unit(test_db, category_ids):
    runner = SnapshotTransactionRunner(test_db)
    service = SettlementService(test_db, transactions=runner)
    alice = await service.open_account("alice")
    bob = await service.open_account("bob")
    runner.units = 0

    await service.earn(EarnCommand(user_id=alice.id, amount=50, category_id=category_ids["salary"]))
    await service.give_loan(GiveLoanCommand(
        creditor_id=alice.id, debtor_id=bob.id, amount=10,
        loan_category_id=category_ids["loan"], debt_category_id=category_ids["debt"]
    ))

    assert runner.units == 2


class SequenceWatchingRunner(SnapshotTransactionRunner):
    """Records every shared sequence document that changed inside a unit."""

    def __init__(self, db):
        super().__init__(db)
        self.written = []

    async def _shared_sequences(self):
        docs = await self.db["counters"].find({"_id": {"$in": list(SHARED_SEQUENCES)}}).to_list(None)
        return {doc["_id"]: doc["seq"] for doc in docs}

    @asynccontextmanager
    async def atomic(self):
        before = await self._shared_sequences()
        async with super().atomic() as session:
            yield session
            after = await self._shared_sequences()
            self.written.extend(name for name in after if after[name] != before.get(name))


@pytest.mark.asyncio
async def test_units_on_disjoint_users_share_no_documents(test_db, category_ids):
    """Ids are reserved before a unit opens, so unrelated loans never write a common counter."""
    runner = SequenceWatchingRunner(test_db)
    service = SettlementService(test_db, transactions=runner)
    users = {name: (await service.open_account(name)).id for name in ("alice", "bob", "carol", "dave")}
    for name in ("alice", "carol"):
        await service.earn(EarnCommand(
            user_id=users[name], amount=100, category_id=category_ids["salary"]
        ))

    first = await service.give_loan(GiveLoanCommand(
        creditor_id=users["alice"], debtor_id=users["bob"], amount=10,
        loan_category_id=category_ids["loan"], debt_category_id=category_ids["debt"]
    ))
    second = await service.split(SplitCommand(
        creditor_id=users["carol"], debtor_id=users["dave"], amount=20,
        expense_category_id=category_ids["food"], loan_category_id=category_ids["loan"]
    ))

    assert runner.written == []
    assert second.status_id == first.status_id + 1
    assert len(set(users.values())) == 4
