"""
SettlementService - the ledger settlement engine.

Every operation touches wallets, history and debts inside a single
transaction. Either all of its writes commit or none do; a failed step
aborts the transaction and the error reaches the caller unchanged.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from money_manager.core.errors import LedgerError, NotFoundError
from money_manager.db.transaction import TransactionRunner
from money_manager.models.category import Category, CategoryType
from money_manager.models.debt import DebtView
from money_manager.models.user import User
from money_manager.repositories.category_repo import CategoryRepository
from money_manager.repositories.debt_repo import DebtRepository
from money_manager.repositories.history_repo import HistoryRepository
from money_manager.repositories.user_repo import UserRepository
from money_manager.repositories.wallet_repo import WalletRepository
from money_manager.schemas.settlement import (
    AcceptPaymentCommand,
    BalanceResult,
    DebtsOverview,
    DeclinePaymentCommand,
    DeclineResult,
    EarnCommand,
    GiveLoanCommand,
    LoanResult,
    PayCommand,
    RepayRequestResult,
    RequestRepayCommand,
    SettlementResult,
    SplitCommand,
    SplitResult,
)

logger = logging.getLogger(__name__)


class SettlementService:
    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        transactions: Optional[TransactionRunner] = None,
        allow_negative: Optional[bool] = None,
    ):
        self.db = db
        self.transactions = transactions or TransactionRunner(db.client)
        self.wallets = WalletRepository(db, allow_negative=allow_negative)
        self.history = HistoryRepository(db)
        self.debts = DebtRepository(db)
        self.categories = CategoryRepository(db)
        self.users = UserRepository(db)

    # ===== ACCOUNTS =====

    async def open_account(self, username: str) -> User:
        """Register a username and its empty wallet together."""
        user_id = await self.users.allocate_id()
        async with self._unit("open_account", username=username) as session:
            user = await self.users.create_user(username, user_id=user_id, session=session)
            await self.wallets.create_wallet(user.id, session=session)
        return user

    async def create_wallet(self, user_id: int) -> BalanceResult:
        wallet = await self.wallets.create_wallet(user_id)
        return BalanceResult(user_id=wallet.user_id, balance=wallet.balance)

    async def check_balance(self, user_id: int) -> BalanceResult:
        return BalanceResult(user_id=user_id, balance=await self.wallets.check_balance(user_id))

    # ===== PAYMENTS =====

    async def pay(self, command: PayCommand) -> BalanceResult:
        """Spend money: debit the wallet and log an expense."""
        async with self._unit("pay", user=command.user_id, amount=command.amount) as session:
            await self._expect_category(command.category_id, CategoryType.EXPENSE, session)
            balance = await self.wallets.debit(command.user_id, command.amount, session=session)
            await self.history.append(
                command.user_id, command.amount, command.category_id,
                command.description, session=session
            )
        return BalanceResult(user_id=command.user_id, balance=balance)

    async def earn(self, command: EarnCommand) -> BalanceResult:
        """Receive money: log an income and credit the wallet."""
        async with self._unit("earn", user=command.user_id, amount=command.amount) as session:
            await self._expect_category(command.category_id, CategoryType.INCOME, session)
            await self.history.append(
                command.user_id, command.amount, command.category_id,
                command.description, session=session
            )
            balance = await self.wallets.credit(command.user_id, command.amount, session=session)
        return BalanceResult(user_id=command.user_id, balance=balance)

    # ===== LOANS AND SPLITS =====

    async def give_loan(self, command: GiveLoanCommand) -> LoanResult:
        """
        Lend money from creditor to debtor.

        Steps (one transaction):
        1. Debit creditor
        2. Credit debtor
        3. Creditor history: expense under the loan category
        4. Debtor history: income under the debt category
        5. Create an ongoing debt for the full amount, filed under the loan
           category so the debtor's repayment is logged as an expense

        The status id is reserved before the transaction opens. An aborted
        loan leaves a gap in the sequence.
        """
        status_id = await self.debts.allocate_status_id()

        async with self._unit(
            "give_loan",
            creditor=command.creditor_id,
            debtor=command.debtor_id,
            amount=command.amount,
        ) as session:
            await self._expect_category(command.loan_category_id, CategoryType.EXPENSE, session)
            await self._expect_category(command.debt_category_id, CategoryType.INCOME, session)

            creditor_balance = await self.wallets.debit(
                command.creditor_id, command.amount, session=session
            )
            debtor_balance = await self.wallets.credit(
                command.debtor_id, command.amount, session=session
            )
            await self.history.append(
                command.creditor_id, command.amount, command.loan_category_id,
                command.description, session=session
            )
            await self.history.append(
                command.debtor_id, command.amount, command.debt_category_id,
                command.description, session=session
            )
            await self.debts.create_debt(
                command.creditor_id, command.debtor_id, command.amount,
                command.loan_category_id, command.description,
                status_id=status_id, session=session
            )

        return LoanResult(
            status_id=status_id,
            amount=command.amount,
            creditor_balance=creditor_balance,
            debtor_balance=debtor_balance,
        )

    async def split(self, command: SplitCommand) -> SplitResult:
        """
        Creditor pays a shared expense in full; the debtor owes half.

        The debtor owes amount // 2. The creditor's own share keeps the odd
        unit, so the two history rows add up to what left the wallet. The
        debtor's wallet is untouched until the debt is repaid.
        """
        half = command.amount // 2
        own_share = command.amount - half
        status_id = await self.debts.allocate_status_id()

        async with self._unit(
            "split",
            creditor=command.creditor_id,
            debtor=command.debtor_id,
            amount=command.amount,
        ) as session:
            await self._expect_category(command.expense_category_id, CategoryType.EXPENSE, session)
            await self._expect_category(command.loan_category_id, CategoryType.EXPENSE, session)
            await self._expect_wallet(command.debtor_id, session)

            creditor_balance = await self.wallets.debit(
                command.creditor_id, command.amount, session=session
            )
            await self.history.append(
                command.creditor_id, own_share, command.expense_category_id,
                command.description, session=session
            )
            await self.history.append(
                command.creditor_id, half, command.loan_category_id,
                command.description, session=session
            )
            await self.debts.create_debt(
                command.creditor_id, command.debtor_id, half,
                command.expense_category_id, command.description,
                status_id=status_id, session=session
            )

        return SplitResult(
            status_id=status_id,
            debt_amount=half,
            creditor_share=own_share,
            creditor_balance=creditor_balance,
        )

    # ===== REPAYMENT =====

    async def request_repay(self, command: RequestRepayCommand) -> RepayRequestResult:
        """Debtor offers to repay; offers above the debt are capped."""
        async with self._unit(
            "request_repay", status_id=command.status_id, amount=command.amount
        ) as session:
            debt = await self.debts.get_debt(command.status_id, session=session)
            self._expect_party(debt, debtor_id=command.debtor_id)
            pending_amount = await self.debts.request_repay(
                command.status_id, command.amount, session=session
            )
        return RepayRequestResult(status_id=command.status_id, pending_amount=pending_amount)

    async def accept_payment(self, command: AcceptPaymentCommand) -> SettlementResult:
        """
        Creditor accepts the pending repay.

        The pending amount moves from the debtor's wallet to the creditor's.
        Creditor logs an income under the repay category, debtor logs an
        expense under the debt's own category.
        """
        async with self._unit("accept_payment", status_id=command.status_id) as session:
            await self._expect_category(command.repay_category_id, CategoryType.INCOME, session)
            debt = await self.debts.get_debt(command.status_id, session=session)
            self._expect_party(debt, creditor_id=command.creditor_id)

            transferred, remaining = await self.debts.accept_payment(
                command.status_id, session=session
            )

            await self.wallets.debit(debt.debtor_id, transferred, session=session)
            await self.wallets.credit(debt.creditor_id, transferred, session=session)
            await self.history.append(
                debt.creditor_id, transferred, command.repay_category_id,
                debt.description, session=session
            )
            await self.history.append(
                debt.debtor_id, transferred, debt.category_id,
                debt.description, session=session
            )

        return SettlementResult(
            status_id=command.status_id, transferred=transferred, remaining=remaining
        )

    async def decline_payment(self, command: DeclinePaymentCommand) -> DeclineResult:
        """Creditor refuses the pending repay; the debt goes back to ongoing."""
        async with self._unit("decline_payment", status_id=command.status_id) as session:
            debt = await self.debts.get_debt(command.status_id, session=session)
            self._expect_party(debt, creditor_id=command.creditor_id)
            amount = await self.debts.decline_payment(command.status_id, session=session)
        return DeclineResult(status_id=command.status_id, amount=amount)

    # ===== OVERVIEWS =====

    async def debts_overview(self, debtor_id: int) -> DebtsOverview:
        """Money the user owes. Read outside any transaction."""
        return DebtsOverview(
            active=await self.debts.find_active_debts(debtor_id),
            pending=await self.debts.find_pending_debts(debtor_id),
            balance=await self.wallets.check_balance(debtor_id),
        )

    async def loans_overview(self, creditor_id: int) -> DebtsOverview:
        """Money owed to the user. Read outside any transaction."""
        return DebtsOverview(
            active=await self.debts.find_active_loans(creditor_id),
            pending=await self.debts.find_pending_requests(creditor_id),
            balance=await self.wallets.check_balance(creditor_id),
        )

    # ===== PRIVATE HELPERS =====

    @asynccontextmanager
    async def _unit(self, operation: str, **context):
        """Run one atomic unit and log its outcome."""
        try:
            async with self.transactions.atomic() as session:
                yield session
        except LedgerError as exc:
            logger.warning("%s aborted %s: %s", operation, context, exc)
            raise
        logger.info("%s committed %s", operation, context)

    async def _expect_category(self, category_id: int, c_type: CategoryType, session) -> Category:
        category = await self.categories.find_by_id(category_id, session=session)
        if category.c_type != c_type:
            raise NotFoundError(f"No {c_type.value} category with id {category_id}")
        return category

    async def _expect_wallet(self, user_id: int, session) -> None:
        await self.wallets.check_balance(user_id, session=session)

    @staticmethod
    def _expect_party(
        debt: DebtView, debtor_id: Optional[int] = None, creditor_id: Optional[int] = None
    ) -> None:
        # Debts are reported missing to anyone who is not a party to them
        if debtor_id is not None and debt.debtor_id != debtor_id:
            raise NotFoundError(f"Debt {debt.status_id} not found")
        if creditor_id is not None and debt.creditor_id != creditor_id:
            raise NotFoundError(f"Debt {debt.status_id} not found")
