"""Core business logic services for the group expense ledger."""
from dataclasses import dataclass

from flask import current_app

from groupledger.utils.permissions import MembershipGate

from .balance_service import BalanceAggregator, BalanceSheet
from .expense_service import ExpenseLedger, SplitCalculator
from .group_service import GroupRegistry
from .member_directory import HttpMemberDirectory, MemberDirectory, SqlMemberDirectory
from .settlement_service import SettlementRecorder


@dataclass
class LedgerServices:
    """Services wired to one Database; stored in ``app.extensions``."""
    db: object
    directory: MemberDirectory
    gate: object
    groups: GroupRegistry
    expenses: ExpenseLedger
    balances: BalanceAggregator
    settlements: SettlementRecorder


def build_services(db, directory: MemberDirectory) -> LedgerServices:
    balances = BalanceAggregator(db, directory)
    return LedgerServices(
        db=db,
        directory=directory,
        gate=MembershipGate(db),
        groups=GroupRegistry(db, directory, balances),
        expenses=ExpenseLedger(db, directory),
        balances=balances,
        settlements=SettlementRecorder(db, directory),
    )


def services() -> LedgerServices:
    return current_app.extensions["group_ledger"]


__all__ = [
    "BalanceAggregator",
    "BalanceSheet",
    "ExpenseLedger",
    "GroupRegistry",
    "HttpMemberDirectory",
    "LedgerServices",
    "MemberDirectory",
    "SettlementRecorder",
    "SplitCalculator",
    "SqlMemberDirectory",
    "build_services",
    "services",
]
