"""Expected totals of a cash session.

For a session window ``[opened_at, until]``::

    expected_cash   = opening + sales_cash + deposits - withdrawals
    expected_<t>    = sales_<t>   for t in pix, debit, credit
    expected_total  = sum of the four

The computation only reads. It runs on demand while a session is open and is
snapshotted onto the session row once, at close.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from app.cashdesk.core.clock import utcnow
from app.cashdesk.core.logging import log_json
from app.cashdesk.core.metrics import metrics
from app.cashdesk.core.money import ZERO, money_str, to_money
from app.cashdesk.db.models import CashSession
from app.cashdesk.repos.cash_movements import CashMovementRepository
from app.cashdesk.repos.establishments import EstablishmentRepository
from app.cashdesk.repos.ledger import LedgerReader, LedgerWindow, SqlLedgerReader, TenderTotals

logger = logging.getLogger("cashdesk.reconciliation")

NEGATIVE_EXPECTED_CASH = "negative_expected_cash"


@dataclass(frozen=True)
class ExpectedTotals:
    opening_amount: Decimal
    sales: TenderTotals
    withdrawals: Decimal
    deposits: Decimal
    cash: Decimal
    pix: Decimal
    debit: Decimal
    credit: Decimal
    total: Decimal
    rejected_total: Decimal = ZERO
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def as_tenders(self) -> TenderTotals:
        return TenderTotals(cash=self.cash, pix=self.pix, debit=self.debit, credit=self.credit)


def compute_expected_totals(
    *,
    opening_amount: Decimal,
    sales: TenderTotals,
    withdrawals: Decimal,
    deposits: Decimal,
    rejected_total: Decimal = ZERO,
) -> ExpectedTotals:
    opening_amount = to_money(opening_amount)
    withdrawals = to_money(withdrawals)
    deposits = to_money(deposits)
    cash = to_money(opening_amount + sales.cash + deposits - withdrawals)
    pix = to_money(sales.pix)
    debit = to_money(sales.debit)
    credit = to_money(sales.credit)
    warnings = (NEGATIVE_EXPECTED_CASH,) if cash < 0 else ()
    return ExpectedTotals(
        opening_amount=opening_amount,
        sales=sales,
        withdrawals=withdrawals,
        deposits=deposits,
        cash=cash,
        pix=pix,
        debit=debit,
        credit=credit,
        total=to_money(cash + pix + debit + credit),
        rejected_total=to_money(rejected_total),
        warnings=warnings,
    )


def frozen_totals(session: CashSession, *, withdrawals: Decimal, deposits: Decimal) -> ExpectedTotals:
    """Expected totals as snapshotted on a closed or pending session row."""
    cash = to_money(session.expected_cash)
    opening_amount = to_money(session.opening_amount)
    sales = TenderTotals(
        cash=to_money(cash - opening_amount - deposits + withdrawals),
        pix=to_money(session.expected_pix),
        debit=to_money(session.expected_debit),
        credit=to_money(session.expected_credit),
    )
    return ExpectedTotals(
        opening_amount=opening_amount,
        sales=sales,
        withdrawals=to_money(withdrawals),
        deposits=to_money(deposits),
        cash=cash,
        pix=sales.pix,
        debit=sales.debit,
        credit=sales.credit,
        total=to_money(session.expected_total),
    )


class ReconciliationEngine:
    def __init__(self, db, ledger: LedgerReader | None = None):
        self.ledger = ledger or SqlLedgerReader(db)
        self.movements = CashMovementRepository(db)
        self.establishments = EstablishmentRepository(db)

    def _window(self, session: CashSession, until: datetime | None) -> LedgerWindow:
        establishment = self.establishments.get_by_id(session.establishment_id)
        end = until or session.closed_at or utcnow()
        return LedgerWindow(
            establishment_id=str(session.establishment_id),
            start=session.opened_at,
            end=end,
            require_online_acceptance=bool(establishment and establishment.require_online_acceptance),
        )

    def expected_for_session(self, session: CashSession, *, until: datetime | None = None) -> ExpectedTotals:
        window = self._window(session, until)
        sales = self.ledger.sum_by_tender(window)
        withdrawals, deposits = self.movements.sum_by_kind(session.id)
        totals = compute_expected_totals(
            opening_amount=session.opening_amount,
            sales=sales,
            withdrawals=withdrawals,
            deposits=deposits,
            rejected_total=self.ledger.rejected_total(window),
        )
        if NEGATIVE_EXPECTED_CASH in totals.warnings:
            metrics.increment_negative_expected_cash()
            log_json(
                logger,
                {
                    "event": "cash_session.negative_expected_cash",
                    "session_id": str(session.id),
                    "establishment_id": str(session.establishment_id),
                    "expected_cash": money_str(totals.cash),
                    "withdrawals": money_str(withdrawals),
                },
                level=logging.WARNING,
            )
        return totals
