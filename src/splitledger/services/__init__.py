"""Entry points the application layer calls into.

Importing this package exposes the expense and settlement services and the
read-only query functions.
"""

from splitledger.services import queries
from splitledger.services.expenses import ExpenseDraft, ExpenseService
from splitledger.services.settlements import SettlementWorkflow

__all__ = ["ExpenseDraft", "ExpenseService", "SettlementWorkflow", "queries"]
