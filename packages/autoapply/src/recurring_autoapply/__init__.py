"""Recurring auto-apply - materializes due recurring ledger transactions."""

__version__ = "0.1.0"

from recurring_autoapply.config import configure_logging, get_settings
from recurring_autoapply.engine import AutoApplyEngine
from recurring_autoapply.errors import (
    AlreadyRunningError,
    AutoApplyError,
    AutoApplyTimeoutError,
    ExhaustedRetriesError,
    InsufficientFundsError,
    RecurringNotFoundError,
    RecurringValidationError,
    StoreError,
)
from recurring_autoapply.models import (
    Account,
    Recurring,
    RecurringType,
    Transaction,
    TransactionType,
)
from recurring_autoapply.notifications import (
    LoggingNotifier,
    Notification,
    NotificationCenter,
    NotificationLevel,
    NullNotifier,
)
from recurring_autoapply.results import (
    ApplyResult,
    AutoApplyAction,
    AutoApplyResult,
    AutoApplySettings,
    BatchApplyResult,
    StartupResult,
)
from recurring_autoapply.schedule import next_occurrence
from recurring_autoapply.service import AutoApplyService
from recurring_autoapply.supervisor import (
    StartupConfig,
    StartupState,
    StartupSupervisor,
    create_startup_supervisor,
)

__all__ = [
    # Version
    "__version__",
    # Engine & orchestration
    "AutoApplyEngine",
    "AutoApplyService",
    "StartupSupervisor",
    "StartupConfig",
    "StartupState",
    "create_startup_supervisor",
    # Models
    "Account",
    "Recurring",
    "RecurringType",
    "Transaction",
    "TransactionType",
    # Results
    "ApplyResult",
    "AutoApplyAction",
    "AutoApplyResult",
    "AutoApplySettings",
    "BatchApplyResult",
    "StartupResult",
    # Notifications
    "Notification",
    "NotificationCenter",
    "NotificationLevel",
    "LoggingNotifier",
    "NullNotifier",
    # Errors
    "AutoApplyError",
    "AlreadyRunningError",
    "AutoApplyTimeoutError",
    "ExhaustedRetriesError",
    "InsufficientFundsError",
    "RecurringNotFoundError",
    "RecurringValidationError",
    "StoreError",
    # Utilities
    "next_occurrence",
    "configure_logging",
    "get_settings",
]
