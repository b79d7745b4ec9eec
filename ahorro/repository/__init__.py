"""Receipt repository package."""

from ahorro.repository.store import ChangeNotification, ReceiptRepository

__all__ = ["ChangeNotification", "ReceiptRepository"]
