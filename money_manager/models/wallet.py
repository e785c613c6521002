from money_manager.models.base import MongoModel


class Wallet(MongoModel):
    """
    One balance per user.

    The balance is a signed integer. Debits refuse to go below zero unless
    ALLOW_NEGATIVE_BALANCE is set.
    """
    user_id: int
    balance: int = 0
