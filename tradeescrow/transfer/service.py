"""
Asset Transfer Service capability.

The escrow never moves value itself. It asks an external service to debit a
party into custody or credit a party out of custody. Each call is atomic:
it either fully applies or raises TransferError and changes nothing.
"""

from abc import ABC, abstractmethod


class AssetTransferService(ABC):
    """
    Debit/credit capability over one fungible asset.

    custodian is the identity of the account that holds escrowed funds.
    """

    custodian: str

    @abstractmethod
    def debit(self, party: str, amount: int) -> None:
        """
        Move amount from party into custody.
        Raises TransferError if the party's balance or the allowance it
        granted the custodian is insufficient.
        """

    @abstractmethod
    def credit(self, party: str, amount: int) -> None:
        """
        Move amount from custody to party.
        Raises TransferError if custody holds less than amount.
        """

    @abstractmethod
    def balance_of(self, party: str) -> int:
        ...

    def custody_balance(self) -> int:
        return self.balance_of(self.custodian)
