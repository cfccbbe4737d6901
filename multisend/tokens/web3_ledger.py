"""
ERC20 token ledger reached over JSON-RPC with web3.py.

The engine's address must be the address of the signing account: ERC20
transfer() and transferFrom() act for msg.sender, so this ledger refuses
to act for any other sender (TokenLedgerError).

Every write is first simulated with eth_call. A simulated revert or a
`false` return value is reported as a refused movement (False) without
broadcasting. A mined transaction with status 0 is also False. A receipt
that never arrives is not a refusal: the movement may still land, so it
raises TokenLedgerError and aborts the calling operation.

In-process rollback does not reach a remote chain; only engine-side
state is restored when a call using this ledger aborts.
"""

import logging
from typing import Any, Dict, Optional

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from multisend.core.exceptions import TokenLedgerError
from multisend.tokens.base import TokenLedger


logger = logging.getLogger(__name__)


ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transferFrom",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class Web3TokenLedger(TokenLedger):

    def __init__(
        self,
        w3:              Web3,
        token_address:   str,
        account:         Optional[Any] = None,
        chain_id:        Optional[int] = None,
        receipt_timeout: float = 120.0,
    ) -> None:
        """
        Args:
            w3:              connected Web3 instance
            token_address:   ERC20 contract address
            account:         eth_account LocalAccount that signs writes;
                             read-only ledger when None
            chain_id:        defaults to w3.eth.chain_id at first write
            receipt_timeout: seconds to wait for a mined receipt
        """
        self.w3 = w3
        self._address = Web3.to_checksum_address(token_address)
        self._contract = w3.eth.contract(address=self._address, abi=ERC20_ABI)
        self._account = account
        self._chain_id = chain_id
        self.receipt_timeout = receipt_timeout

    @classmethod
    def from_rpc(
        cls,
        rpc_url:       str,
        token_address: str,
        private_key:   Optional[str] = None,
        **kwargs: Any,
    ) -> "Web3TokenLedger":
        w3 = Web3(Web3.HTTPProvider(rpc_url))
        account = Account.from_key(private_key) if private_key else None
        return cls(w3, token_address, account=account, **kwargs)

    @property
    def address(self) -> str:
        return self._address

    @property
    def signer(self) -> Optional[str]:
        return self._account.address if self._account is not None else None

    # ── Reads ─────────────────────────────────────────────────

    def balance_of(self, account: str) -> int:
        return int(self._contract.functions.balanceOf(
            Web3.to_checksum_address(account)
        ).call())

    def allowance(self, owner: str, spender: str) -> int:
        return int(self._contract.functions.allowance(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(spender),
        ).call())

    # ── Writes ────────────────────────────────────────────────

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        self._require_signer(sender)
        fn = self._contract.functions.transfer(Web3.to_checksum_address(to), int(amount))
        return self._transact(fn, "transfer")

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        self._require_signer(spender)
        fn = self._contract.functions.transferFrom(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(to),
            int(amount),
        )
        return self._transact(fn, "transferFrom")

    # ── Internal ──────────────────────────────────────────────

    def _require_signer(self, sender: str) -> None:
        if self._account is None:
            raise TokenLedgerError("Ledger has no signing account",
                                   {"token": self._address})
        if Web3.to_checksum_address(sender) != self._account.address:
            raise TokenLedgerError(
                "Ledger can only act for its signing account",
                {"token": self._address, "sender": sender,
                 "signer": self._account.address},
            )

    def _transact(self, fn: Any, name: str) -> bool:
        sender = self._account.address
        try:
            if fn.call({"from": sender}) is False:
                logger.info("%s on %s returned false in simulation", name, self._address)
                return False
            tx: Dict[str, Any] = fn.build_transaction({
                "from":    sender,
                "nonce":   self.w3.eth.get_transaction_count(sender),
                "chainId": self._chain_id or self.w3.eth.chain_id,
            })
        except ContractLogicError as exc:
            logger.info("%s on %s reverted in simulation: %s", name, self._address, exc)
            return False

        signed = self._account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except TimeExhausted as exc:
            raise TokenLedgerError(
                "Timed out waiting for token transaction receipt",
                {"token": self._address, "tx_hash": _hex(tx_hash)},
            ) from exc

        if receipt["status"] != 1:
            logger.warning("%s on %s failed on chain: %s", name, self._address, _hex(tx_hash))
            return False
        return True

    def __repr__(self) -> str:
        return f"Web3TokenLedger({self._address}, signer={self.signer})"


def _hex(value: Any) -> str:
    return value.hex() if hasattr(value, "hex") else str(value)
