# MIT License
# Copyright (c) 2025 Hashborn

"""
In-process value ledgers for staked and reward assets.

Each AssetLedger tracks one asset: balances, allowances and permit nonces.
Transfers that the ledger refuses (insufficient balance or allowance) return
False; malformed calls raise LedgerError. Pools treat both as a failed
movement.
"""
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional, Tuple
import json
import threading
import logging

from protocol.types.common import LedgerError, AuthorizationInvalid, AuthorizationExpired
from protocol.types.permit import Permit
from protocol.crypto.keys import recover_public_keys
from protocol.crypto.addresses import address_from_pubkey, decode_address

logger = logging.getLogger(__name__)

# hook(sender, recipient, amount) runs before every balance movement
TransferHook = Callable[[str, str, int], None]


class AssetLedger:
    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.nonces: Dict[str, int] = {}
        self.total_supply = 0
        self.hooks: List[TransferHook] = []
        self._lock = threading.RLock()
        self._journals = threading.local()

    def balance_of(self, holder: str) -> int:
        return self.balances.get(holder, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def nonce_of(self, owner: str) -> int:
        return self.nonces.get(owner, 0)

    def mint(self, recipient: str, amount: int) -> None:
        """Creates new units (genesis allocation, tests)."""
        self._check_amount(amount)
        with self._lock:
            self._credit(recipient, amount)
            self.total_supply += amount
            self._record(("supply", amount))

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        self._check_amount(amount)
        with self._lock:
            self._set_allowance(owner, spender, amount)
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        self._check_amount(amount)
        with self._lock:
            if self.balance_of(sender) < amount:
                logger.debug(f"[{self.asset_id}] transfer refused: {sender} has {self.balance_of(sender)}, needs {amount}")
                return False
            self._move(sender, recipient, amount)
            return True

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        """Moves `amount` from `owner` to `recipient` using `spender`'s allowance."""
        self._check_amount(amount)
        with self._lock:
            allowed = self.allowance(owner, spender)
            if allowed < amount:
                logger.debug(f"[{self.asset_id}] transfer_from refused: allowance {allowed} < {amount}")
                return False
            if self.balance_of(owner) < amount:
                logger.debug(f"[{self.asset_id}] transfer_from refused: {owner} has {self.balance_of(owner)}, needs {amount}")
                return False
            self._move(owner, recipient, amount)
            self._set_allowance(owner, spender, allowed - amount)
            return True

    def permit(self, owner: str, spender: str, value: int, deadline: int, signature: bytes, now: int) -> None:
        """
        Consumes a signed Permit and sets the allowance of `spender`.

        Raises:
            AuthorizationExpired: now is past the deadline
            AuthorizationInvalid: malformed signature or signer is not `owner`
        """
        self._check_amount(value)
        if now > deadline:
            raise AuthorizationExpired(f"Permit expired at {deadline} (now {now})")

        with self._lock:
            permit = Permit(
                asset=self.asset_id,
                owner=owner,
                spender=spender,
                value=value,
                nonce=self.nonce_of(owner),
                deadline=deadline,
            )
            if not self._signed_by(permit, signature):
                raise AuthorizationInvalid(f"Permit signature does not match owner {owner}")

            self._record(("nonce", owner, permit.nonce))
            self.nonces[owner] = permit.nonce + 1
            self._set_allowance(owner, spender, value)
            logger.debug(f"[{self.asset_id}] permit consumed: {owner} -> {spender} value={value} nonce={permit.nonce}")

    @contextmanager
    def atomic(self):
        """
        Savepoint for the calling thread: movements made inside the block are
        reversed if it raises. Nested blocks fold into the enclosing one.
        """
        stack = self._journal_stack()
        journal: List[tuple] = []
        stack.append(journal)
        try:
            yield self
        except BaseException:
            stack.pop()
            with self._lock:
                self._undo(journal)
            raise
        stack.pop()
        if stack:
            stack[-1].extend(journal)

    def persist(self, db) -> None:
        """Writes balances, allowances and nonces under ledger:<asset_id>."""
        with self._lock:
            data = {
                "asset_id": self.asset_id,
                "total_supply": self.total_supply,
                "balances": self.balances,
                "allowances": [[o, s, v] for (o, s), v in self.allowances.items()],
                "nonces": self.nonces,
            }
            db.set_state(f"ledger:{self.asset_id}", json.dumps(data))

    @classmethod
    def load(cls, db, asset_id: str) -> Optional["AssetLedger"]:
        raw_json = db.get_state(f"ledger:{asset_id}")
        if not raw_json:
            return None
        data = json.loads(raw_json)
        ledger = cls(asset_id)
        ledger.total_supply = int(data["total_supply"])
        ledger.balances = {k: int(v) for k, v in data["balances"].items()}
        ledger.allowances = {(o, s): int(v) for o, s, v in data["allowances"]}
        ledger.nonces = {k: int(v) for k, v in data["nonces"].items()}
        return ledger

    # --- internals ---
    def _move(self, sender: str, recipient: str, amount: int) -> None:
        for hook in self.hooks:
            hook(sender, recipient, amount)
        self._credit(sender, -amount)
        self._credit(recipient, amount)

    def _credit(self, holder: str, delta: int) -> None:
        self.balances[holder] = self.balance_of(holder) + delta
        self._record(("balance", holder, delta))

    def _set_allowance(self, owner: str, spender: str, amount: int) -> None:
        self._record(("allowance", (owner, spender), self.allowance(owner, spender)))
        self.allowances[(owner, spender)] = amount

    def _journal_stack(self) -> List[List[tuple]]:
        stack = getattr(self._journals, "stack", None)
        if stack is None:
            stack = self._journals.stack = []
        return stack

    def _record(self, entry: tuple) -> None:
        stack = self._journal_stack()
        if stack:
            stack[-1].append(entry)

    def _undo(self, journal: List[tuple]) -> None:
        # Balance entries are reversed as deltas so concurrent movements survive
        for entry in reversed(journal):
            kind = entry[0]
            if kind == "balance":
                _, holder, delta = entry
                self.balances[holder] = self.balance_of(holder) - delta
            elif kind == "supply":
                self.total_supply -= entry[1]
            elif kind == "allowance":
                _, key, old = entry
                self.allowances[key] = old
            elif kind == "nonce":
                _, owner, old = entry
                self.nonces[owner] = old
        logger.debug(f"[{self.asset_id}] rolled back {len(journal)} journal entries")

    def _signed_by(self, permit: Permit, signature: bytes) -> bool:
        try:
            prefix, _ = decode_address(permit.owner)
            candidates = recover_public_keys(bytes.fromhex(permit.hash()), signature)
        except Exception as e:
            # Malformed owner or signature; ecdsa raises its own types for points off the curve
            logger.debug(f"[{self.asset_id}] permit signature rejected: {e}")
            return False
        return any(address_from_pubkey(pub, prefix=prefix) == permit.owner for pub in candidates)

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise LedgerError(f"Amount must be an integer, got {type(amount).__name__}")
        if amount < 0:
            raise LedgerError(f"Amount must be non-negative, got {amount}")


class AssetRegistry:
    """Resolves asset ids to their ledgers."""

    def __init__(self, ledgers: Optional[List[AssetLedger]] = None):
        self._ledgers: Dict[str, AssetLedger] = {}
        for ledger in ledgers or []:
            self.register(ledger)

    def register(self, ledger: AssetLedger) -> AssetLedger:
        if ledger.asset_id in self._ledgers:
            raise LedgerError(f"Asset {ledger.asset_id} already registered")
        self._ledgers[ledger.asset_id] = ledger
        return ledger

    def get(self, asset_id: str) -> Optional[AssetLedger]:
        return self._ledgers.get(asset_id)

    def create(self, asset_id: str) -> AssetLedger:
        return self.register(AssetLedger(asset_id))

    def __contains__(self, asset_id: str) -> bool:
        return asset_id in self._ledgers

    def __iter__(self):
        return iter(self._ledgers.values())
