from pydantic import BaseModel
from ..crypto.hash import sha256_hex
from ..crypto.keys import sign as crypto_sign

class Permit(BaseModel):
    """
    Off-chain authorization for `spender` to pull `value` of `asset`
    from `owner` until `deadline`.

    The owner signs `hash()`; the ledger recovers the signer from the
    signature and consumes `nonce` so a permit can be used only once.
    """
    asset: str
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int        # unix time, inclusive

    def hash(self) -> str:
        payload_str = (
            self.asset
            + ":" + self.owner
            + ":" + self.spender
            + ":" + str(self.value)
            + ":" + str(self.nonce)
            + ":" + str(self.deadline)
        )
        return sha256_hex(payload_str.encode("utf-8"))

    def sign(self, priv_key_bytes: bytes) -> bytes:
        """Signs the permit hash. Returns the 64-byte signature."""
        msg_hash = bytes.fromhex(self.hash())
        return crypto_sign(msg_hash, priv_key_bytes)
