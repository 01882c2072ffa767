"""Receiving wallet address validation per network."""

from solders.pubkey import Pubkey  # type: ignore
from web3 import Web3

from paylink.models.payment_link import Network


def normalize_wallet_address(network: Network, address: str) -> str:
    """
    Validate a receiving wallet address for a network and return its canonical form.

    Polygon addresses are returned checksummed; Solana addresses are base58
    public keys and are returned unchanged.

    Raises:
        ValueError: If the address is not valid for the network
    """
    address = address.strip()

    if network == Network.POLYGON:
        if not Web3.is_address(address):
            raise ValueError("Wallet address must be a valid EVM address (0x + 40 hex chars)")
        return Web3.to_checksum_address(address)

    if network == Network.SOLANA:
        try:
            return str(Pubkey.from_string(address))
        except ValueError as e:
            raise ValueError("Wallet address must be a valid Solana public key") from e

    raise ValueError(f"Unsupported network: {network}")
