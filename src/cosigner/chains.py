"""Well-known EOSIO chains.

Signing requests may name their chain with a one-byte alias instead of
the full 32-byte chain id; this table maps aliases to ids.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a blockchain."""

    name: str
    alias: int
    chain_id: str  # 64 hex chars


CHAINS: dict[str, ChainConfig] = {
    "EOS": ChainConfig(
        name="EOS",
        alias=1,
        chain_id="aca376f206b8fc25a6ed44dbdc66547c36c6c33e3a119ffbeaef943642f0e906",
    ),
    "TELOS": ChainConfig(
        name="Telos",
        alias=2,
        chain_id="4667b205c6838ef70ff7988f6e8257e8be0e1284a2f59699054a018f743b1d11",
    ),
    "JUNGLE": ChainConfig(
        name="Jungle Testnet",
        alias=3,
        chain_id="e70aaab8997e1dfce58fbfac80cbbb8fecec7b99cf982a9444273cbc64c41473",
    ),
    "KYLIN": ChainConfig(
        name="Kylin Testnet",
        alias=4,
        chain_id="5fff1dae8dc8e2fc4d5b23b2c7665c97f9e9d8edf2b6485a86ba311c25639191",
    ),
    "WORBLI": ChainConfig(
        name="Worbli",
        alias=5,
        chain_id="73647cde120091e0a4b85bced2f3cfdb3041e266cbbe95cee59b73235a1b3b6f",
    ),
    "BOS": ChainConfig(
        name="BOS",
        alias=6,
        chain_id="d5a3d18fbb3c084e3b1f3fa98c21014b5f3db536cc15d08f9f6479517c6a3d86",
    ),
    "MEETONE": ChainConfig(
        name="MEET.ONE",
        alias=7,
        chain_id="cfe6486a83bad4962f232d48003b1824ab5665c36778141034d75e57b956e422",
    ),
    "INSIGHTS": ChainConfig(
        name="Insights Network",
        alias=8,
        chain_id="b042025541e25a472bffde2d62edd457b7e70cee943412b1ea0f044f88591664",
    ),
    "BEOS": ChainConfig(
        name="BEOS",
        alias=9,
        chain_id="b912d19a6abd2b1b05611ae5be473355d64d95aeff0c09bedc8c166cd6468fe4",
    ),
    "WAX": ChainConfig(
        name="WAX",
        alias=10,
        chain_id="1064487b3cd1a897ce03ae5b6a865651747e2e152090f99c1d19d44e01aea5a4",
    ),
    "PROTON": ChainConfig(
        name="Proton",
        alias=11,
        chain_id="384da888112027f0321850a169f737c33e53b388aad48b5adace4bab97f437e0",
    ),
    "FIO": ChainConfig(
        name="FIO",
        alias=12,
        chain_id="21dcae42c0182200e93f954a074011f9048a7624c6fe81d3c9541a614a88bd1c",
    ),
}

_BY_ALIAS: dict[int, ChainConfig] = {c.alias: c for c in CHAINS.values()}


def get_chain_by_alias(alias: int) -> Optional[ChainConfig]:
    """Get chain configuration by its one-byte alias."""
    return _BY_ALIAS.get(alias)


def get_chain_by_id(chain_id: str) -> Optional[ChainConfig]:
    """Get chain configuration by its hex chain id."""
    chain_id = chain_id.lower()
    for chain in CHAINS.values():
        if chain.chain_id == chain_id:
            return chain
    return None
