"""Bitcoin network parameters used for address and key encodings."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Network:
    name: str
    bech32_hrp: str
    p2pkh_version: int
    p2sh_version: int
    wif_prefix: int


MAINNET = Network("mainnet", "bc", 0x00, 0x05, 0x80)
TESTNET = Network("testnet", "tb", 0x6F, 0xC4, 0xEF)
SIGNET = Network("signet", "tb", 0x6F, 0xC4, 0xEF)
REGTEST = Network("regtest", "bcrt", 0x6F, 0xC4, 0xEF)

NETWORKS = {network.name: network for network in (MAINNET, TESTNET, SIGNET, REGTEST)}


def get_network(name: str | Network) -> Network:
    """Resolve a network by name; ``Network`` instances pass through."""

    if isinstance(name, Network):
        return name
    try:
        return NETWORKS[name.strip().lower()]
    except KeyError as exc:
        raise ValueError(
            f"Unknown network {name!r}; expected one of {', '.join(sorted(NETWORKS))}"
        ) from exc
