"""Ordinals inscription SDK for Bitcoin."""

from .errors import (
    DustViolation,
    EncodingOverflow,
    InsufficientFunds,
    MalformedAddress,
    OrdinalsError,
    UnsupportedScriptType,
)
from .model import (
    DUST_LIMIT,
    CommitPlan,
    RevealPlan,
    ScriptType,
    SignedTransaction,
    UnspentOutput,
)
from .networks import MAINNET, REGTEST, SIGNET, TESTNET, Network, get_network
from .ordinals import (
    Brc20Deploy,
    Brc20Mint,
    Brc20Transfer,
    InscriptionEnvelope,
    TaprootCommitment,
    decode_envelope,
    derive_commitment,
    encode_envelope,
    json_envelope,
    text_envelope,
)
from .address import ParsedAddress, address_for_key, parse_address
from .keys import PrivateKey
from .fees import (
    estimate_commit_fee,
    estimate_commit_vsize,
    estimate_reveal_fee,
    estimate_reveal_vsize,
    minimum_commit_amount,
)
from .signing import sign_input
from .tx_builder import InscriptionTransactionBuilder, select_utxos
from .config import ConfigurationError, OrdinalsConfig, load_config
from .mempool_client import BroadcastError, MempoolClient, MempoolTransportError
from .ordinals.workflows import (
    Inscriber,
    InscriptionFlowError,
    InscriptionSession,
    InscriptionState,
    load_session,
    save_session,
)

__all__ = [
    "DUST_LIMIT",
    "OrdinalsError",
    "InsufficientFunds",
    "DustViolation",
    "UnsupportedScriptType",
    "MalformedAddress",
    "EncodingOverflow",
    "ScriptType",
    "UnspentOutput",
    "CommitPlan",
    "RevealPlan",
    "SignedTransaction",
    "Network",
    "MAINNET",
    "TESTNET",
    "SIGNET",
    "REGTEST",
    "get_network",
    "InscriptionEnvelope",
    "encode_envelope",
    "decode_envelope",
    "text_envelope",
    "json_envelope",
    "Brc20Deploy",
    "Brc20Mint",
    "Brc20Transfer",
    "TaprootCommitment",
    "derive_commitment",
    "ParsedAddress",
    "parse_address",
    "address_for_key",
    "PrivateKey",
    "estimate_commit_vsize",
    "estimate_reveal_vsize",
    "estimate_commit_fee",
    "estimate_reveal_fee",
    "minimum_commit_amount",
    "sign_input",
    "InscriptionTransactionBuilder",
    "select_utxos",
    "ConfigurationError",
    "OrdinalsConfig",
    "load_config",
    "MempoolClient",
    "MempoolTransportError",
    "BroadcastError",
    "Inscriber",
    "InscriptionFlowError",
    "InscriptionSession",
    "InscriptionState",
    "save_session",
    "load_session",
]
