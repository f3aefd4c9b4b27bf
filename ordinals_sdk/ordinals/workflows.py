"""Programmatic commit/reveal workflow for ordinal inscriptions.

The workflow is a two-state machine. :meth:`Inscriber.prepare_commit` signs the
commit transaction and returns a session in ``COMMIT_PENDING``;
:meth:`Inscriber.publish_commit` broadcasts it. :meth:`Inscriber.reveal`
spends the commit output and moves the session to ``REVEALED`` once the reveal
is broadcast. Sessions serialize to JSON receipts so a commit can be recorded
before it is published and an unpublished or failed reveal can be retried
later against the same commit outpoint.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Sequence

from ..errors import OrdinalsError
from ..fees import minimum_commit_amount
from ..keys import PrivateKey
from ..mempool_client import (
    BroadcastError,
    MempoolTransportError,
    TransactionBroadcaster,
    format_broadcast_hint,
)
from ..model import DUST_LIMIT, UnspentOutput
from ..networks import Network, get_network
from ..tx_builder import COMMIT_VOUT, InscriptionTransactionBuilder, select_utxos
from .envelope import InscriptionEnvelope

logger = logging.getLogger(__name__)


class InscriptionFlowError(RuntimeError):
    """Raised when an inscription step cannot be built or broadcast.

    ``session`` is set when the failure happened after the commit was signed,
    so callers can still persist the receipt.
    """

    def __init__(self, message: str, session: "InscriptionSession | None" = None) -> None:
        super().__init__(message)
        self.session = session


class InscriptionState(str, Enum):
    COMMIT_PENDING = "commit_pending"
    REVEALED = "revealed"


@dataclass
class InscriptionSession:
    """Everything needed to resume an inscription after its commit."""

    network: str
    content_type: str
    content_hex: str
    commit_txid: str
    commit_vout: int
    commit_amount: int
    commit_address: str
    receiver_address: str
    fee_rate_sat_vb: float
    state: InscriptionState = InscriptionState.COMMIT_PENDING
    commit_hex: str | None = None
    commit_broadcast: bool = False
    reveal_txid: str | None = None
    reveal_hex: str | None = None

    @property
    def envelope(self) -> InscriptionEnvelope:
        return InscriptionEnvelope(self.content_type, bytes.fromhex(self.content_hex))

    @property
    def inscription_id(self) -> str | None:
        """Ordinals inscription id, available once the reveal is broadcast."""

        if self.state is not InscriptionState.REVEALED or self.reveal_txid is None:
            return None
        return f"{self.reveal_txid}i0"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InscriptionSession":
        try:
            fields = dict(data)
            fields["state"] = InscriptionState(fields.get("state", InscriptionState.COMMIT_PENDING.value))
            return cls(**fields)
        except (TypeError, ValueError) as exc:
            raise InscriptionFlowError(f"Invalid inscription session: {exc}") from exc

    def summary(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "network": self.network,
            "content_type": self.content_type,
            "content_bytes": len(self.content_hex) // 2,
            "commit": f"{self.commit_txid}:{self.commit_vout}",
            "commit_amount": self.commit_amount,
            "commit_address": self.commit_address,
            "commit_broadcast": self.commit_broadcast,
            "receiver_address": self.receiver_address,
            "reveal_txid": self.reveal_txid,
            "inscription_id": self.inscription_id,
        }


class Inscriber:
    """Drive the commit and reveal steps for a single signing key.

    ``broadcaster`` may be ``None`` to build and sign without publishing; the
    raw transactions are kept on the session for later submission.
    """

    def __init__(
        self,
        signing_key: PrivateKey,
        broadcaster: TransactionBroadcaster | None = None,
        *,
        network: Network | str | None = None,
        dust_limit: int = DUST_LIMIT,
        postage: int | None = None,
        replaceable_commit: bool = True,
    ) -> None:
        self.signing_key = signing_key
        self.broadcaster = broadcaster
        self.network = get_network(network) if network is not None else signing_key.network
        self.postage = postage if postage is not None else dust_limit
        self.builder = InscriptionTransactionBuilder(
            self.network,
            dust_limit=dust_limit,
            replaceable_commit=replaceable_commit,
        )

    def prepare_commit(
        self,
        envelope: InscriptionEnvelope,
        utxos: Sequence[UnspentOutput],
        change_address: str,
        receiver_address: str,
        fee_rate: float,
        postage: int | None = None,
    ) -> InscriptionSession:
        """Select funding inputs and sign the commit without publishing it.

        The commit output is sized so the reveal can pay ``postage`` to the
        receiver. Build failures propagate as the builder's typed errors.
        """

        postage = postage if postage is not None else self.postage
        commitment = self.builder.commitment_for(self.signing_key, envelope.script)
        commit_amount = minimum_commit_amount(commitment.leaf_script, fee_rate, postage)
        selected = select_utxos(utxos, commit_amount, fee_rate)
        logger.debug("Funding commit with %d of %d UTXOs", len(selected), len(utxos))
        signed = self.builder.build_commit(
            selected,
            envelope.script,
            change_address,
            self.signing_key,
            fee_rate,
            target_amount=commit_amount,
        )

        return InscriptionSession(
            network=self.network.name,
            content_type=envelope.content_type,
            content_hex=envelope.content.hex(),
            commit_txid=signed.txid,
            commit_vout=COMMIT_VOUT,
            commit_amount=commit_amount,
            commit_address=commitment.address,
            receiver_address=receiver_address,
            fee_rate_sat_vb=fee_rate,
            commit_hex=signed.hex,
        )

    def publish_commit(self, session: InscriptionSession) -> InscriptionSession:
        """Broadcast the signed commit held by ``session``.

        A failure raises :class:`InscriptionFlowError` with ``session``
        attached; a timed-out broadcast may still have reached the node, so
        the session must be kept for a later reveal.
        """

        if session.commit_hex is None:
            raise InscriptionFlowError("Session holds no signed commit transaction", session=session)
        try:
            session.commit_broadcast = self._publish(session.commit_hex, session.commit_txid, "commit")
        except InscriptionFlowError as exc:
            exc.session = session
            raise
        return session

    def commit(
        self,
        envelope: InscriptionEnvelope,
        utxos: Sequence[UnspentOutput],
        change_address: str,
        receiver_address: str,
        fee_rate: float,
        postage: int | None = None,
    ) -> InscriptionSession:
        """Prepare and publish the commit in one step."""

        session = self.prepare_commit(
            envelope,
            utxos,
            change_address,
            receiver_address,
            fee_rate,
            postage=postage,
        )
        return self.publish_commit(session)

    def reveal(self, session: InscriptionSession, fee_rate: float | None = None) -> InscriptionSession:
        """Build and publish the reveal for ``session``.

        The session only reaches ``REVEALED`` once the reveal is broadcast.
        Without a broadcaster the signed reveal is stored and the session stays
        in ``COMMIT_PENDING``, so it can be published by a later call. On
        failure the session can be retried, for example with a different
        ``fee_rate``.
        """

        if session.state is InscriptionState.REVEALED:
            raise InscriptionFlowError(f"Inscription already revealed in {session.reveal_txid}")
        if session.network != self.network.name:
            raise InscriptionFlowError(
                f"Session was committed on {session.network}, not {self.network.name}"
            )

        rate = session.fee_rate_sat_vb if fee_rate is None else fee_rate
        try:
            signed = self.builder.build_reveal(
                session.commit_txid,
                session.commit_vout,
                session.envelope.script,
                session.receiver_address,
                self.signing_key,
                rate,
                session.commit_amount,
            )
        except (OrdinalsError, ValueError) as exc:
            raise InscriptionFlowError(f"Failed to build the reveal transaction: {exc}") from exc

        published = self._publish(signed.hex, signed.txid, "reveal")
        session.reveal_txid = signed.txid
        session.reveal_hex = signed.hex
        if not published:
            return session

        session.state = InscriptionState.REVEALED
        logger.info("Inscription %s revealed", session.inscription_id)
        return session

    def _publish(self, raw_tx: str, txid: str, label: str) -> bool:
        if self.broadcaster is None:
            logger.info("Built %s %s without broadcasting", label, txid)
            return False
        try:
            reported = self.broadcaster.broadcast(raw_tx)
        except BroadcastError as exc:
            hint = format_broadcast_hint(exc)
            hint_suffix = f"\nHint: {hint}" if hint else ""
            raise InscriptionFlowError(f"{label.capitalize()} broadcast failed: {exc}{hint_suffix}") from exc
        except MempoolTransportError as exc:
            raise InscriptionFlowError(f"{label.capitalize()} broadcast failed: {exc}") from exc
        if reported and reported != txid:
            logger.warning("Broadcaster reported txid %s for %s %s", reported, label, txid)
        return True


def save_session(path: Path, session: InscriptionSession) -> Path:
    """Persist a JSON receipt for the inscription session."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(session.to_dict(), indent=2))
    return path


def load_session(path: Path) -> InscriptionSession:
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError as exc:
        raise InscriptionFlowError(f"Session receipt not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise InscriptionFlowError(f"Session receipt {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InscriptionFlowError(f"Session receipt {path} must contain a JSON object")
    return InscriptionSession.from_dict(data)
