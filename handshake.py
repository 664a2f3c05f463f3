"""
One-time key agreement between the two peers.

Responder (server):  listen -> accept -> generate RSA key pair -> send PEM public key
                     -> receive 256 byte wrapped key -> unwrap -> session key resident
Initiator (client):  connect -> receive PEM public key -> import it -> generate session key
                     -> wrap it -> send 256 bytes -> session key resident

Only the initiator ever generates a session key. No message frame may be sent
or received before both sides reach SESSION_KEY_ESTABLISHED.
"""
# pylint: disable=trailing-whitespace
import configs
from shared import (AsymmetricKeyAgent, HandshakeState, PEM_FOOTER, Role, SessionStateError,
                    SymmetricCipher, TransferError, WRAPPED_KEY_SIZE, SecureChannelError)
from transport import TransportChannel


class HandshakeCoordinator:
    """
    Drives a TransportChannel and the crypto engines through the key agreement exactly once.

    Guaranteed Attributes:
        transport (TransportChannel): The channel the handshake runs over.
        role (Role): Which side of the protocol this coordinator plays.
        agent (AsymmetricKeyAgent): Local key pair (responder) / peer public key (initiator).
        cipher (SymmetricCipher): Receives the session key once established.
        state (HandshakeState): Current protocol state; only ever moves forward.
    """

    # Legal predecessor states for every forward transition
    _TRANSITIONS: dict[HandshakeState, tuple[HandshakeState, ...]] = {
        HandshakeState.LISTENING:               (HandshakeState.IDLE,),
        HandshakeState.CONNECTING:              (HandshakeState.IDLE,),
        HandshakeState.CONNECTED:               (HandshakeState.IDLE, HandshakeState.LISTENING,
                                                 HandshakeState.CONNECTING),
        HandshakeState.PUBLIC_KEY_EXCHANGED:    (HandshakeState.CONNECTED,),
        HandshakeState.SESSION_KEY_ESTABLISHED: (HandshakeState.PUBLIC_KEY_EXCHANGED,),
    }

    def __init__(self, transport: TransportChannel, role: Role, agent: AsymmetricKeyAgent | None = None,
                 cipher: SymmetricCipher | None = None) -> None:
        self.transport: TransportChannel = transport
        self.role: Role = role
        self.agent: AsymmetricKeyAgent = agent if agent is not None else AsymmetricKeyAgent()
        self.cipher: SymmetricCipher = cipher if cipher is not None else SymmetricCipher()
        self.state: HandshakeState = HandshakeState.IDLE

    @property
    def established(self) -> bool:
        return self.state == HandshakeState.SESSION_KEY_ESTABLISHED

    def require_established(self) -> None:
        if not self.established:
            raise SessionStateError(f"Handshake not complete (state: {self.state.name})")

    def _advance(self, new_state: HandshakeState) -> None:
        if self.state not in self._TRANSITIONS[new_state]:
            raise SessionStateError(f"Illegal handshake transition {self.state.name} -> {new_state.name}")
        self.state = new_state

    def _fail(self) -> None:
        self.state = HandshakeState.CLOSED

    # --- Connection establishment ---
    def listen_and_respond(self, port: int, host: str = "0.0.0.0") -> SymmetricCipher:
        """Server sequence: wait for the one peer, then run the responder handshake."""
        if self.role != Role.RESPONDER:
            raise SessionStateError("Only the responder listens for a peer")
        self._advance(HandshakeState.LISTENING)
        try:
            self.transport.listen(port, host)
            self.transport.accept()
        except SecureChannelError:
            self._fail()
            raise
        self._advance(HandshakeState.CONNECTED)
        return self.respond()

    def connect_and_initiate(self, host: str, port: int) -> SymmetricCipher:
        """Client sequence: connect to the listening peer, then run the initiator handshake."""
        if self.role != Role.INITIATOR:
            raise SessionStateError("Only the initiator connects to a peer")
        self._advance(HandshakeState.CONNECTING)
        try:
            self.transport.connect(host, port)
        except SecureChannelError:
            self._fail()
            raise
        self._advance(HandshakeState.CONNECTED)
        return self.initiate()

    def perform(self) -> SymmetricCipher:
        """Run the key agreement for this role over an already-connected transport."""
        if self.state == HandshakeState.IDLE and self.transport.connected:
            self._advance(HandshakeState.CONNECTED)
        if self.role == Role.RESPONDER:
            return self.respond()
        return self.initiate()

    # --- Key agreement ---
    def respond(self) -> SymmetricCipher:
        """Send our public key, then receive and unwrap the initiator's session key."""
        if self.role != Role.RESPONDER:
            raise SessionStateError("respond() called on an initiator")
        if self.state != HandshakeState.CONNECTED:
            raise SessionStateError(f"respond() requires a connected channel (state: {self.state.name})")

        try:
            self.agent.generate_key_pair()
            success, error_text = self.transport.send_text(self.agent.export_public_key())
            if not success:
                raise TransferError(f"Failed to send public key: {error_text}")
            self._advance(HandshakeState.PUBLIC_KEY_EXCHANGED)

            wrapped = self.transport.receive_exact(WRAPPED_KEY_SIZE)
            if wrapped is None:
                raise TransferError("Peer closed the connection before sending the session key")
            self.cipher.set_session_key(self.agent.unwrap_session_key(wrapped))
        except SecureChannelError:
            self._fail()
            raise

        self._advance(HandshakeState.SESSION_KEY_ESTABLISHED)
        return self.cipher

    def initiate(self) -> SymmetricCipher:
        """Receive and import the responder's public key, then send it a freshly wrapped session key."""
        if self.role != Role.INITIATOR:
            raise SessionStateError("initiate() called on a responder")
        if self.state != HandshakeState.CONNECTED:
            raise SessionStateError(f"initiate() requires a connected channel (state: {self.state.name})")

        try:
            pem = self._receive_public_key()
            self.agent.import_peer_public_key(pem)
            self._advance(HandshakeState.PUBLIC_KEY_EXCHANGED)

            session_key = SymmetricCipher.generate_session_key()
            wrapped = self.agent.wrap_session_key(session_key)
            success, error_text = self.transport.send_exact(wrapped)
            if not success:
                raise TransferError(f"Failed to send wrapped session key: {error_text}")
            self.cipher.set_session_key(session_key)
        except SecureChannelError:
            self._fail()
            raise

        self._advance(HandshakeState.SESSION_KEY_ESTABLISHED)
        return self.cipher

    def _receive_public_key(self) -> str:
        """
        Collect the peer's PEM text.

        The key arrives without a length prefix; reads are repeated until the PEM
        footer has been seen, in case TCP split the single write.
        """
        pem = ""
        while PEM_FOOTER not in pem:
            remaining = configs.PEM_RECV_SIZE - len(pem.encode('utf-8'))
            if remaining <= 0:
                raise TransferError(f"Peer public key exceeds {configs.PEM_RECV_SIZE} bytes")
            chunk = self.transport.receive_text(remaining)
            if chunk is None:
                raise TransferError("Peer closed the connection before sending its public key")
            pem += chunk
        return pem

    def close(self) -> None:
        self.state = HandshakeState.CLOSED
        self.agent.destroy()
