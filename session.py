"""
Duplex encrypted messaging over one established channel.

After the handshake two loops run in parallel: the receive loop on a dedicated
thread, the send loop on the calling thread. Either loop ending sets a shared
cancellation event and closes the channel, which unblocks the other loop.
"""
# pylint: disable=trailing-whitespace, too-many-instance-attributes
import threading

import configs
from handshake import HandshakeCoordinator
from operator_io import Operator
from shared import (DecryptError, FRAME_LENGTH_SIZE, IV_SIZE, MessageFrame, Role, SymmetricCipher, TransferError,
                    unpack_frame_length)
from transport import TransportChannel


class SecureSession:
    """
    One side of a two-peer encrypted chat, parameterised by Role.

    The role only decides how the handshake runs (who listens, who generates
    the session key); the messaging loops are identical for both sides.

    Guaranteed Attributes:
        role (Role): INITIATOR (client) or RESPONDER (server).
        operator (Operator): Source of plaintext to send and sink of received plaintext.
        transport (TransportChannel): The single channel owned by this session.
        handshake (HandshakeCoordinator): Key agreement state for this session.
        cancel (threading.Event): Set once the session is shutting down.

    Unsafe Attributes:
        receive_thread (threading.Thread | None): The receive loop thread while running duplex.
        close_reason (str): First recorded reason the session ended, "" while running.
    """

    def __init__(self, role: Role, operator: Operator, transport: TransportChannel | None = None,
                 timeout: float | None = configs.SOCKET_TIMEOUT) -> None:
        self.role: Role = role
        self.operator: Operator = operator
        self.transport: TransportChannel = transport if transport is not None else TransportChannel(timeout)
        self.handshake: HandshakeCoordinator = HandshakeCoordinator(self.transport, role)
        self.cancel: threading.Event = threading.Event()
        self.receive_thread: threading.Thread | None = None
        self.close_reason: str = ""
        self._reason_lock: threading.Lock = threading.Lock()

    @property
    def cipher(self) -> SymmetricCipher:
        return self.handshake.cipher

    @property
    def established(self) -> bool:
        return self.handshake.established

    def __enter__(self) -> "SecureSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # --- Diagnostics ---
    def display_regular_message(self, message: str) -> None:
        self.operator.deliver(message)

    def display_system_message(self, message: str) -> None:
        self.operator.notify(message)

    def display_error_message(self, message: str | Exception) -> None:
        self.operator.error(str(message))

    def _record_close_reason(self, reason: str) -> None:
        with self._reason_lock:
            if not self.close_reason:
                self.close_reason = reason

    # --- Establishment ---
    def establish_as_responder(self, port: int, host: str = "0.0.0.0") -> None:
        """Listen for the peer and complete the responder handshake."""
        self.handshake.listen_and_respond(port, host)
        self.display_system_message("Key exchange complete, session key established.")

    def establish_as_initiator(self, host: str, port: int) -> None:
        """Connect to the peer and complete the initiator handshake."""
        self.handshake.connect_and_initiate(host, port)
        self.display_system_message("Key exchange complete, session key established.")

    def establish(self) -> None:
        """Complete the handshake over a transport that is already connected."""
        self.handshake.perform()
        self.display_system_message("Key exchange complete, session key established.")

    # --- Messaging ---
    def send_message(self, text: str) -> bool:
        """
        Encrypt one message and send it as a single frame.

        A message that cannot be encoded or would exceed the peer's frame limit
        is rejected locally and nothing is written; the session stays up.
        A failed send records the close reason and cancels the session.

        :return: True if the frame was sent.
        """
        self.handshake.require_established()
        try:
            frame = self.cipher.encrypt_frame(text)
        except UnicodeEncodeError as e:
            self.display_error_message(f"Message not sent, it contains text that cannot be encoded: {e.reason}")
            return False
        if len(frame.ciphertext) > configs.MAX_FRAME_SIZE:
            self.display_error_message(f"Message not sent, it exceeds the maximum frame size of "
                                       f"{configs.MAX_FRAME_SIZE} bytes")
            return False

        success, error_text = self.transport.send_exact(frame.encode())
        if not success:
            self._record_close_reason(f"Send failed: {error_text}")
            if not self.cancel.is_set():
                self.display_error_message(f"Failed to send message: {error_text}")
            self.cancel.set()
            return False
        return True

    def receive_frame(self) -> MessageFrame:
        """
        Read one complete frame: IV, then length, then ciphertext.

        :raises TransferError: If the peer closed or the header is corrupt.
        """
        iv = self.transport.receive_exact(IV_SIZE)
        if iv is None:
            raise TransferError("Connection closed")
        length_data = self.transport.receive_exact(FRAME_LENGTH_SIZE)
        if length_data is None:
            raise TransferError("Connection closed mid-frame")
        length = unpack_frame_length(length_data)
        ciphertext = self.transport.receive_exact(length)
        if ciphertext is None:
            raise TransferError("Connection closed mid-frame")
        return MessageFrame(iv=iv, ciphertext=ciphertext)

    def send_loop(self, cancel: threading.Event | None = None) -> None:
        """Send operator input until end of input, cancellation or a send failure."""
        self.handshake.require_established()
        self._send_until_done(cancel if cancel is not None else self.cancel)

    def _send_until_done(self, cancel: threading.Event) -> None:
        while not cancel.is_set():
            message = self.operator.read_message(cancel)
            if message is None:
                self._record_close_reason("Input ended" if not cancel.is_set() else "Session cancelled")
                break
            if cancel.is_set():
                break
            # Rejected messages leave the session running; a channel failure cancels it
            if not self.send_message(message) and self.cancel.is_set():
                break
        cancel.set()

    def receive_loop(self, cancel: threading.Event | None = None) -> None:
        """Deliver decrypted frames to the operator until closure, cancellation or a bad frame."""
        self.handshake.require_established()
        self._receive_until_done(cancel if cancel is not None else self.cancel)

    def _receive_until_done(self, cancel: threading.Event) -> None:
        try:
            while not cancel.is_set():
                try:
                    frame = self.receive_frame()
                except TransferError as e:
                    self._record_close_reason(str(e))
                    if not cancel.is_set():
                        self.display_system_message(f"Connection to peer lost: {e}")
                    break

                try:
                    text = self.cipher.decrypt_frame(frame)
                except DecryptError as e:
                    # Without a MAC a bad frame cannot be told apart from a forged one
                    self._record_close_reason(f"Decryption failed: {e}")
                    self.display_error_message(f"Could not decrypt message, ending session: {e}")
                    break

                self.display_regular_message(text)
        finally:
            cancel.set()
            self.transport.close()

    def run_duplex(self) -> str:
        """
        Run both loops until either ends, then shut the other down.

        The handshake is checked once, before the receive thread starts; a
        concurrent close() after that point only ends the loops. The receive
        thread is always joined before this returns, so the channel is never
        used after it has been closed.

        :return: The reason the session ended.
        """
        self.handshake.require_established()
        self.receive_thread = threading.Thread(target=self._receive_until_done, args=(self.cancel,), daemon=True)
        self.receive_thread.start()
        try:
            self._send_until_done(self.cancel)
        finally:
            self.cancel.set()
            self.transport.close()
            self.receive_thread.join(timeout=configs.RECEIVE_THREAD_JOIN_TIMEOUT)
        return self.close_reason

    def close(self) -> None:
        """Cancel both loops and release the channel. Idempotent."""
        self._record_close_reason("Session closed")
        self.cancel.set()
        self.transport.close()
        if (self.receive_thread is not None and self.receive_thread.is_alive()
                and self.receive_thread is not threading.current_thread()):
            self.receive_thread.join(timeout=configs.RECEIVE_THREAD_JOIN_TIMEOUT)
        self.handshake.close()
