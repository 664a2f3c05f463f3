"""
Byte-exact, blocking TCP transport for exactly one peer connection.

The channel plays either role: server (listen/accept) or client (connect).
Establishing a connection raises on failure; moving data never does - every
send and receive reports failure through its return value and the caller
decides whether the session is over.
"""
# pylint: disable=trailing-whitespace
import socket
import threading

import configs
from shared import AcceptError, BindError, ConnectError, SessionStateError


class TransportChannel:
    """
    Owns one TCP connection (and, in the server role, the listening socket).

    Both sockets are released exactly once: ``close()`` is idempotent and safe to
    call from either messaging thread, and also runs on context-manager exit and
    garbage collection.

    Timeouts:
        ``timeout`` is applied to every blocking call. The default of ``None``
        blocks forever, so a peer that stalls without closing will hang the
        session. A timed-out send/receive fails exactly like a closed peer.
    """

    def __init__(self, timeout: float | None = configs.SOCKET_TIMEOUT) -> None:
        self.timeout: float | None = timeout
        self.listen_socket: socket.socket | None = None
        self.connection: socket.socket | None = None
        self.peer_address: tuple[str, int] | None = None
        self._closed: bool = False
        self._close_lock: threading.Lock = threading.Lock()

    @classmethod
    def from_socket(cls, sock: socket.socket, timeout: float | None = configs.SOCKET_TIMEOUT) -> "TransportChannel":
        """Wrap an already-connected socket (e.g. one end of ``socket.socketpair()``)."""
        channel = cls(timeout=timeout)
        sock.settimeout(timeout)
        channel.connection = sock
        return channel

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connected(self) -> bool:
        return self.connection is not None and not self._closed

    def __enter__(self) -> "TransportChannel":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __del__(self):
        self.close()

    # --- Connection establishment ---
    def listen(self, port: int, host: str = "0.0.0.0") -> tuple[str, int]:
        """
        Bind and mark the socket passive.

        :return: The bound (host, port); useful when ``port`` is 0.
        :raises BindError: If the address is unavailable.
        """
        if self._closed:
            raise SessionStateError("Cannot listen on a closed channel")
        if self.listen_socket is not None or self.connection is not None:
            raise SessionStateError("Channel is already listening or connected")

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(configs.LISTEN_BACKLOG)
        except OSError as e:
            sock.close()
            raise BindError(f"Could not listen on {host}:{port}: {e}") from e

        self.listen_socket = sock
        return sock.getsockname()[:2]

    def accept(self) -> socket.socket:
        """
        Block until one peer connects. The listening socket is closed afterwards
        since only a single peer is ever served.

        :raises AcceptError: If accepting fails or the channel is closed meanwhile.
        """
        if self.listen_socket is None:
            raise SessionStateError("accept() called before listen()")

        self.listen_socket.settimeout(self.timeout)
        try:
            conn, address = self.listen_socket.accept()
        except OSError as e:
            raise AcceptError(f"Failed to accept a connection: {e}") from e
        finally:
            self._close_listen_socket()

        conn.settimeout(self.timeout)
        self.connection = conn
        self.peer_address = address[:2]
        return conn

    def connect(self, host: str, port: int) -> socket.socket:
        """
        Connect to a listening peer.

        :raises ConnectError: If the peer refuses, the host cannot be resolved or the attempt times out.
        """
        if self._closed:
            raise SessionStateError("Cannot connect a closed channel")
        if self.connection is not None:
            raise SessionStateError("Channel is already connected")

        try:
            conn = socket.create_connection((host, port), timeout=self.timeout)
        except socket.timeout as e:
            raise ConnectError(f"Connection to {host}:{port} timed out") from e
        except ConnectionRefusedError as e:
            raise ConnectError(f"Connection to {host}:{port} refused") from e
        except OSError as e:
            raise ConnectError(f"Failed to connect to {host}:{port}: {e}") from e

        conn.settimeout(self.timeout)
        self.connection = conn
        self.peer_address = (host, port)
        return conn

    # --- Data path ---
    def send_exact(self, data: bytes) -> tuple[bool, str]:
        """
        Send every byte of ``data``, looping over partial writes.

        :return: (True, "") on success, (False, reason) otherwise.
        """
        conn = self.connection
        if conn is None or self._closed:
            return False, "Channel is not connected"

        view = memoryview(data)
        sent_total = 0
        try:
            while sent_total < len(view):
                sent = conn.send(view[sent_total:])
                if sent == 0:
                    return False, "Connection closed during send"
                sent_total += sent
        except socket.timeout:
            return False, "Send timed out"
        except OSError as e:
            return False, str(e)
        return True, ""

    def receive_exact(self, length: int) -> bytes | None:
        """
        Receive exactly ``length`` bytes, looping over partial reads.

        :return: The bytes, or None if the peer closed, the channel was closed,
            the call timed out, or the socket errored before ``length`` bytes arrived.
        """
        if length < 0:
            raise ValueError("length must not be negative")
        conn = self.connection
        if conn is None or self._closed:
            return None

        buffer = bytearray()
        try:
            while len(buffer) < length:
                chunk = conn.recv(length - len(buffer))
                if not chunk:
                    return None
                buffer += chunk
        except (socket.timeout, OSError):
            return None
        return bytes(buffer)

    def send_text(self, text: str) -> tuple[bool, str]:
        return self.send_exact(text.encode('utf-8'))

    def receive_text(self, max_size: int = configs.PEM_RECV_SIZE) -> str | None:
        """
        Perform one bounded read and decode it as UTF-8.

        There is no length prefix: the caller relies on protocol convention to
        know when a text message is complete.

        :return: The decoded text, or None on closure, error or undecodable data.
        """
        conn = self.connection
        if conn is None or self._closed:
            return None
        try:
            data = conn.recv(max_size)
        except (socket.timeout, OSError):
            return None
        if not data:
            return None
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError:
            return None

    # --- Teardown ---
    def _close_listen_socket(self) -> None:
        sock, self.listen_socket = self.listen_socket, None
        if sock is not None:
            try:
                # wakes an accept() blocked in another thread
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                sock.close()
            except OSError:
                # ignore: closing a dead socket
                pass

    def close(self) -> None:
        """
        Release both sockets. Idempotent and thread-safe.

        The connection is shut down before it is closed so that a ``recv`` blocked
        in another thread returns immediately instead of waiting for the peer.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        conn, self.connection = self.connection, None
        if conn is not None:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                # ignore: peer already gone or socket never fully connected
                pass
            try:
                conn.close()
            except OSError:
                pass
        self._close_listen_socket()
