import os
import random
import socket
import threading
import time
import unittest

from shared import AcceptError, BindError, ConnectError, SessionStateError
from transport import TransportChannel


class FragmentingSocket:
    """
    Stand-in socket that hands data over in small random pieces,
    like a congested TCP stream would.
    """

    def __init__(self, data: bytes = b"", max_chunk: int = 3, seed: int = 1234) -> None:
        self.inbound = bytearray(data)
        self.outbound = bytearray()
        self.max_chunk = max_chunk
        self.rng = random.Random(seed)
        self.send_calls = 0
        self.recv_calls = 0
        self.closed = False

    def settimeout(self, timeout):
        pass

    def recv(self, bufsize: int) -> bytes:
        self.recv_calls += 1
        take = min(bufsize, self.rng.randint(1, self.max_chunk), len(self.inbound))
        chunk = bytes(self.inbound[:take])
        del self.inbound[:take]
        return chunk

    def send(self, data) -> int:
        self.send_calls += 1
        take = min(len(data), self.rng.randint(1, self.max_chunk))
        self.outbound += bytes(data[:take])
        return take

    def shutdown(self, how):
        pass

    def close(self):
        self.closed = True


class ExactTransferTests(unittest.TestCase):
    def test_receive_exact_reassembles_fragments(self):
        payload = os.urandom(1000)
        sock = FragmentingSocket(payload)
        channel = TransportChannel.from_socket(sock)  # type: ignore[arg-type]
        self.assertEqual(channel.receive_exact(len(payload)), payload)
        self.assertGreater(sock.recv_calls, 300)

    def test_receive_exact_leaves_following_bytes(self):
        sock = FragmentingSocket(b"0123456789")
        channel = TransportChannel.from_socket(sock)  # type: ignore[arg-type]
        self.assertEqual(channel.receive_exact(4), b"0123")
        self.assertEqual(channel.receive_exact(6), b"456789")

    def test_receive_exact_fails_on_early_close(self):
        sock = FragmentingSocket(b"short")
        channel = TransportChannel.from_socket(sock)  # type: ignore[arg-type]
        self.assertIsNone(channel.receive_exact(10))

    def test_receive_exact_zero_length(self):
        channel = TransportChannel.from_socket(FragmentingSocket())  # type: ignore[arg-type]
        self.assertEqual(channel.receive_exact(0), b"")

    def test_send_exact_handles_partial_writes(self):
        payload = os.urandom(500)
        sock = FragmentingSocket()
        channel = TransportChannel.from_socket(sock)  # type: ignore[arg-type]
        self.assertEqual(channel.send_exact(payload), (True, ""))
        self.assertEqual(bytes(sock.outbound), payload)
        self.assertGreater(sock.send_calls, 100)

    def test_close_is_idempotent(self):
        sock = FragmentingSocket()
        channel = TransportChannel.from_socket(sock)  # type: ignore[arg-type]
        channel.close()
        channel.close()
        self.assertTrue(sock.closed)
        self.assertTrue(channel.closed)
        self.assertFalse(channel.connected)

    def test_io_after_close_fails(self):
        channel = TransportChannel.from_socket(FragmentingSocket(b"data"))  # type: ignore[arg-type]
        channel.close()
        self.assertIsNone(channel.receive_exact(4))
        self.assertIsNone(channel.receive_text())
        success, error_text = channel.send_exact(b"data")
        self.assertFalse(success)
        self.assertTrue(error_text)


class SocketPairTests(unittest.TestCase):
    def setUp(self):
        a, b = socket.socketpair()
        self.left = TransportChannel.from_socket(a)
        self.right = TransportChannel.from_socket(b)

    def tearDown(self):
        self.left.close()
        self.right.close()

    def test_text_roundtrip(self):
        self.assertEqual(self.left.send_text("hello text"), (True, ""))
        self.assertEqual(self.right.receive_text(), "hello text")

    def test_peer_close_is_reported(self):
        self.left.close()
        self.assertIsNone(self.right.receive_exact(1))
        self.assertIsNone(self.right.receive_text())

    def test_close_unblocks_pending_receive(self):
        result: list[bytes | None] = []
        reader = threading.Thread(target=lambda: result.append(self.right.receive_exact(16)))
        reader.start()
        time.sleep(0.2)
        self.assertTrue(reader.is_alive())

        started = time.monotonic()
        self.right.close()
        reader.join(timeout=2.0)
        self.assertFalse(reader.is_alive())
        self.assertLess(time.monotonic() - started, 2.0)
        self.assertEqual(result, [None])

    def test_timeout_fails_receive(self):
        a, b = socket.socketpair()
        with TransportChannel.from_socket(a, timeout=0.1) as channel, TransportChannel.from_socket(b):
            self.assertIsNone(channel.receive_exact(4))


class TcpEstablishmentTests(unittest.TestCase):
    def test_listen_accept_connect(self):
        with TransportChannel() as server, TransportChannel() as client:
            _, port = server.listen(0, "127.0.0.1")
            accepted = threading.Thread(target=server.accept)
            accepted.start()
            client.connect("127.0.0.1", port)
            accepted.join(timeout=5.0)

            self.assertTrue(server.connected)
            self.assertIsNone(server.listen_socket)
            self.assertEqual(client.send_exact(b"ping"), (True, ""))
            self.assertEqual(server.receive_exact(4), b"ping")

    def test_bind_error_on_port_in_use(self):
        with TransportChannel() as first, TransportChannel() as second:
            _, port = first.listen(0, "127.0.0.1")
            with self.assertRaises(BindError):
                second.listen(port, "127.0.0.1")

    def test_connect_error_when_nobody_listens(self):
        with TransportChannel() as spare:
            _, port = spare.listen(0, "127.0.0.1")
        with TransportChannel() as client:
            with self.assertRaises(ConnectError):
                client.connect("127.0.0.1", port)

    def test_accept_error_when_closed_while_waiting(self):
        server = TransportChannel()
        server.listen(0, "127.0.0.1")
        errors: list[Exception] = []

        def wait_for_client():
            try:
                server.accept()
            except AcceptError as e:
                errors.append(e)

        waiter = threading.Thread(target=wait_for_client)
        waiter.start()
        time.sleep(0.2)
        server.close()
        waiter.join(timeout=2.0)
        self.assertFalse(waiter.is_alive())
        self.assertEqual(len(errors), 1)

    def test_accept_error_on_timeout(self):
        with TransportChannel(timeout=0.1) as server:
            server.listen(0, "127.0.0.1")
            with self.assertRaises(AcceptError):
                server.accept()

    def test_accept_before_listen_is_a_programming_error(self):
        with TransportChannel() as channel:
            with self.assertRaises(SessionStateError):
                channel.accept()


if __name__ == "__main__":
    unittest.main()
