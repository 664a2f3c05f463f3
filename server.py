"""
Responder side of the encrypted chat.

The server listens on a port, accepts exactly one client, sends it an RSA
public key and receives the client's AES session key wrapped under that key.
From then on both directions exchange AES-256-CBC encrypted frames.

Logging is intentionally very minimal since this is a security and privacy focused application.
"""
# pylint: disable=trailing-whitespace
import argparse
import datetime
import sys
from typing import Sequence

import configs
from operator_io import ConsoleOperator, Operator
from session import SecureSession
from shared import Role, SecureChannelError
from transport import TransportChannel


def timestamp() -> str:
    return datetime.datetime.now().strftime('%d.%m.%Y, %H:%M:%S')


class SecureChatServer(SecureSession):
    """Responder-role session: waits for the one peer and unwraps the session key it sends."""

    def __init__(self, operator: Operator, transport: TransportChannel | None = None,
                 timeout: float | None = configs.SOCKET_TIMEOUT) -> None:
        super().__init__(Role.RESPONDER, operator, transport=transport, timeout=timeout)
        self.host: str = "0.0.0.0"
        self.port: int = configs.DEFAULT_PORT

    def start(self, port: int = configs.DEFAULT_PORT, host: str = "0.0.0.0") -> None:
        """
        Listen, accept one client and complete the key exchange.

        :raises BindError, AcceptError: If no peer could be connected.
        :raises TransferError, KeyGenError, DecryptError: If the key exchange failed.
        """
        self.host, self.port = host, port
        self.display_system_message(f"[{timestamp()}] Secure chat server listening on {host}:{port}")
        self.display_system_message("Waiting for a client to connect...")
        self.establish_as_responder(port, host)
        peer = self.transport.peer_address
        peer_text = f"{peer[0]}:{peer[1]}" if peer else "unknown address"
        self.display_system_message(f"[{timestamp()}] Client connected from {peer_text}")


def run_server(port: int, host: str = "0.0.0.0", operator: Operator | None = None) -> int:
    """Run a complete server session on the console. Returns a process exit status."""
    operator = operator if operator is not None else ConsoleOperator()
    with SecureChatServer(operator) as server:
        try:
            server.start(port, host)
        except SecureChannelError as e:
            server.display_error_message(f"Could not start the session: {e}")
            return 1
        except KeyboardInterrupt:
            server.display_system_message("Server interrupted by user")
            return 1

        server.display_system_message(f"Type messages and press Enter. {configs.QUIT_COMMAND} to quit.")
        try:
            reason = server.run_duplex()
        except KeyboardInterrupt:
            reason = "Interrupted by user"
        server.display_system_message(f"[{timestamp()}] Session ended: {reason or 'no reason given'}")
    return 0


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Encrypted chat server (waits for one client)")
    parser.add_argument('port', nargs='?', type=int, default=configs.DEFAULT_PORT,
                        help=f'Port to listen on (default: {configs.DEFAULT_PORT})')
    parser.add_argument('--host', default="0.0.0.0", help='Address to bind (default: 0.0.0.0)')
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point to start the encrypted chat server."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    return run_server(args.port, args.host)


if __name__ == "__main__":
    sys.exit(main())
