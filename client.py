"""
Initiator side of the encrypted chat.

The client connects to a listening server, receives its RSA public key,
generates the AES-256 session key and sends it back wrapped under that key.
"""
# pylint: disable=trailing-whitespace
import argparse
import sys
from typing import Sequence

import configs
from operator_io import ConsoleOperator, Operator
from session import SecureSession
from shared import Role, SecureChannelError
from transport import TransportChannel


class SecureChatClient(SecureSession):
    """Initiator-role session: connects to the server and generates the session key."""

    def __init__(self, operator: Operator, transport: TransportChannel | None = None,
                 timeout: float | None = configs.SOCKET_TIMEOUT) -> None:
        super().__init__(Role.INITIATOR, operator, transport=transport, timeout=timeout)
        self.host: str = configs.DEFAULT_HOST
        self.port: int = configs.DEFAULT_PORT

    def connect(self, host: str, port: int) -> None:
        """
        Connect to the server and complete the key exchange.

        :raises ConnectError: If the server could not be reached.
        :raises TransferError, KeyParseError: If the key exchange failed.
        """
        self.host, self.port = host, port
        self.establish_as_initiator(host, port)
        self.display_system_message(f"Connected to secure chat server at {self.host}:{self.port}")


def run_client(host: str, port: int, operator: Operator | None = None) -> int:
    """Run a complete client session on the console. Returns a process exit status."""
    operator = operator if operator is not None else ConsoleOperator()
    with SecureChatClient(operator) as client:
        try:
            client.connect(host, port)
        except SecureChannelError as e:
            client.display_error_message(f"Failed to connect to server: {e}")
            return 1
        except KeyboardInterrupt:
            client.display_system_message("Client interrupted by user")
            return 1

        client.display_system_message(f"Type messages and press Enter. {configs.QUIT_COMMAND} to quit.")
        try:
            reason = client.run_duplex()
        except KeyboardInterrupt:
            reason = "Interrupted by user"
        client.display_system_message(f"Disconnected from server: {reason or 'no reason given'}")
    return 0


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Encrypted chat client")
    parser.add_argument('host', nargs='?', default=configs.DEFAULT_HOST,
                        help=f'Server address (default: {configs.DEFAULT_HOST})')
    parser.add_argument('port', nargs='?', type=int, default=configs.DEFAULT_PORT,
                        help=f'Server port (default: {configs.DEFAULT_PORT})')
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Main function to run the encrypted chat client."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    return run_client(args.host, args.port)


if __name__ == "__main__":
    sys.exit(main())
