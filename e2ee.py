"""
Unified entry point for the encrypted chat.

Usage:
    e2ee server [port]
    e2ee client <ip> <port>

With no arguments the mode, address and port are asked for interactively.
"""
import sys
from typing import Sequence

import configs
from client import run_client
from server import run_server

USAGE = "Usage: e2ee server [port] | e2ee client <ip> <port>"


def parse_port(text: str) -> int | None:
    try:
        port = int(text)
    except ValueError:
        return None
    if not 1 <= port <= 65535:
        return None
    return port


def prompt(question: str, default: str) -> str:
    """Ask for a value; fall back to the default on empty input or a non-interactive stdin."""
    try:
        answer = input(question).strip()
    except EOFError:
        print(f"Using default: {default}")
        return default
    return answer or default


def prompt_port(default: int) -> int:
    port_input = prompt(f"Port (default: {default}): ", str(default))
    port = parse_port(port_input)
    if port is None:
        print(f"Invalid port number, using default {default}")
        return default
    return port


def interactive() -> tuple[str, str, int] | None:
    mode = prompt("Mode (server/client): ", "").lower()
    if mode == "server":
        return mode, "0.0.0.0", prompt_port(configs.DEFAULT_PORT)
    if mode == "client":
        host = prompt(f"IP (default: {configs.DEFAULT_HOST}): ", configs.DEFAULT_HOST)
        return mode, host, prompt_port(configs.DEFAULT_PORT)
    print("Unrecognised mode. Use: server | client")
    return None


def parse_mode(argv: Sequence[str]) -> tuple[str, str, int] | None:
    """
    :return: (mode, host, port), or None if the arguments are invalid.
    """
    mode = argv[0].lower()
    if mode == "server":
        if len(argv) > 2:
            return None
        port = parse_port(argv[1]) if len(argv) == 2 else configs.DEFAULT_PORT
        if port is None:
            return None
        return mode, "0.0.0.0", port
    if mode == "client":
        if len(argv) != 3:
            return None
        port = parse_port(argv[2])
        if port is None:
            return None
        return mode, argv[1], port
    return None


def main(argv: Sequence[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv:
        selection = parse_mode(argv)
        if selection is None:
            print(USAGE)
            return 1
    else:
        print("Encrypted Chat")
        print("==============")
        selection = interactive()
        if selection is None:
            return 1

    mode, host, port = selection
    if mode == "server":
        return run_server(port, host)
    return run_client(host, port)


if __name__ == "__main__":
    sys.exit(main())
