import os

__all__ = []

CONFIGS_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "configs.py")


def ensure_config_exists():
    """Generate default configs.py if it doesn't exist."""
    if os.path.exists(CONFIGS_PATH):
        return

    default_config = '''"""
Generated default configuration file for the encrypted chat application.
"""
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 12345
LISTEN_BACKLOG = 1
SOCKET_TIMEOUT = None
PEM_RECV_SIZE = 4096
MAX_FRAME_SIZE = 1024 * 1024
QUIT_COMMAND = "/quit"
CANCEL_POLL_INTERVAL = 0.2
RECEIVE_THREAD_JOIN_TIMEOUT = 5.0
'''

    with open(CONFIGS_PATH, "w") as f:
        f.write(default_config)

    print("Generated default configs.py")


# Ensure config exists before anything imports it
try:
    ensure_config_exists()
except PermissionError as e:
    raise PermissionError("Could not create configs.py, please create it manually.") from e
except OSError as e:
    raise OSError("Could not create configs.py, please create it manually.") from e


def validate_configs() -> None:
    """Validate configuration settings."""
    try:
        import configs
    except ImportError as e:
        raise ImportError("configs.py could not be created.") from e

    if not isinstance(configs.DEFAULT_HOST, str) or not configs.DEFAULT_HOST:
        raise ValueError("DEFAULT_HOST must be a non-empty string")

    if not isinstance(configs.DEFAULT_PORT, int) or not 1 <= configs.DEFAULT_PORT <= 65535:
        raise ValueError("DEFAULT_PORT must be a number between 1 and 65535")

    if not isinstance(configs.LISTEN_BACKLOG, int) or configs.LISTEN_BACKLOG <= 0:
        raise ValueError("LISTEN_BACKLOG must be a positive number")

    if configs.SOCKET_TIMEOUT is not None:
        if isinstance(configs.SOCKET_TIMEOUT, bool) or not isinstance(configs.SOCKET_TIMEOUT, (int, float)):
            raise ValueError("SOCKET_TIMEOUT must be None or a number of seconds")
        if configs.SOCKET_TIMEOUT <= 0:
            raise ValueError("SOCKET_TIMEOUT must be positive when set")

    # The peer's PEM key for RSA-2048 is about 450 bytes
    if not isinstance(configs.PEM_RECV_SIZE, int) or configs.PEM_RECV_SIZE < 512:
        raise ValueError("PEM_RECV_SIZE must be at least 512")

    if not isinstance(configs.MAX_FRAME_SIZE, int) or configs.MAX_FRAME_SIZE < 16:
        raise ValueError("MAX_FRAME_SIZE must be at least one AES block (16)")

    if not isinstance(configs.QUIT_COMMAND, str) or not configs.QUIT_COMMAND.strip():
        raise ValueError("QUIT_COMMAND must be a non-empty string")

    if not isinstance(configs.CANCEL_POLL_INTERVAL, (int, float)) or configs.CANCEL_POLL_INTERVAL <= 0:
        raise ValueError("CANCEL_POLL_INTERVAL must be a positive number")

    if (not isinstance(configs.RECEIVE_THREAD_JOIN_TIMEOUT, (int, float))
            or configs.RECEIVE_THREAD_JOIN_TIMEOUT <= 0):
        raise ValueError("RECEIVE_THREAD_JOIN_TIMEOUT must be a positive number")


validate_configs()
