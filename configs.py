"""
Here are some general settings for the application.
Each setting has a comment explaining what it does and its default value below it.

These are settings that are not intended to be changed during runtime.
They can be changed during runtime, but it may not work as expected.

You may also delete the file entirely to reset to defaults.
Note that the generated file will not include comments and may be ordered and formatted differently.
"""
from typing import Final

## NETWORK SETTINGS
DEFAULT_HOST: Final[str] = "127.0.0.1"
# The host the client connects to when none is given.
# Must be surrounded by quotes. (" or ')
# Default: "127.0.0.1"

DEFAULT_PORT: Final[int] = 12345
# The port the server listens on when none is given.
# Default: 12345
# Range: 1 - 65535

LISTEN_BACKLOG: Final[int] = 1
# How many pending connections the server socket will queue.
# Only one peer is ever served.
# Default: 1

SOCKET_TIMEOUT: Final[float | None] = None
# Deadline in seconds for every blocking socket call.
# None means block forever: a silently stalled peer will hang the session.
# Default: None

## PROTOCOL SETTINGS
PEM_RECV_SIZE: Final[int] = 4096
# Maximum number of bytes accepted for the peer's PEM public key.
# Default: 4096

MAX_FRAME_SIZE: Final[int] = 1024 * 1024
# Maximum ciphertext length accepted in a single message frame.
# Frames announcing more than this are treated as corrupt and end the session.
# Default: 1 MiB

## CONSOLE SETTINGS
QUIT_COMMAND: Final[str] = "/quit"
# Typing this on its own line ends the chat.
# Default: "/quit"


## ADVANCED SETTINGS
# Don't change these unless you know what you're doing

CANCEL_POLL_INTERVAL: Final[float] = 0.2
# How often (seconds) a waiting operator checks whether the session was cancelled.

RECEIVE_THREAD_JOIN_TIMEOUT: Final[float] = 5.0
# How long (seconds) to wait for the receive thread after the channel is closed.
