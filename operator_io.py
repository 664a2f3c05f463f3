"""
Operator I/O providers: where plaintext to send comes from and where received plaintext goes.

A session only ever talks to an operator through four calls:
    read_message(cancel) -> str | None   next line to send, None for end of input
    deliver(text)                         a decrypted message from the peer
    notify(text)                          a system/status line
    error(text)                           an error line
"""
import datetime
import queue
import sys
import threading
from typing import Protocol, TextIO

import configs
from config_handler import ConfigHandler


class Operator(Protocol):
    def read_message(self, cancel: threading.Event) -> str | None:
        ...

    def deliver(self, text: str) -> None:
        ...

    def notify(self, text: str) -> None:
        ...

    def error(self, text: str) -> None:
        ...


class QueueOperator:
    """
    Queue-backed operator for embedding the session in other programs and for tests.

    Put strings on ``outgoing`` to send them; put None to signal end of input.
    Received messages accumulate in ``received``.
    """

    def __init__(self) -> None:
        self.outgoing: queue.Queue[str | None] = queue.Queue()
        self.received: list[str] = []
        self.notifications: list[str] = []
        self.errors: list[str] = []
        self._received_cond: threading.Condition = threading.Condition()

    def send(self, text: str) -> None:
        self.outgoing.put(text)

    def end_input(self) -> None:
        self.outgoing.put(None)

    def read_message(self, cancel: threading.Event) -> str | None:
        while not cancel.is_set():
            try:
                return self.outgoing.get(timeout=configs.CANCEL_POLL_INTERVAL)
            except queue.Empty:
                continue
        return None

    def deliver(self, text: str) -> None:
        with self._received_cond:
            self.received.append(text)
            self._received_cond.notify_all()

    def notify(self, text: str) -> None:
        self.notifications.append(text)

    def error(self, text: str) -> None:
        self.errors.append(text)

    def wait_for(self, count: int, timeout: float | None = None) -> bool:
        """Block until at least ``count`` messages were delivered. Returns False on timeout."""
        with self._received_cond:
            return self._received_cond.wait_for(lambda: len(self.received) >= count, timeout=timeout)


def load_preferences(config_file: str = "config.json", stdout: TextIO | None = None) -> ConfigHandler:
    """
    Load the console preferences, falling back to the defaults if the file is unusable.
    The file itself is left as it is so the user can fix it.
    """
    try:
        return ConfigHandler(config_file)
    except (OSError, ValueError) as e:
        print(f"Error: Could not load preferences from {config_file}: {e}", file=stdout or sys.stdout)
        print("Using default preferences.", file=stdout or sys.stdout)
        return ConfigHandler(config_file, load=False)


class ConsoleOperator(QueueOperator):
    """
    Interactive terminal operator.

    A daemon thread feeds stdin lines into the outgoing queue so that the send
    loop can still notice cancellation (e.g. the peer disconnecting) while the
    user is not typing. EOF or the quit command ends input.
    """

    def __init__(self, config: ConfigHandler | None = None, stdin: TextIO | None = None,
                 stdout: TextIO | None = None) -> None:
        super().__init__()
        self.stdin: TextIO = stdin if stdin is not None else sys.stdin
        self.stdout: TextIO = stdout if stdout is not None else sys.stdout
        self.config: ConfigHandler = config if config is not None else load_preferences(stdout=self.stdout)
        self._print_lock: threading.Lock = threading.Lock()
        self._reader_thread: threading.Thread | None = None

    def start(self) -> None:
        if self._reader_thread is not None:
            return
        self._reader_thread = threading.Thread(target=self._read_stdin, daemon=True)
        self._reader_thread.start()

    def _read_stdin(self) -> None:
        for line in self.stdin:
            text = line.rstrip("\r\n")
            if text.strip() == configs.QUIT_COMMAND:
                break
            if text.strip():
                self.outgoing.put(text)
        self.outgoing.put(None)

    def read_message(self, cancel: threading.Event) -> str | None:
        self.start()
        message = super().read_message(cancel)
        if message is not None and self.config["echo_sent_messages"]:
            self._print(f"{self.config['own_nickname']}: {message}")
        return message

    def _print(self, text: str) -> None:
        if self.config["show_timestamps"]:
            text = f"[{datetime.datetime.now().strftime(self.config['timestamp_format'])}] {text}"
        with self._print_lock:
            print(text, file=self.stdout, flush=True)

    def deliver(self, text: str) -> None:
        super().deliver(text)
        self._print(f"{self.config['peer_nickname']}: {text}")

    def notify(self, text: str) -> None:
        super().notify(text)
        self._print(text)

    def error(self, text: str) -> None:
        super().error(text)
        self._print(f"Error: {text}")
