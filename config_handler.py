"""
Runtime preferences for the console chat, stored as JSON next to where the chat is started.

Unlike configs.py these may change while the program runs; nothing in here
affects the wire protocol.
"""
import datetime
import inspect
import json
import os
from typing import Any, TypedDict, Literal, overload

__all__ = ['ConfigHandler']

MAX_NICKNAME_LENGTH = 32


class ConfigDict(TypedDict):
    show_timestamps: bool
    echo_sent_messages: bool
    timestamp_format: str
    own_nickname: str
    peer_nickname: str


BoolKeys = Literal['show_timestamps', 'echo_sent_messages']
StrKeys = Literal['timestamp_format', 'own_nickname', 'peer_nickname']
ConfigKey = BoolKeys | StrKeys


def create_default_config() -> ConfigDict:
    """
    :return: The default preferences.
    """
    return ConfigDict(
            show_timestamps=False,
            echo_sent_messages=True,
            timestamp_format="%H:%M:%S",
            own_nickname="You",
            peer_nickname="Peer",
    )


def check_value(key: str, value: bool | str) -> None:
    """
    Domain checks on top of the type check.

    :raises ValueError: If the value is of the right type but unusable.
    """
    if not isinstance(value, str):
        return
    if key in ('own_nickname', 'peer_nickname'):
        if not value.strip():
            raise ValueError(f"'{key}' must not be empty")
        if len(value) > MAX_NICKNAME_LENGTH:
            raise ValueError(f"'{key}' must be at most {MAX_NICKNAME_LENGTH} characters")
        if not value.isprintable():
            raise ValueError(f"'{key}' must not contain control characters")
    elif key == 'timestamp_format':
        if not value:
            raise ValueError("'timestamp_format' must not be empty")
        try:
            datetime.datetime.now().strftime(value)
        except ValueError as e:
            raise ValueError(f"'timestamp_format' is not a valid strftime format: {e}") from e


class ConfigHandler:
    """
    Typed access to the chat preferences file.

    Unknown keys in the file are reported and ignored; known keys with a wrong
    type or an unusable value make loading fail with ValueError.
    """

    def __init__(self, config_file: str = "config.json", load: bool = True) -> None:
        """
        :param load: If False, start from the defaults without touching the file.
        :raises ValueError: If the file is not valid JSON or holds an unusable value.
        """
        self.config_file = config_file
        self.config: ConfigDict = create_default_config()
        self.init_config: dict[str, Any] = {}
        if load:
            self.ensure_exists()
            self._load()

    def _load(self) -> None:
        with open(self.config_file, "r", encoding="utf-8") as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            raise ValueError("Config file must contain a JSON object")
        self.init_config = loaded
        self.validate_config()

    def validate_config(self) -> None:
        annotations = inspect.get_annotations(ConfigDict)
        validated: dict[str, Any] = {}
        for key, value in self.init_config.items():
            if key not in annotations:
                print("Unknown config key: " + key + ", skipping...")
                continue

            expected_type = annotations[key]
            if not isinstance(value, expected_type):
                raise ValueError(f"Config value for key '{key}' must be of type {expected_type.__name__}")
            check_value(key, value)
            validated[key] = value

        # Applied only after every key has been validated
        self.config.update(validated)  # type: ignore[typeddict-item]

    @overload
    def __getitem__(self, key: BoolKeys) -> bool:
        ...

    @overload
    def __getitem__(self, key: StrKeys) -> str:
        ...

    def __getitem__(self, key: ConfigKey) -> bool | str:
        if not isinstance(key, str):
            raise TypeError("Config keys must be strings")
        return self.config[key]  # type: ignore

    @overload
    def __setitem__(self, key: BoolKeys, value: bool) -> None:
        ...

    @overload
    def __setitem__(self, key: StrKeys, value: str) -> None:
        ...

    def __setitem__(self, key: ConfigKey, value: bool | str) -> None:
        if key not in self.config:
            raise KeyError(f"Unknown config key '{key}'")
        expected_type = type(self.config[key])  # type: ignore
        if not isinstance(value, expected_type):
            raise TypeError(f"Config value for key '{key}' must be of type {expected_type.__name__}")
        check_value(key, value)
        self.config[key] = value  # type: ignore

    def save(self) -> tuple[bool, str]:
        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(self.config, f, indent=4)
        except PermissionError:
            return False, "Insufficient permissions to write config file"
        except OSError as e:
            return False, str(e)
        return True, ""

    def ensure_exists(self) -> tuple[bool, str]:
        if os.path.exists(self.config_file):
            return True, ""
        return self.save()

    def reload(self) -> tuple[bool, str]:
        """Re-read the file, keeping the current values if it is missing or invalid."""
        if not os.path.exists(self.config_file):
            return False, "Config file does not exist"
        try:
            self._load()
        except json.JSONDecodeError:
            return False, "Config file is not valid JSON"
        except (OSError, ValueError) as e:
            return False, str(e)
        return True, ""

    def __str__(self) -> str:
        return json.dumps(self.config, indent=4)
