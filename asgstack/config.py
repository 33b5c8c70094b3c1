"""Deal with configuration file."""
import logging
import os
from io import StringIO
from pathlib import Path
from typing import Any, MutableMapping, Optional, Union

import toml

# Order matters here. Local should take precedence over global.
CONFIG_PATHS = [
    Path("~/.config/asgstack.toml").expanduser(),
    Path("/etc/asgstack.toml"),
]

ConfigFile = Union[Path, StringIO]
log = logging.getLogger(__name__)


class Config(dict):
    """Override dict to allow raising a more meaningful KeyError."""

    def __getitem__(self, key):
        """Provide more meaningful KeyError on access."""
        try:
            return super().__getitem__(key)
        except KeyError:
            raise KeyError(
                "{} must be defined in asgstack.toml to make this "
                "call".format(key)
            ) from None


def parse_config(
    config_file: Optional[ConfigFile] = None,
) -> MutableMapping[str, Any]:
    """Find the relevant TOML, load, and return it."""
    possible_configs = []
    if config_file:
        possible_configs.append(config_file)
    if os.environ.get("ASGSTACK_CONFIG"):
        possible_configs.append(Path(os.environ["ASGSTACK_CONFIG"]))
    possible_configs.extend(CONFIG_PATHS)
    for path in possible_configs:
        try:
            config = toml.load(path, _dict=Config)
            log.debug("Loaded configuration from %s", path)
            return config
        except FileNotFoundError:
            continue
        except toml.TomlDecodeError as e:
            raise ValueError(
                "Could not parse configuration file pointed to by "
                "{}".format(path)
            ) from e
    raise ValueError(
        "No configuration file found! Copy asgstack.toml.template to "
        "~/.config/asgstack.toml or /etc/asgstack.toml"
    )


def load_section(
    section: str, config_file: Optional[ConfigFile] = None
) -> MutableMapping[str, Any]:
    """Return one table of the configuration, or an empty one.

    Unlike `parse_config`, a missing file or table is not an error: every
    asgstack value has a default or can come from boto3's own lookup.
    """
    try:
        config = parse_config(config_file)
    except ValueError as e:
        if e.__cause__ is not None:
            raise
        log.debug("No asgstack configuration file found, using defaults")
        return Config()
    return config.get(section, Config())
