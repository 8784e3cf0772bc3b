import json
import logging
import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from tasksync.lib.error import ConfigurationError

"""
Connection settings for the Nextcloud backend, and where to get them
from: keyword arguments, environment variables or a config file.

Credential lookup (keyring and friends) is done elsewhere, the
``use_keyring`` flag only tells the backend not to insist on a
password at construction time.
"""

log = logging.getLogger("tasksync")

ENV_PREFIX = "TASKSYNC_NEXTCLOUD_"
CALENDAR_HOME = "/remote.php/dav/calendars/%s/"


@dataclass
class Config:
    host: str = ""
    username: str = ""
    password: str = ""
    use_keyring: bool = False
    allow_http: bool = False
    insecure_skip_verify: bool = False


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def config_from_env(environ=None) -> Config:
    """Reads TASKSYNC_NEXTCLOUD_HOST, _USERNAME, _PASSWORD and friends"""
    if environ is None:
        environ = os.environ
    return Config(
        host=environ.get(ENV_PREFIX + "HOST", ""),
        username=environ.get(ENV_PREFIX + "USERNAME", ""),
        password=environ.get(ENV_PREFIX + "PASSWORD", ""),
        allow_http=_to_bool(environ.get(ENV_PREFIX + "ALLOW_HTTP", "")),
        insecure_skip_verify=_to_bool(
            environ.get(ENV_PREFIX + "INSECURE_SKIP_VERIFY", "")
        ),
    )


def config_from_file(fn: Optional[str] = None, section: str = "default") -> Config:
    """
    Builds a Config from a section of a json or yaml config file.  Keys
    are prefixed with ``nextcloud_``, i.e.::

        {"default": {"nextcloud_host": "cloud.example.com",
                     "nextcloud_username": "alice"}}
    """
    cfg = config_section(read_config(fn) or {}, section)
    return Config(
        host=cfg.get("nextcloud_host", ""),
        username=cfg.get("nextcloud_username", ""),
        password=cfg.get("nextcloud_password", ""),
        use_keyring=_to_bool(cfg.get("nextcloud_use_keyring", False)),
        allow_http=_to_bool(cfg.get("nextcloud_allow_http", False)),
        insecure_skip_verify=_to_bool(cfg.get("nextcloud_insecure_skip_verify", False)),
    )


def config_section(config, section="default"):
    if section in config and "inherits" in config[section]:
        ret = config_section(config, config[section]["inherits"])
    else:
        ret = {}
    if section in config:
        ret.update(config[section])
    return ret


def read_config(fn, interactive_error=False):
    if not fn:
        cfgdir = f"{os.environ.get('HOME', '/')}/.config/"
        for config_file in (
            f"{cfgdir}/tasksync/config.json",
            f"{cfgdir}/tasksync/config.yaml",
            f"{cfgdir}/tasksync/config.conf",
            "/etc/tasksync/config.conf",
        ):
            cfg = read_config(config_file)
            if cfg:
                return cfg
        return None

    try:
        try:
            with open(fn, "rb") as config_file:
                return json.load(config_file)
        except json.decoder.JSONDecodeError:
            ## Late import, yaml is an optional external module
            try:
                import yaml

                try:
                    with open(fn, "rb") as config_file:
                        return yaml.load(config_file, yaml.SafeLoader)
                except yaml.YAMLError:
                    log.error(
                        f"config file {fn} exists but is neither valid json nor yaml.  Check the syntax."
                    )
            except ImportError:
                log.error(
                    f"config file {fn} exists but is not valid json, and pyyaml is not installed."
                )

    except FileNotFoundError:
        log.info("no config file found")
    except ValueError:
        if interactive_error:
            log.error(
                "error in config file.  Be aware that the interactive configuration will ignore and overwrite the current broken config file",
                exc_info=True,
            )
        else:
            log.error("error in config file.  It will be ignored", exc_info=True)
    return {}


def validate(config: Config) -> None:
    """Fails early on settings that can never work"""
    if not config.host:
        raise ConfigurationError("nextcloud host is required")
    if not config.username:
        raise ConfigurationError("nextcloud username is required")
    if not config.password and not config.use_keyring:
        raise ConfigurationError("nextcloud password is required")


def resolve_base_url(config: Config) -> str:
    """
    Returns the calendar home URL,
    ``<scheme>://<host>/remote.php/dav/calendars/<username>/``.

    A scheme given in the host is used as is.  Otherwise allow_http
    selects http, and https is the default.
    """
    validate(config)
    host = config.host.strip()
    if host.count("://") > 1:
        raise ConfigurationError("host %r has more than one scheme" % config.host)
    if "://" in host:
        scheme, _, host = host.partition("://")
        scheme = scheme.lower()
        if scheme not in ("http", "https"):
            raise ConfigurationError("unsupported scheme %r in host" % scheme)
    elif config.allow_http:
        scheme = "http"
    else:
        scheme = "https"
    host = host.rstrip("/")
    if not host:
        raise ConfigurationError("nextcloud host is required")

    base_url = "%s://%s%s" % (scheme, host, CALENDAR_HOME % quote(config.username, safe="@"))
    if base_url.count("://") != 1:
        raise ConfigurationError("invalid base url %r" % base_url)
    return base_url
