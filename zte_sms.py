#!/usr/bin/env python3
"""
SMS retrieval from ZTE LTE routers
Uses the router's goform web API (session cookie login) to read the SMS inbox.
"""

import argparse
import base64
import hashlib
import json
import logging
import os
import re
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import urllib3
import yaml

from sms_messages import Message, decode_messages

# Disable SSL warnings for self-signed certificates
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

logger = logging.getLogger(__name__)

LOGIN_TIMEOUT = 10
FETCH_TIMEOUT = 15

HASH_MODE_SETTING = "WEB_ATTR_IF_SUPPORT_SHA256"
SUPPORTED_HASH_MODES = (0, 1, 2)

LOGIN_RESULT_MESSAGES = {
    "0": "Login OK",
    "1": "Login Fail",
    "2": "Duplicate User",
    "3": "Bad Password",
}


class RouterError(Exception):
    """Base class for all router communication errors"""


class ConfigError(RouterError):
    """The router's config.js could not be used"""


class ConfigFetchError(ConfigError):
    """config.js could not be retrieved"""


class ConfigParseError(ConfigError):
    """config.js does not contain a usable setting"""


class UnsupportedHashModeError(ConfigParseError):
    """The router asks for a password hash mode we do not know"""

    def __init__(self, mode: int):
        super().__init__(f"unsupported {HASH_MODE_SETTING}: {mode}")
        self.mode = mode


class NonceFetchError(RouterError):
    """The login challenge (LD) could not be retrieved"""


class AuthenticationError(RouterError):
    """
    Login failed.

    code is the router's result code, or None when the login request
    itself failed (network error, invalid JSON).
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class LoginRequestError(AuthenticationError):
    """The login request did not produce a router answer"""


class LoginFailedError(AuthenticationError):
    pass


class DuplicateUserError(AuthenticationError):
    pass


class BadPasswordError(AuthenticationError):
    pass


class FetchError(RouterError):
    """The message list could not be retrieved"""


_LOGIN_RESULT_ERRORS = {
    "1": LoginFailedError,
    "2": DuplicateUserError,
    "3": BadPasswordError,
}


def login_error_for(code: str) -> AuthenticationError:
    """Builds the exception matching a non-zero login result code"""
    error_class = _LOGIN_RESULT_ERRORS.get(code, AuthenticationError)
    return error_class(LOGIN_RESULT_MESSAGES.get(code, "Unknown error"), code=code)


def sha256_hex(text: str) -> str:
    """Upper case hex SHA-256 of a UTF-8 string"""
    return hashlib.sha256(text.encode('utf-8')).hexdigest().upper()


def compute_password_digest(password: str, mode: int, nonce: Optional[str] = None) -> str:
    """
    Computes the password value the LOGIN call expects.

    Args:
        password: Plain text password
        mode: Value of WEB_ATTR_IF_SUPPORT_SHA256 (0, 1 or 2)
        nonce: LD challenge, required for mode 2

    Returns:
        Password digest

    Raises:
        UnsupportedHashModeError: for any other mode
    """
    encoded = base64.b64encode(password.encode('utf-8')).decode('ascii')
    if mode == 0:
        return encoded
    if mode == 1:
        return sha256_hex(encoded)
    if mode == 2:
        if nonce is None:
            raise ValueError("hash mode 2 requires the LD nonce")
        return sha256_hex(sha256_hex(password) + nonce)
    raise UnsupportedHashModeError(mode)


def _cache_buster() -> str:
    return str(int(time.time() * 1000))


def _time_left(deadline: float) -> float:
    """Remaining seconds until deadline, as a requests timeout"""
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise requests.exceptions.Timeout("deadline exceeded")
    return remaining


@dataclass
class RouterConfig:
    """Connection settings for one router"""

    url: str
    password: str
    verify_ssl: bool = False
    login_timeout: float = LOGIN_TIMEOUT
    fetch_timeout: float = FETCH_TIMEOUT

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> Optional["RouterConfig"]:
        """
        Builds a RouterConfig from the "router" section of config.yaml,
        falling back to the ENDPOINT and PASSWORD environment variables.

        Returns:
            RouterConfig, or None if URL or password is missing
        """
        router_config = config.get("router") or {}
        url = router_config.get("url") or os.getenv("ENDPOINT")
        password = router_config.get("password") or os.getenv("PASSWORD")
        if not url or not password:
            return None
        return cls(
            url=url,
            password=str(password),
            verify_ssl=bool(router_config.get("verify_ssl", False)),
            login_timeout=float(router_config.get("login_timeout", LOGIN_TIMEOUT)),
            fetch_timeout=float(router_config.get("fetch_timeout", FETCH_TIMEOUT)),
        )


class ZTERouter:
    """Class for reading SMS from a ZTE router"""

    def __init__(
        self,
        router_url: str,
        password: Optional[str] = None,
        verify_ssl: bool = False,
        login_timeout: float = LOGIN_TIMEOUT,
        fetch_timeout: float = FETCH_TIMEOUT
    ):
        """
        Initializes the router session

        Args:
            router_url: Router URL (e.g. "http://192.168.0.1")
            password: Password for the web interface
            verify_ssl: Verify TLS certificates (off for local routers)
            login_timeout: Time budget in seconds for the whole login sequence
            fetch_timeout: Time budget in seconds for the message list request
        """
        if not router_url.endswith('/'):
            router_url += '/'
        self.router_url = router_url
        self.password = password
        self.login_timeout = login_timeout
        self.fetch_timeout = fetch_timeout
        # Own session per instance: the login cookie must not leak to other callers
        self.session = requests.Session()
        self.session.verify = verify_ssl
        # The router rejects requests without a Referer
        self.session.headers.update({"Referer": self.router_url})

    @classmethod
    def from_config(cls, config: RouterConfig) -> "ZTERouter":
        return cls(
            config.url,
            config.password,
            verify_ssl=config.verify_ssl,
            login_timeout=config.login_timeout,
            fetch_timeout=config.fetch_timeout,
        )

    def __enter__(self) -> "ZTERouter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def probe_hash_mode(self, deadline: Optional[float] = None) -> int:
        """
        Reads WEB_ATTR_IF_SUPPORT_SHA256 from js/config/config.js

        Returns:
            Hash mode (0, 1 or 2)

        Raises:
            ConfigFetchError: config.js could not be retrieved
            ConfigParseError: setting not found
            UnsupportedHashModeError: setting has an unknown value
        """
        if deadline is None:
            deadline = time.monotonic() + self.login_timeout
        config_url = f"{self.router_url}js/config/config.js"

        try:
            response = self.session.get(config_url, timeout=_time_left(deadline))
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ConfigFetchError(f"failed to fetch config.js: {e}") from e

        pattern = re.escape(HASH_MODE_SETTING) + r'\s*:\s*(\d),'
        match = re.search(pattern, response.text)
        if not match:
            raise ConfigParseError(f"failed to find config {HASH_MODE_SETTING}")

        mode = int(match.group(1))
        if mode not in SUPPORTED_HASH_MODES:
            raise UnsupportedHashModeError(mode)
        logger.debug(f"{HASH_MODE_SETTING} = {mode}")
        return mode

    def fetch_nonce(self, deadline: Optional[float] = None) -> str:
        """
        Retrieves the LD login challenge

        Raises:
            NonceFetchError: request failed, invalid JSON or empty LD
        """
        if deadline is None:
            deadline = time.monotonic() + self.login_timeout
        params = {
            "isTest": "false",
            "cmd": "LD",
            "_": _cache_buster(),
        }

        try:
            response = self.session.get(
                f"{self.router_url}goform/goform_get_cmd_process",
                params=params,
                timeout=_time_left(deadline)
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise NonceFetchError(f"failed to get LD: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise NonceFetchError(f"failed to decode LD response: {e}") from e

        nonce = data.get("LD") if isinstance(data, dict) else None
        if not nonce:
            raise NonceFetchError("LD is null")
        return str(nonce)

    def login(self, password: Optional[str] = None) -> None:
        """
        Logs in; the session cookie is kept in self.session.

        The probe, the LD request and the LOGIN call share one time budget.

        Args:
            password: Password (default: the one given to the constructor)

        Raises:
            ConfigError: hash mode could not be determined
            NonceFetchError: LD challenge could not be retrieved
            AuthenticationError: router rejected the login or did not answer
        """
        if password is None:
            password = self.password
        if password is None:
            raise ValueError("no password given")

        deadline = time.monotonic() + self.login_timeout

        mode = self.probe_hash_mode(deadline)
        nonce = self.fetch_nonce(deadline) if mode == 2 else None
        digest = compute_password_digest(password, mode, nonce)

        payload = {
            "isTest": "false",
            "goformId": "LOGIN",
            "password": digest,
        }

        try:
            response = self.session.post(
                f"{self.router_url}goform/goform_set_cmd_process",
                data=payload,
                timeout=_time_left(deadline)
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise LoginRequestError(f"failed to perform login request: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise LoginRequestError(f"failed to decode login response: {e}") from e

        if not isinstance(data, dict):
            raise LoginRequestError(f"unexpected login response: {data!r}")

        result = str(data.get("result", ""))
        if result != "0":
            raise login_error_for(result)
        logger.info(f"Logged in to {self.router_url} (hash mode {mode})")

    def list_messages(self, page: int, per_page: int, mem_store: int, tag: int) -> List[Dict[str, Any]]:
        """
        Retrieves one page of raw SMS records. Requires a prior login().

        Args:
            page: Page number (0-based)
            per_page: Records per page
            mem_store: Storage to read (0 = SIM, 1 = device, 2 = both)
            tag: Tag filter (10 = all)

        Returns:
            Raw records in router order (newest first)

        Raises:
            FetchError: request failed or response is not a message list
        """
        params = {
            "isTest": "false",
            "cmd": "sms_data_total",
            "page": str(page),
            "data_per_page": str(per_page),
            "mem_store": str(mem_store),
            "tags": str(tag),
            "order_by": "order by id desc",
            "_": _cache_buster(),
        }

        try:
            response = self.session.get(
                f"{self.router_url}goform/goform_get_cmd_process",
                params=params,
                timeout=self.fetch_timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise FetchError(f"failed to perform GetSMS request: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise FetchError(f"failed to decode GetSMS response: {e}") from e

        if not isinstance(data, dict):
            raise FetchError(f"unexpected GetSMS response: {data!r}")
        messages = data.get("messages")
        if messages is None:
            messages = []
        if not isinstance(messages, list):
            raise FetchError("GetSMS response field 'messages' is not a list")
        return messages

    def get_sms(self, page: int, per_page: int, mem_store: int, tag: int) -> List[Message]:
        """Retrieves and decodes one page of SMS; undecodable records are skipped"""
        return decode_messages(self.list_messages(page, per_page, mem_store, tag))


def fetch_messages(
    config: RouterConfig,
    page: int = 0,
    per_page: int = 500,
    mem_store: int = 1,
    tag: int = 10
) -> List[Message]:
    """
    Logs in with a fresh session and returns one page of decoded SMS.

    Raises:
        RouterError: on configuration, login or fetch failure
    """
    with ZTERouter.from_config(config) as router:
        router.login()
        return router.get_sms(page, per_page, mem_store, tag)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads configuration from config.yaml

    Args:
        config_path: Path to config file (default: config.yaml next to this file)

    Returns:
        Dictionary with configuration values
    """
    if config_path is None:
        config_path = Path(__file__).parent / "config.yaml"
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        return {}

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
        return config or {}
    except (yaml.YAMLError, IOError) as e:
        logger.warning(f"Could not load {config_path}: {e}")
        return {}


def main():
    """Main function for command-line usage"""
    parser = argparse.ArgumentParser(
        description="Read SMS from a ZTE router",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Configuration:
  The script reads configuration from config.yaml (copy config.yaml.example to config.yaml).
  Alternatively, you can use environment variables or command-line arguments.

  Priority: Command line > config.yaml > Environment variables

Examples:
  python zte_sms.py
  python zte_sms.py --router http://192.168.0.1 --password mypassword
  python zte_sms.py --tag 1 --per-page 20

Environment variables:
  ENDPOINT  - Router URL
  PASSWORD  - Password
        """
    )

    parser.add_argument("--router", default=None, help="Router URL")
    parser.add_argument("--password", default=None, help="Router password")
    parser.add_argument("--page", type=int, default=0, help="Page number (default: 0)")
    parser.add_argument("--per-page", type=int, default=500, help="Messages per page (default: 500)")
    parser.add_argument("--mem-store", type=int, default=1, help="Message storage (default: 1)")
    parser.add_argument("--tag", type=int, default=10, help="Tag filter, 10 = all (default: 10)")
    parser.add_argument("--config", default=None,
                        help="Path to config.yaml file (default: config.yaml next to this script)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = load_config(args.config)
    router_section = dict(config.get("router") or {})
    config["router"] = router_section
    if args.router:
        router_section["url"] = args.router
    if args.password:
        router_section["password"] = args.password

    router_config = RouterConfig.from_config(config)
    if router_config is None:
        print("✗ Error: Router URL or password missing!")
        print("  Please specify --router/--password, set ENDPOINT/PASSWORD or create config.yaml")
        sys.exit(1)

    try:
        messages = fetch_messages(router_config, args.page, args.per_page, args.mem_store, args.tag)
    except AuthenticationError as e:
        print(f"✗ Authentication failed: {e}")
        sys.exit(1)
    except RouterError as e:
        print(f"✗ Error: {e}")
        sys.exit(1)

    output = [message.model_dump(mode="json", by_alias=True) for message in messages]
    print(json.dumps(output, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
