"""
API client for the Basin vault service.
Vaults are append-only event stores; each event is a signed file addressed
by its content identifier (cid).
"""

import logging
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Config
from ..exceptions import (
    ConnectionClosedError,
    CreationError,
    NotFoundError,
    TransportError,
    WriteError,
)
from .models import VaultEvent

logger = logging.getLogger(__name__)

CONNECTION_CLOSED_PATTERN = re.compile(r"connection closed before message completed")

DOWNLOAD_CHUNK_SIZE = 64 * 1024


def _error_body(response: requests.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"error": "non-JSON error response"}
    return body if isinstance(body, dict) else {"error": str(body)}


def _raise_for_status(response: requests.Response) -> None:
    if not response.ok:
        raise TransportError(
            f"HTTP error: {response.status_code} {response.reason} - {response.text}",
            status_code=response.status_code,
        )


class VaultClient:
    """
    Narrow client for the vault endpoints the bot needs.

    Only `list_vaults` is retried: it is the first call made on startup and
    the service occasionally drops the connection mid-response. Writes are
    never retried since a repeated write would append a duplicate event.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        session: Optional[requests.Session] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or Config()
        self.base_url = self.config.VAULT_BASE_URL.rstrip("/")
        self.session = session or requests.Session()
        self.max_retries = self.config.VAULT_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_seconds = self.config.VAULT_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self._retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_seconds, exp_base=2),
            retry=retry_if_exception_type(
                (ConnectionClosedError, requests.ConnectionError, requests.Timeout)
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=sleep,
            reraise=True,
        )

        logger.info(f"VaultClient initialized for {self.base_url}")

    def create_vault(self, name: str, account: str, cache_minutes: Optional[int] = None) -> None:
        """
        Create a vault owned by `account`.

        Args:
            name: Vault name, "<namespace>.<relation>"
            account: Owner address
            cache_minutes: How long event payloads stay in the hot cache

        Raises:
            CreationError: If the service reports the vault was not created
        """
        form = {"account": account}
        if cache_minutes is not None:
            form["cache"] = str(cache_minutes)

        logger.info(f"Creating vault {name} for account {account} (cache {cache_minutes} min)")
        response = self.session.post(
            f"{self.base_url}/vaults/{name}",
            data=form,
            timeout=self.config.API_TIMEOUT,
        )
        _raise_for_status(response)

        if response.json().get("created") is False:
            raise CreationError(f"error creating vault {name}")

    def _list_vaults_once(self, account: str) -> List[str]:
        response = self.session.get(
            f"{self.base_url}/vaults",
            params={"account": account},
            timeout=self.config.API_TIMEOUT,
        )
        if response.ok:
            return response.json() or []

        body = _error_body(response)
        message = f"HTTP error: {response.status_code} {response.reason} - {body}"
        error_text = body.get("error") or ""
        if response.status_code == 400 and CONNECTION_CLOSED_PATTERN.search(str(error_text)):
            raise ConnectionClosedError(message, status_code=400)
        raise TransportError(message, status_code=response.status_code)

    def list_vaults(self, account: str) -> List[str]:
        """Names of the vaults owned by an account."""
        return self._retrying(self._list_vaults_once, account)

    @staticmethod
    def vault_exists(vaults: List[str], name: str) -> bool:
        return name in vaults

    def write_event(self, vault: str, payload: bytes, signature: str, filename: str) -> None:
        """
        Append a signed payload to a vault.

        Raises:
            WriteError: If the service answers with anything but an empty list
        """
        params = {"timestamp": int(time.time()), "signature": signature}
        response = self.session.post(
            f"{self.base_url}/vaults/{vault}/events",
            params=params,
            headers={"filename": filename},
            data=payload,
            timeout=self.config.API_TIMEOUT,
        )
        _raise_for_status(response)

        # Response is just `[]` if successful
        data = response.json()
        if data:
            raise WriteError(f"error writing {filename} to vault {vault}: {data}")
        logger.info(f"Wrote {filename} ({len(payload)} bytes) to vault {vault}")

    def write_file(self, vault: str, filepath: Union[str, Path], signature: str) -> None:
        path = Path(filepath)
        if not path.is_file():
            raise NotFoundError(f"file does not exist: {path}")
        self.write_event(vault, path.read_bytes(), signature, path.name)

    def list_events(
        self,
        vault: str,
        latest: Optional[int] = None,
        limit: Optional[int] = None,
        before: Optional[int] = None,
        after: Optional[int] = None,
        at: Optional[int] = None,
    ) -> List[VaultEvent]:
        """Events in a vault, newest first, filtered by the given options."""
        options = {"latest": latest, "limit": limit, "before": before, "after": after, "at": at}
        params = {key: value for key, value in options.items() if value is not None}

        response = self.session.get(
            f"{self.base_url}/vaults/{vault}/events",
            params=params,
            timeout=self.config.API_TIMEOUT,
        )
        _raise_for_status(response)
        return [VaultEvent(**item) for item in response.json() or []]

    def download_event(self, cid: str, destination: Union[str, Path]) -> None:
        """
        Stream an event payload to a local file.

        The payload is written to a temporary sibling and renamed into place,
        so a failed download never leaves a partial file at `destination`.

        Raises:
            NotFoundError: If the event is gone from the cache (404)
            TransportError: For any other HTTP failure
        """
        destination = Path(destination)
        partial = destination.with_name(destination.name + ".part")

        with self.session.get(f"{self.base_url}/events/{cid}", stream=True, timeout=self.config.API_TIMEOUT) as response:
            if response.status_code == 404:
                # A 404 likely means the event cache expired
                raise NotFoundError(f"event {cid} not found or cache expired")
            _raise_for_status(response)

            try:
                with open(partial, "wb") as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
            except (OSError, requests.RequestException):
                partial.unlink(missing_ok=True)
                raise

        partial.replace(destination)
        logger.info(f"Downloaded event {cid} to {destination}")
