from __future__ import annotations

import json
import logging
import os
import re
from typing import Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


LOG_FILE = "errors.log"
error_logger = logging.getLogger("error_logger")
error_logger.setLevel(logging.ERROR)

WEBHOOK_RE = re.compile(r'^(https?://[^/]+/rest)/(\d+)/([^/]+)/?$')
WEBHOOK_FORMAT_ERROR = "Formato de webhook inválido. Use: https://dominio.bitrix24.com.br/rest/userId/token"


class ValidationError(ValueError):
    """Raised before any request is sent when the batch input is unusable."""


def configure_logging(log_file: str = LOG_FILE) -> None:
    logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')
    error_logger.propagate = False
    for handler in error_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(log_file):
            return
    file_handler = logging.FileHandler(log_file, encoding="utf-8", delay=True)
    file_handler.setLevel(logging.ERROR)
    file_handler.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s"))
    error_logger.addHandler(file_handler)


def _make_session(retries: int = 0, backoff_factor: float = 0.3) -> requests.Session:
    session = requests.Session()
    retry = Retry(total=retries, backoff_factor=backoff_factor, status_forcelist=(429, 502, 503, 504), raise_on_status=False)
    adapter = HTTPAdapter(max_retries=retry)
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
    return session


def _fetch_secret_from_gcp(project_id: str, secret_name: str) -> str:
    try:
        from google.cloud import secretmanager
    except ImportError as e:
        raise RuntimeError('google-cloud-secret-manager package required: ' + str(e))

    client = secretmanager.SecretManagerServiceClient()
    name = f"projects/{project_id}/secrets/{secret_name}/versions/latest"
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode('utf-8')


def get_webhook_from_args_env_secret(webhook: Optional[str], secret_name: Optional[str], project_id: Optional[str]) -> str:
    if webhook:
        return webhook.strip()

    if secret_name:
        if not project_id:
            error_logger.error('--project-id is required together with --secret-name')
            raise SystemExit(2)
        try:
            return _fetch_secret_from_gcp(project_id, secret_name).strip()
        except Exception as e:
            error_logger.error('Failed to read secret from GCP: %s', e)
            raise SystemExit(3)

    env = os.environ.get('WEBHOOK')
    if env:
        return env.strip()

    raise SystemExit(1)


def parse_webhook(webhook: str) -> Tuple[str, str, str]:
    """Split an inbound webhook into (api_url, user_id, token).

    ``https://acme.bitrix24.com.br/rest/163/abc123/`` gives
    ``('https://acme.bitrix24.com.br/rest', '163', 'abc123')``.
    """
    match = WEBHOOK_RE.match((webhook or '').strip())
    if not match:
        raise ValidationError(WEBHOOK_FORMAT_ERROR)
    api_url, user_id, token = match.groups()
    return api_url, user_id, token


def build_method_url(api_url: str, user_id: str, token: str, method: str) -> str:
    return f"{api_url}/{user_id}/{token}/{method}.json"


def log_failed_request(endpoint: str, payload: dict, status: int, response_text: str) -> None:
    error_logger.error(
        "HTTP %s for %s\nPayload: %s\nResponse: %s",
        status,
        endpoint,
        json.dumps(payload, ensure_ascii=False),
        (response_text or '')[:500],
    )
