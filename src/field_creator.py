from __future__ import annotations

import json
import logging
import time
import unicodedata
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Optional

import requests
from urllib3.exceptions import LocationValueError

from bitrix_utils import (
    ValidationError,
    _make_session,
    build_method_url,
    log_failed_request,
    parse_webhook,
)


logger = logging.getLogger(__name__)

REQUEST_DELAY = 0.3
DEFAULT_LABEL_LANG = "pt"
MISSING_INPUT_ERROR = "Por favor, preencha o webhook e o nome do campo"

ENTITY_MAP = MappingProxyType({
    "leads": "lead",
    "deals": "deal",
    "contacts": "contact",
    "companies": "company",
})

METHOD_MAP = MappingProxyType({
    "lead": "crm.lead.userfield.add",
    "deal": "crm.deal.userfield.add",
    "contact": "crm.contact.userfield.add",
    "company": "crm.company.userfield.add",
})

FIELD_TYPES = ("string", "integer", "double", "file", "boolean", "enumeration")


@dataclass(frozen=True)
class FieldBatchConfig:
    webhook: str
    field_name: str
    quantity: int = 1
    entity: str = "leads"
    field_type: str = "string"
    list_options: str = ""
    label_lang: str = DEFAULT_LABEL_LANG


@dataclass(frozen=True)
class LogEntry:
    """One field-creation attempt. ``status`` is 0 when no response was obtained."""
    id: str
    timestamp: str
    url: str
    payload: str
    status: int
    response: str
    outcome: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RunLog:
    """Append-only log collection, newest entry first."""

    def __init__(self) -> None:
        self._entries: List[LogEntry] = []

    def append(self, entry: LogEntry) -> None:
        self._entries.insert(0, entry)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def to_list(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries]


@dataclass
class BatchResult:
    logs: RunLog = field(default_factory=RunLog)
    error: str = ""

    @property
    def created(self) -> int:
        return sum(1 for entry in self.logs if entry.outcome == "success")

    @property
    def failed(self) -> int:
        return sum(1 for entry in self.logs if entry.outcome == "error")


def sanitize_field_name(name: str) -> str:
    decomposed = unicodedata.normalize("NFD", name)
    stripped = "".join(ch for ch in decomposed if not "\u0300" <= ch <= "\u036f")
    return "".join(ch if (ch.isascii() and ch.isalnum()) or ch == "_" else "_" for ch in stripped).upper()


def resolve_entity_code(entity: str) -> str:
    if entity in ENTITY_MAP:
        return ENTITY_MAP[entity]
    if entity in METHOD_MAP:
        return entity
    raise ValidationError(f"Entidade desconhecida: {entity}")


def derive_field_name(entity_code: str, sanitized_name: str, index: int) -> str:
    return f"UF_CRM_{entity_code.upper()}_{sanitized_name}_{index:03d}"


def derive_field_names(config: FieldBatchConfig) -> List[str]:
    entity_code = resolve_entity_code(config.entity)
    sanitized = sanitize_field_name(config.field_name)
    return [derive_field_name(entity_code, sanitized, i) for i in range(1, config.quantity + 1)]


def parse_list_options(raw: Optional[str]) -> List[Dict[str, str]]:
    if not raw:
        return []
    return [{"VALUE": opt.strip()} for opt in raw.split(",") if opt.strip()]


def build_payload(full_name: str, label: str, field_type: str, lang: str = DEFAULT_LABEL_LANG,
                  list_values: Optional[List[Dict[str, str]]] = None) -> dict:
    fields: Dict[str, Any] = {
        "FIELD_NAME": full_name,
        "USER_TYPE_ID": field_type,
        "EDIT_FORM_LABEL": {lang: label},
        "LIST_FILTER_LABEL": {lang: label},
    }
    if field_type == "enumeration" and list_values:
        fields["LIST"] = list_values
    return {"fields": fields}


def _dump(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, indent=2)


def _new_entry(url: str, payload: dict, status: int, response: str, outcome: str) -> LogEntry:
    return LogEntry(
        id=uuid.uuid4().hex,
        timestamp=datetime.now().strftime("%H:%M:%S"),
        url=url,
        payload=_dump(payload),
        status=status,
        response=response,
        outcome=outcome,
    )


def _validate(config: FieldBatchConfig) -> None:
    if not config.webhook or not config.field_name:
        raise ValidationError(MISSING_INPUT_ERROR)
    if config.field_type not in FIELD_TYPES:
        raise ValidationError(f"Tipo de campo desconhecido: {config.field_type}")


def _send(session: requests.Session, url: str, payload: dict, timeout: Optional[float]) -> LogEntry:
    try:
        resp = session.post(url, json=payload, timeout=timeout)
    except (requests.exceptions.RequestException, LocationValueError) as e:
        log_failed_request(url, payload, 0, str(e))
        return _new_entry(url, payload, 0, str(e), "error")

    try:
        body = _dump(resp.json())
    except ValueError:
        body = resp.text
        outcome = "error"
    else:
        outcome = "success" if resp.ok else "error"

    if outcome == "error":
        log_failed_request(url, payload, resp.status_code, body)
    return _new_entry(url, payload, resp.status_code, body, outcome)


def create_fields(config: FieldBatchConfig, on_log: Callable[[LogEntry], None],
                  session: Optional[requests.Session] = None, delay: float = REQUEST_DELAY,
                  sleep: Callable[[float], None] = time.sleep, timeout: Optional[float] = None) -> int:
    """Create ``config.quantity`` user fields one request at a time.

    Every attempt, successful or not, is reported through ``on_log``; a failed
    request never stops the remaining ones. Input problems raise
    ``ValidationError`` before anything is sent. Returns the number of fields
    the portal accepted.
    """
    _validate(config)
    api_url, user_id, token = parse_webhook(config.webhook)
    entity_code = resolve_entity_code(config.entity)
    method = METHOD_MAP[entity_code]
    url = build_method_url(api_url, user_id, token, method)
    sanitized = sanitize_field_name(config.field_name)

    list_values = parse_list_options(config.list_options) if config.field_type == "enumeration" else []

    owns_session = session is None
    if owns_session:
        session = _make_session()
    created = 0
    try:
        for i in range(1, config.quantity + 1):
            full_name = derive_field_name(entity_code, sanitized, i)
            label = f"{config.field_name} {i:03d}"
            payload = build_payload(full_name, label, config.field_type, config.label_lang, list_values)

            entry = _send(session, url, payload, timeout)
            if entry.outcome == "success":
                created += 1
            on_log(entry)

            if i < config.quantity:
                sleep(delay)
    finally:
        if owns_session:
            session.close()

    logger.info("Field batch finished: %d/%d created", created, config.quantity)
    return created


def run_batch(config: FieldBatchConfig, session: Optional[requests.Session] = None,
              delay: float = REQUEST_DELAY, sleep: Callable[[float], None] = time.sleep,
              timeout: Optional[float] = None) -> BatchResult:
    result = BatchResult()
    try:
        create_fields(config, result.logs.append, session=session, delay=delay, sleep=sleep, timeout=timeout)
    except ValidationError as e:
        result.error = str(e)
    return result
