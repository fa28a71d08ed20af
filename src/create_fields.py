from __future__ import annotations
import argparse
import logging
from typing import List, Optional

from bitrix_utils import LOG_FILE, ValidationError, configure_logging, get_webhook_from_args_env_secret
from field_creator import (
    ENTITY_MAP,
    FIELD_TYPES,
    METHOD_MAP,
    REQUEST_DELAY,
    FieldBatchConfig,
    LogEntry,
    create_fields,
    derive_field_names,
)

MAX_QUANTITY = 100


def _clamp_quantity(value: int) -> int:
    return max(1, min(MAX_QUANTITY, value))


def _print_entry(entry: LogEntry) -> None:
    if entry.outcome == "success":
        logging.info("[%s] %s -> %s", entry.timestamp, entry.url, entry.status)
    else:
        logging.error("[%s] %s -> %s\n%s", entry.timestamp, entry.url, entry.status or "ERROR", entry.response)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create numbered CRM user fields through a Bitrix24 webhook")
    parser.add_argument("--webhook", "-w")
    parser.add_argument("--secret-name", "-s")
    parser.add_argument("--project-id", "-p")
    parser.add_argument("--name", "-n", required=True, help="Base field name, e.g. NF or Documento")
    parser.add_argument("--quantity", "-q", type=int, default=1, help=f"Number of fields to create (1-{MAX_QUANTITY})")
    parser.add_argument("--entity", "-e", default="leads", choices=list(ENTITY_MAP) + list(METHOD_MAP))
    parser.add_argument("--type", "-t", dest="field_type", default="string", choices=FIELD_TYPES)
    parser.add_argument("--options", "-o", default="", help="Comma-separated list values for enumeration fields")
    parser.add_argument("--lang", default="pt", help="Language code of the field labels")
    parser.add_argument("--delay", type=float, default=REQUEST_DELAY, help="Pause between requests, seconds")
    parser.add_argument("--timeout", type=float, default=None)
    parser.add_argument("--dry-run", action="store_true", help="Only print the field names that would be created")
    parser.add_argument("--log-file", default=LOG_FILE)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    configure_logging(args.log_file)

    webhook = "" if args.dry_run else get_webhook_from_args_env_secret(args.webhook, args.secret_name, args.project_id)
    config = FieldBatchConfig(
        webhook=webhook,
        field_name=args.name,
        quantity=_clamp_quantity(args.quantity),
        entity=args.entity,
        field_type=args.field_type,
        list_options=args.options,
        label_lang=args.lang,
    )

    if args.dry_run:
        for name in derive_field_names(config):
            print(name)
        return 0

    entries: List[LogEntry] = []

    def _on_log(entry: LogEntry) -> None:
        entries.append(entry)
        _print_entry(entry)

    logging.info("Creating %d %s field(s) for %s...", config.quantity, config.field_type, config.entity)
    try:
        created = create_fields(config, _on_log, delay=args.delay, timeout=args.timeout)
    except ValidationError as e:
        logging.error("%s", e)
        return 2

    failed = len(entries) - created
    logging.info("Done: %d created, %d failed", created, failed)
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
