from __future__ import annotations
import logging
import subprocess
import sys
from pathlib import Path


logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')

COMMANDS = {
    'create-fields': 'create_fields.py',
    'create': 'create_fields.py',
    'serve': 'field_creator_app.py',
}


def _run_script(script_name: str, args: list[str]) -> int:
    here = Path(__file__).parent
    script = here / script_name
    if not script.exists():
        logging.error('Script not found: %s', script)
        return 2
    cmd = [sys.executable, str(script)] + args
    proc = subprocess.run(cmd)
    return proc.returncode


def main(argv: list[str] | None = None) -> int:
    argv = list(argv or sys.argv[1:])
    if not argv:
        print('Usage: main.py <create-fields|serve> [args...]')
        return 1

    cmd = argv[0]
    rest = argv[1:]
    if cmd in COMMANDS:
        return _run_script(COMMANDS[cmd], rest)

    print('Unknown command:', cmd)
    print('Available commands: create-fields, serve')
    return 1


if __name__ == '__main__':
    raise SystemExit(main())
