#!/usr/bin/env python3
"""
Generate Anki flashcards using a local LLM (Ollama).

Usage:
    anki-gen check
    anki-gen --deck Grammar --fields Grammar,Meaning generate "～ばかりに"
    anki-gen --deck Grammar next "JLPT N3 grammar points"
    anki-gen --deck Grammar batch "～ために,～ように"
    anki-gen --deck Grammar batch @items.txt
    anki-gen config yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from anki_gen.anki_connect import AnkiConnect
from anki_gen.card_generator import CardGenerator, CardRequest
from anki_gen.errors import AnkiGenError
from anki_gen.field_reconciler import ValidationMode
from anki_gen.history import HistoryStore
from anki_gen.ollama_client import OllamaClient
from anki_gen.settings import example_config, load_settings, merge_cli_overrides

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Console logging to stderr, plus a DEBUG file log when `log_file` is set."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(logging.DEBUG)
    # keep urllib3 connection chatter out of the console
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def _comma_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


def parse_items(value: str) -> List[str]:
    """Comma-separated items, or @path to a file with one item per line."""
    if value.startswith('@'):
        path = Path(value[1:])
        try:
            with open(path, 'r', encoding='utf-8') as f:
                items = [line.strip() for line in f if line.strip()]
        except OSError as e:
            raise AnkiGenError(f"Error reading file '{path}': {e}") from e
        logger.info(f"Loaded {len(items)} items from file '{path}'")
    else:
        items = _comma_list(value)
        logger.info(f"Parsed {len(items)} items from input")

    if not items:
        logger.warning("No items to process!")
    return items


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='anki-gen',
        description='Generate Anki flashcards using a local LLM (Ollama)'
    )
    parser.add_argument('--config', type=str, help='Path to YAML or JSON config file')
    parser.add_argument('--model', type=str, help='Ollama model name')
    parser.add_argument('--ollama-url', type=str, help='Ollama API URL')
    parser.add_argument('--anki-url', type=str, help='AnkiConnect URL')
    parser.add_argument('--deck', '-d', type=str, help='Anki deck name')
    parser.add_argument('--note-type', '-n', type=str, help='Anki note type')
    parser.add_argument('--fields', '-f', type=_comma_list, help='Card fields (comma-separated)')
    parser.add_argument('--optional-fields', action='store_true',
                        help='Only require some fields to have content')
    parser.add_argument('--storage-path', type=str, help='History file path')
    parser.add_argument('--log-file', type=str, help='Write a debug log to this file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('check', help='Check connectivity to Ollama and AnkiConnect')

    config_parser = subparsers.add_parser('config', help='Print an example config file')
    config_parser.add_argument('format', nargs='?', default='yaml', help="'yaml' or 'json'")

    generate_parser = subparsers.add_parser('generate', help='Generate a single card from a description')
    generate_parser.add_argument('description', help='Description of the card to generate')

    next_parser = subparsers.add_parser(
        'next', help='Generate the next card in a sequence (auto-skips already generated)'
    )
    next_parser.add_argument('description', help='Category/topic description (e.g. "JLPT N3 grammar points")')

    batch_parser = subparsers.add_parser('batch', help='Generate cards from a list (comma-separated or @filename)')
    batch_parser.add_argument('items', help='Comma-separated list of items, or @filename to read from file')

    return parser


def run_check(ollama: OllamaClient, anki: AnkiConnect) -> bool:
    ok = True

    print(f"Ollama ({ollama.model})... ", end='')
    try:
        models = ollama.list_models()
    except AnkiGenError as e:
        print(f"✗ FAIL ({e})")
        ok = False
    else:
        if any(name.startswith(ollama.model) for name in models):
            print("✓ OK (model found)")
        else:
            print(f"⚠ WARNING: connected but model '{ollama.model}' not found. "
                  f"Available: {', '.join(models)}")

    print("AnkiConnect... ", end='')
    try:
        version = anki.check_version()
    except AnkiGenError as e:
        print(f"✗ FAIL ({e})")
        ok = False
    else:
        print(f"✓ OK (version {version})")

    print("\nAll checks passed." if ok else "\nSome checks failed.")
    return ok


def resolve_fields(settings: dict, anki: AnkiConnect) -> List[str]:
    """Configured fields, or every field of the note type when none are set."""
    if settings['fields']:
        return list(settings['fields'])

    note_type = settings['note_type']
    logger.info(f"No fields specified, auto-detecting from note type '{note_type}'...")
    try:
        fields = anki.model_field_names(note_type)
    except AnkiGenError as e:
        raise AnkiGenError(
            f"Could not get fields for note type '{note_type}': {e}. "
            "Either specify --fields explicitly or ensure the note type exists in Anki"
        ) from e

    logger.info(f"Auto-detected {len(fields)} fields: {', '.join(fields)}")
    if settings['optional_fields']:
        logger.info("Using optional mode - model will fill only relevant fields")
    else:
        logger.info("Using strict mode - model must fill all fields (consider --optional-fields)")
    return fields


def run(args: argparse.Namespace) -> int:
    settings = merge_cli_overrides(load_settings(args.config), args)
    if settings['log_file']:
        setup_logging(args.verbose, settings['log_file'])

    if args.command == 'config':
        print(example_config(args.format))
        filename = 'config.json' if args.format.lower() == 'json' else 'config.yaml'
        print(f"# To use this config, save it to '{filename}'", file=sys.stderr)
        return 0

    ollama = OllamaClient(settings['ollama_url'], settings['model'], timeout=settings['timeout'])
    anki = AnkiConnect(settings['anki_url'], timeout=settings['anki_timeout'])

    if args.command == 'check':
        return 0 if run_check(ollama, anki) else 1

    deck = settings['deck']
    if not deck:
        print("Error: --deck is required for this command (set via CLI or config file)")
        return 1

    request = CardRequest(
        description=getattr(args, 'description', ''),
        fields=resolve_fields(settings, anki),
        note_type=settings['note_type'],
        deck=deck,
        mode=ValidationMode.from_flag(settings['optional_fields']),
    )
    generator = CardGenerator(ollama, anki, HistoryStore(settings['storage_path']))

    if args.command == 'generate':
        generator.generate(request)
    elif args.command == 'next':
        generator.next(request)
    elif args.command == 'batch':
        generator.batch(request, parse_items(args.items))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    try:
        return run(args)
    except AnkiGenError as e:
        print(f"Error: {e}")
        logger.debug("Command failed", exc_info=True)
        return 1


if __name__ == '__main__':
    raise SystemExit(main())
