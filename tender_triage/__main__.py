"""
CLI триажа AO.

Примеры использования:
  python -m tender_triage records.jsonl
  python -m tender_triage records.json --stored stored.json --format json
  python -m tender_triage records.json --database-url sqlite+aiosqlite:///triage.db
"""

import sys
import json
import asyncio
import argparse
from pathlib import Path
from typing import Any, List, Optional

import colorama
from colorama import Fore, Style
from pydantic import ValidationError

from tender_triage.config import load_settings
from tender_triage.database import MemoryRecordStore, SqlAlchemyRecordStore, get_store
from tender_triage.errors import TriageError
from tender_triage.logger import setup_logging
from tender_triage.models import CanonicalRecord, DedupAction
from tender_triage.service import TriageOutcome, TriageService

ACTION_COLORS = {
    DedupAction.CREATE: Fore.GREEN,
    DedupAction.SKIP: Fore.WHITE,
    DedupAction.CANCEL: Fore.RED,
    DedupAction.RECTIFY: Fore.YELLOW,
}


def read_records(path: Path) -> List[CanonicalRecord]:
    """JSON (объект или список) или JSON lines."""
    text = path.read_text(encoding='utf-8')

    items: List[Any]
    try:
        data = json.loads(text)
        items = data if isinstance(data, list) else [data]
    except ValueError:
        items = [json.loads(line) for line in text.splitlines() if line.strip()]

    return [CanonicalRecord.model_validate(item) for item in items]


def format_table(outcomes: List[TriageOutcome]) -> str:
    lines = [
        f"{'SOURCE':<28} {'ACTION':<8} {'SCORE':>5} {'CONF':<6} {'PRIO':<6} ANALYSE  TITRE",
        '-' * 100,
    ]
    for outcome in outcomes:
        action = outcome.action
        action_text = action.value if action else 'N/A'
        color = ACTION_COLORS.get(action, Fore.MAGENTA)

        score = outcome.score.score if outcome.score else outcome.carried_score
        score_text = f"{score:.0f}" if score is not None else '-'
        confidence = outcome.score.confidence.value if outcome.score else '-'
        priority = outcome.verdict.priority.value if outcome.verdict else '-'
        analyse = 'oui' if outcome.needs_analysis else 'non'
        source = f"{outcome.source}:{outcome.source_id or '?'}"

        lines.append(
            f"{source[:28]:<28} {color}{action_text:<8}{Style.RESET_ALL} {score_text:>5} "
            f"{confidence:<6} {priority:<6} {analyse:<8} {outcome.title[:40]}"
        )
        if outcome.verdict and outcome.verdict.skip and outcome.verdict.reason:
            lines.append(f"{'':<28} {Fore.CYAN}↳ {outcome.verdict.reason}{Style.RESET_ALL}")
    return '\n'.join(lines)


async def run(args: argparse.Namespace) -> int:
    settings = load_settings(Path(args.config) if args.config else None)
    if args.allow_empty:
        settings.dedup.allow_empty_index = True
    if args.degrade:
        settings.dedup.on_unavailable = 'degrade'

    try:
        records = read_records(Path(args.input))
    except (OSError, ValueError, ValidationError) as e:
        print(f"{Fore.RED}❌ Некорректный входной файл {args.input}: {e}{Style.RESET_ALL}", file=sys.stderr)
        return 2

    sql_store: Optional[SqlAlchemyRecordStore] = None
    if args.database_url:
        sql_store = get_store(args.database_url)
        store = sql_store
    elif args.stored:
        store = MemoryRecordStore.from_json_file(args.stored)
    else:
        # Без хранилища - только скоринг
        store = None
        settings.dedup.on_unavailable = 'degrade'

    try:
        service = TriageService(store=store, settings=settings)
        await service.prepare()
        outcomes = await service.triage_batch(records)
    finally:
        if sql_store is not None:
            await sql_store.close()

    if args.format == 'json':
        payload = [outcome.model_dump(mode='json') for outcome in outcomes]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print(format_table(outcomes))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='python -m tender_triage',
        description='Триаж AO: дедупликация, ректификаты, keyword-скоринг',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument('input', help='JSON / JSON lines файл с каноническими AO')
    parser.add_argument('--stored', help='JSON-выгрузка ранее сохранённых AO')
    parser.add_argument('--database-url', help='URL базы (например sqlite+aiosqlite:///triage.db)')
    parser.add_argument('--config', help='Путь к triage.yaml (по умолчанию TRIAGE_CONFIG)')
    parser.add_argument('--format', choices=('table', 'json'), default='table', help='Формат вывода')
    parser.add_argument(
        '--allow-empty',
        action='store_true',
        help='Разрешить пустой индекс (первый запуск на пустой базе)'
    )
    parser.add_argument(
        '--degrade',
        action='store_true',
        help='Продолжить без дедупликации, если индекс недоступен'
    )
    parser.add_argument('--log-level', default='WARNING', help='DEBUG, INFO, WARNING, ERROR')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    colorama.init()
    setup_logging(level=args.log_level, use_json=False, stream=sys.stderr)

    try:
        return asyncio.run(run(args))
    except TriageError as e:
        print(f"{Fore.RED}❌ {e}{Style.RESET_ALL}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
