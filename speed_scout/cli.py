# === FILE: speed_scout/cli.py ===
#!/usr/bin/env python3
"""
Точка входа SpeedScout для командной строки.

Команды:
  analyze   Проанализировать URL (mobile + desktop) и вывести/сохранить результаты
  share     Загрузить отчёты из JSON-экспорта и создать ссылку шаринга
  serve     Запустить HTTP-сервер анализа и шаринга
  config    Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: configs/default.yaml, если есть)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stderr, если не указан)
  --log-format FORMAT Формат логирования

Пример:
  speed-scout analyze https://example.com https://example.org --json report.json --pretty
"""
import asyncio
import json
import sys
from pathlib import Path

import click
from aiohttp import ClientSession, ClientTimeout

from speed_scout import __version__
from speed_scout.config import load_config
from speed_scout.engine import publish_share, results_of, start_analysis
from speed_scout.events import AuthAlert, BatchProgress, CallbackSink
from speed_scout.logger import DEFAULT_FORMAT, configure
from speed_scout.registry import PageRegistry
from speed_scout.server.app import run_server
from speed_scout.share_client import ShareClient

CONTEXT_SETTINGS = dict(help_option_names=["--help"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def _echo_event(event) -> None:
    if isinstance(event, BatchProgress):
        click.echo(
            f'[{event.completed + event.failed}/{event.total}] ok={event.completed} failed={event.failed}',
            err=True,
        )
    elif isinstance(event, AuthAlert):
        click.secho(f'API key rejected while analyzing {event.url}: {event.message}', fg='yellow', err=True)


async def _share(cfg, registry):
    async with ClientSession(timeout=ClientTimeout(total=cfg.timeout)) as session:
        return await publish_share(cfg, registry, ShareClient(session, cfg.workers_base))


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='SpeedScout, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option(
    '--log-level', 'log_level',
    default='WARNING', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stderr, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default=DEFAULT_FORMAT,
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """Группа команд SpeedScout CLI."""
    configure(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        cfg = load_config(config_path, required=False)
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('analyze', context_settings=CONTEXT_SETTINGS)
@click.argument('urls', nargs=-1, required=True)
@click.option('--api-key', 'api_key', default=None, help='Ключ PageSpeed API (Pro-режим)')
@click.option(
    '--json', '-j', 'json_output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Сохранить экспорт (urls + reports) в JSON-файл'
)
@click.option('--pretty', is_flag=True, help='Преформатировать JSON-вывод (отступ 2)')
@click.option('--share', 'share', is_flag=True, help='Создать ссылку шаринга после анализа')
@click.pass_context
def analyze(ctx, urls, api_key, json_output, pretty, share):
    """Проанализировать URL и вывести результаты."""
    cfg = ctx.obj['config']
    if api_key:
        cfg = cfg.model_copy(update={'api_key': api_key})
    sink = CallbackSink(_echo_event, BatchProgress, AuthAlert)
    try:
        registry = asyncio.run(start_analysis(cfg, urls, events=sink))
    except Exception as e:
        print_error(f'Ошибка при анализе: {e}')

    indent = 2 if pretty else None
    if json_output:
        try:
            json_output.parent.mkdir(parents=True, exist_ok=True)
            json_output.write_text(
                json.dumps(registry.export_data(), ensure_ascii=False, indent=indent), encoding='utf-8'
            )
            click.echo(f'JSON export: {json_output}')
        except OSError as e:
            print_error(f'Ошибка при сохранении JSON: {e}')
    else:
        click.echo(json.dumps(results_of(registry), ensure_ascii=False, indent=indent))

    if share:
        try:
            result = asyncio.run(_share(cfg, registry))
        except Exception as e:
            print_error(f'Ошибка при создании ссылки: {e}')
        click.echo(f'Share link: {result["shareUrl"]}')


@cli.command('share', context_settings=CONTEXT_SETTINGS)
@click.argument('export_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def share_export(ctx, export_file):
    """Загрузить отчёты из JSON-экспорта и создать ссылку шаринга."""
    cfg = ctx.obj['config']
    registry = PageRegistry()
    try:
        registry.import_data(json.loads(export_file.read_text(encoding='utf-8')))
    except ValueError as e:
        print_error(f'Некорректный файл экспорта: {e}')
    try:
        result = asyncio.run(_share(cfg, registry))
    except Exception as e:
        print_error(f'Ошибка при создании ссылки: {e}')
    click.echo(json.dumps(result, ensure_ascii=False))


@cli.command('serve', context_settings=CONTEXT_SETTINGS)
@click.option('--host', default=None, help='Адрес для прослушивания')
@click.option('--port', default=None, type=int, help='Порт')
@click.pass_context
def serve(ctx, host, port):
    """Запустить HTTP-сервер анализа и шаринга."""
    cfg = ctx.obj['config']
    run_server(cfg, host=host, port=port)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON (ключ API скрыт)."""
    cfg = ctx.obj['config']
    data = cfg.model_dump(mode='json')
    if data.get('api_key'):
        data['api_key'] = '***'
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
