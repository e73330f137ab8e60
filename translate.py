"""
Command-line interface for batch chapter translation
"""
import os
import sys
import signal
import argparse
import asyncio

from lingua_scripter.config import (
    DEFAULT_MODEL, LLM_PROVIDER, DEFAULT_SOURCE_LANGUAGE, DEFAULT_TARGET_LANGUAGE,
    BATCH_SIZE, DATA_DIR, OPENAI_API_ENDPOINT, OPENROUTER_MODEL_PROVIDERS
)
from lingua_scripter.client import RemoteBatchProvider
from lingua_scripter.core.batch.models import BatchRequest, BatchState, ChapterStatus, GenerationSettings
from lingua_scripter.core.batch.orchestrator import BatchOrchestrator
from lingua_scripter.core.characters import CharacterExtractor
from lingua_scripter.core.context_filter import resolve_for_chapters
from lingua_scripter.core.llm.factory import SUPPORTED_PROVIDERS, API_KEY_FIELDS
from lingua_scripter.persistence import JsonProjectStore, chapter_inputs
from lingua_scripter.utils.unified_logger import setup_cli_logger, LogType


async def import_chapters(store, project_id, paths):
    """Add text files to a project as chapters, in the order given"""
    chapters = []
    for path in paths:
        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()
        chapters.append({
            'title': os.path.splitext(os.path.basename(path))[0],
            'originalText': text
        })
    return await store.add_chapters(project_id, chapters)


async def translate_project(store, args, logger):
    """Run one batch over the project's untranslated (or selected) chapters"""
    if args.chapter_ids:
        wanted = set(args.chapter_ids)
        records = [c for c in await store.get_chapters(args.project) if c['id'] in wanted]
    else:
        records = await store.untranslated_chapters(args.project, args.batch_size)

    if not records:
        logger.info(f"Nothing to translate in project '{args.project}'")
        return None

    settings = GenerationSettings(
        provider=args.provider,
        model=args.model,
        temperature=args.temperature,
        target_language=args.target_lang,
        source_language=args.source_lang,
        api_key=args.api_key or os.getenv(API_KEY_FIELDS[args.provider][1], ''),
        endpoint=args.api_endpoint,
        route_providers=args.openrouter_providers,
        auto_detect_characters=not args.no_characters
    )

    chapters = chapter_inputs(records)
    glossary, characters = resolve_for_chapters(
        chapters,
        await store.get_glossary(args.project),
        await store.get_characters(args.project),
        settings.source_language
    )
    request = BatchRequest(chapters=chapters, glossary=glossary, characters=characters, settings=settings)

    async def add_characters(found):
        return await store.add_characters(args.project, found)

    orchestrator = BatchOrchestrator(
        persist_chapter=store.persist_chapter_translation,
        add_characters=add_characters
    )
    if args.server:
        orchestrator.provider_factory = lambda s: RemoteBatchProvider(
            args.server, request.chapters, request.glossary, request.characters, settings=s
        )
        logger.info(f"Streaming through translation server {args.server}")
    else:
        orchestrator.extract_characters = CharacterExtractor.from_settings(settings)

    orchestrator.subscribe(_console_progress(len(request.chapters)))

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
    except NotImplementedError:
        # Windows: KeyboardInterrupt cancels the run task instead
        pass

    try:
        await orchestrator.start_batch(request)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass

    return orchestrator


def _console_progress(total):
    """Progress callback rewriting one console line while a chapter streams"""
    completed = 0

    def show(update):
        nonlocal completed
        if update.completed_count is not None:
            completed = update.completed_count
        if update.status == ChapterStatus.TRANSLATING:
            size = len(update.streaming_text or '')
            sys.stdout.write(f"\r  [{completed}/{total}] {update.chapter_id}: {size} chars")
            sys.stdout.flush()
        else:
            sys.stdout.write("\r\033[K")
            sys.stdout.flush()

    return show


def _print_summary(orchestrator, logger):
    progress = orchestrator.progress
    for chapter_id in progress.chapter_ids:
        status = progress.statuses[chapter_id].value
        warning = progress.warnings.get(chapter_id)
        print(f"  {chapter_id}: {status}" + (f" ({warning})" if warning else ""))
    if orchestrator.state == BatchState.CANCELLED:
        logger.warning(f"Cancelled: {progress.completed_count}/{progress.total} chapters were saved")
    if progress.characters_found:
        logger.info(f"{progress.characters_found} new character(s) added to the project")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Translate novel chapters in batches using an LLM.")
    parser.add_argument("--data-dir", default=DATA_DIR, help=f"Project data directory (default: {DATA_DIR}).")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Add chapter text files to a project.")
    import_parser.add_argument("-p", "--project", required=True, help="Project identifier.")
    import_parser.add_argument("files", nargs="+", help="Chapter text files, in chapter order.")

    translate_parser = subparsers.add_parser("translate", help="Translate the next batch of chapters.")
    translate_parser.add_argument("-p", "--project", required=True, help="Project identifier.")
    translate_parser.add_argument("-c", "--chapter", dest="chapter_ids", action="append", default=None,
                                  help="Chapter id to translate (repeatable). Default: next untranslated chapters.")
    translate_parser.add_argument("-n", "--batch-size", type=int, default=BATCH_SIZE,
                                  help=f"Maximum chapters per batch (default: {BATCH_SIZE}).")
    translate_parser.add_argument("-sl", "--source_lang", default=DEFAULT_SOURCE_LANGUAGE,
                                  help=f"Source language (default: {DEFAULT_SOURCE_LANGUAGE}).")
    translate_parser.add_argument("-tl", "--target_lang", default=DEFAULT_TARGET_LANGUAGE,
                                  help=f"Target language (default: {DEFAULT_TARGET_LANGUAGE}).")
    translate_parser.add_argument("-m", "--model", default=DEFAULT_MODEL, help=f"LLM model (default: {DEFAULT_MODEL}).")
    translate_parser.add_argument("--provider", default=LLM_PROVIDER, choices=list(SUPPORTED_PROVIDERS),
                                  help=f"LLM provider to use (default: {LLM_PROVIDER}).")
    translate_parser.add_argument("--api_key", default=None,
                                  help="API key for the provider (default: from the environment).")
    translate_parser.add_argument("--api_endpoint", default=OPENAI_API_ENDPOINT or None,
                                  help="Base URL of an OpenAI-compatible server (openai provider).")
    translate_parser.add_argument("--openrouter_providers", default=OPENROUTER_MODEL_PROVIDERS or None,
                                  help="Comma-separated OpenRouter upstream providers.")
    translate_parser.add_argument("-t", "--temperature", type=float, default=None,
                                  help="Sampling temperature (default: provider default).")
    translate_parser.add_argument("--no-characters", action="store_true",
                                  help="Skip character detection after the batch.")
    translate_parser.add_argument("--server", default=None,
                                  help="URL of a running translation server to stream through.")

    args = parser.parse_args()

    logger = setup_cli_logger(enable_colors=not args.no_color)
    store = JsonProjectStore(args.data_dir)

    if args.command == "import":
        try:
            added = asyncio.run(import_chapters(store, args.project, args.files))
        except OSError as e:
            logger.error(f"Import failed: {e}", LogType.ERROR_DETAIL, {'details': str(e)})
            sys.exit(1)
        for record in added:
            print(f"  {record['id']}  #{record['chapterNumber']}  {record['title']}")
        logger.info(f"Imported {len(added)} chapter(s) into project '{args.project}'")
        sys.exit(0)

    if args.provider == "openai" and not args.api_endpoint and not args.server:
        parser.error("--api_endpoint is required when using the openai provider")

    try:
        orchestrator = asyncio.run(translate_project(store, args, logger))
    except KeyboardInterrupt:
        logger.warning("Interrupted, chapters completed so far were saved")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Translation failed: {str(e)}", LogType.ERROR_DETAIL, {
            'details': str(e),
            'project': args.project
        })
        sys.exit(1)

    if orchestrator is not None:
        _print_summary(orchestrator, logger)
        if orchestrator.state == BatchState.ERROR:
            sys.exit(1)
