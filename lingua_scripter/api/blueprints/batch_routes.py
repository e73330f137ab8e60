"""
Batch translation routes
"""
import os
import time
import asyncio
import logging
from flask import Blueprint, Response, request, jsonify

from lingua_scripter.config import BATCH_SIZE, DEFAULT_SYSTEM_INSTRUCTION, DEFAULT_MODEL, LLM_PROVIDER
from lingua_scripter.core.batch.models import (
    BatchRequest, ChapterInput, CharacterEntry, GenerationSettings, GlossaryEntry
)
from lingua_scripter.core.batch.prompts import build_batch_prompts
from lingua_scripter.core.context_filter import resolve_for_chapters
from lingua_scripter.core.llm.factory import create_provider_from_settings, SUPPORTED_PROVIDERS, API_KEY_FIELDS
from lingua_scripter.persistence.json_store import chapter_inputs
from ..streaming import stream_provider_body

logger = logging.getLogger('batch_routes')


def _resolve_api_key(value, env_var_name):
    """
    Resolve API key value from request or environment.

    Args:
        value: Value from request (can be actual key, '__USE_ENV__', or empty)
        env_var_name: Name of environment variable to fall back to

    Returns:
        Resolved API key string
    """
    if value == '__USE_ENV__' or not value:
        return os.getenv(env_var_name, '')
    return value


def settings_from_request(data):
    """Build GenerationSettings from the flat settings fields of a request body"""
    provider = (data.get('provider') or LLM_PROVIDER).lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Invalid provider: {provider}")

    key_field, env_var = API_KEY_FIELDS[provider]
    temperature = data.get('temperature')

    settings = GenerationSettings(
        provider=provider,
        model=data.get('model') or DEFAULT_MODEL,
        temperature=float(temperature) if temperature is not None else None,
        api_key=_resolve_api_key(data.get(key_field), env_var),
        endpoint=data.get('openaiEndpoint') or None,
        route_providers=data.get('openRouterModelProviders'),
        system_instruction=data.get('systemInstruction') or DEFAULT_SYSTEM_INSTRUCTION
    )
    if data.get('targetLanguage'):
        settings.target_language = data['targetLanguage']
    if data.get('sourceLanguage'):
        settings.source_language = data['sourceLanguage']
    if 'isAutoCharacterDetectionEnabled' in data:
        settings.auto_detect_characters = bool(data['isAutoCharacterDetectionEnabled'])
    return settings


def _public_config(settings, project_id, chapter_ids):
    """Job configuration without credentials"""
    return {
        'project_id': project_id,
        'chapter_ids': chapter_ids,
        'provider': settings.provider,
        'model': settings.model,
        'target_language': settings.target_language,
        'source_language': settings.source_language,
        'auto_detect_characters': settings.auto_detect_characters
    }


def create_batch_blueprint(state_manager, store, start_batch_job,
                           provider_factory=create_provider_from_settings):
    """
    Create and configure the batch blueprint

    Args:
        state_manager: Batch state manager instance
        store: Project store (chapters, glossary, characters)
        start_batch_job: Function starting a batch job, ``(batch_id, job)``
        provider_factory: Builds a provider from GenerationSettings
    """
    bp = Blueprint('batch', __name__)

    @bp.route('/api/translate-batch-stream', methods=['POST'])
    def translate_batch_stream():
        """Stream the raw model output for a marked multi-chapter prompt"""
        data = request.get_json(silent=True) or {}
        chapters = data.get('chapters')
        if not chapters or not isinstance(chapters, list):
            return jsonify({"error": "chapters array is required"}), 400

        try:
            settings = settings_from_request(data)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        batch = BatchRequest(
            chapters=[ChapterInput.from_dict(chapter) for chapter in chapters],
            glossary=[GlossaryEntry.from_dict(entry) for entry in data.get('glossary') or []],
            characters=[CharacterEntry.from_dict(entry) for entry in data.get('mentionedCharacters') or []],
            settings=settings
        )
        system_prompt, user_prompt = build_batch_prompts(batch)
        logger.info(f"[Batch Stream] Starting streaming translation of {len(batch)} chapters "
                    f"({settings.provider}, {settings.model})")

        body = stream_provider_body(
            lambda: provider_factory(settings),
            system_prompt,
            user_prompt,
            temperature=settings.temperature
        )
        return Response(body, content_type='text/plain; charset=utf-8')

    @bp.route('/api/batch', methods=['POST'])
    def start_batch_request():
        """Start a batch job over stored chapters of a project"""
        data = request.get_json(silent=True) or {}
        project_id = data.get('projectId')
        if not project_id:
            return jsonify({"error": "Missing or empty field: projectId"}), 400

        try:
            settings = settings_from_request(data)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        if state_manager.is_project_busy(project_id):
            return jsonify({"error": "A batch translation is already running for this project"}), 409

        chapter_ids = data.get('chapterIds')
        batch_size = int(data.get('batchSize') or BATCH_SIZE)

        async def load():
            if chapter_ids:
                records = [c for c in await store.get_chapters(project_id) if c['id'] in set(chapter_ids)]
            else:
                records = await store.untranslated_chapters(project_id, batch_size)
            return records, await store.get_glossary(project_id), await store.get_characters(project_id)

        records, glossary, characters = asyncio.run(load())
        if not records:
            return jsonify({"error": "No chapters to translate"}), 400

        chapters = chapter_inputs(records)
        active_glossary, active_characters = resolve_for_chapters(
            chapters, glossary, characters, settings.source_language
        )
        batch = BatchRequest(chapters=chapters, glossary=active_glossary,
                             characters=active_characters, settings=settings)

        batch_id = f"batch_{int(time.time() * 1000)}"
        ids = [chapter.chapter_id for chapter in chapters]
        if not state_manager.create_batch(batch_id, project_id, ids, _public_config(settings, project_id, ids)):
            return jsonify({"error": "A batch translation is already running for this project"}), 409

        start_batch_job(batch_id, {'project_id': project_id, 'request': batch})

        return jsonify({
            "batch_id": batch_id,
            "message": "Batch queued.",
            "chapter_ids": ids,
            "glossary_terms": len(active_glossary),
            "characters": len(active_characters)
        })

    @bp.route('/api/batch/<batch_id>', methods=['GET'])
    def get_batch_status(batch_id):
        """Get status and progress of a batch job"""
        batch = state_manager.get_batch(batch_id)
        if not batch:
            return jsonify({"error": "Batch not found"}), 404

        stats = batch.get('stats', {})
        end_time = stats.get('end_time') or time.time()
        return jsonify({
            "batch_id": batch_id,
            "project_id": batch.get('project_id'),
            "status": batch.get('status'),
            "progress": batch.get('progress'),
            "stats": {
                'start_time': stats.get('start_time'),
                'elapsed_time': end_time - stats.get('start_time', end_time)
            },
            "logs": batch.get('logs', [])[-100:],
            "error": batch.get('error'),
            "config": batch.get('config')
        })

    @bp.route('/api/batch/<batch_id>/cancel', methods=['POST'])
    def cancel_batch_job(batch_id):
        """Cancel a queued or running batch job"""
        if not state_manager.exists(batch_id):
            return jsonify({"error": "Batch not found"}), 404

        if state_manager.request_cancel(batch_id):
            return jsonify({
                "message": "Cancellation signal sent. Chapters already translated are kept."
            }), 200

        return jsonify({
            "message": "The batch is not running (already completed, cancelled or failed)."
        }), 400

    @bp.route('/api/batches', methods=['GET'])
    def list_batches():
        """List all batch jobs"""
        return jsonify({"batches": state_manager.get_batch_summaries()})

    return bp
