from __future__ import annotations

from typing import Optional

import requests
from flask import Flask

from featurelab_web.adapters.sqlserver_storage import SqlServerStorage
from featurelab_web.adapters.storage import InMemoryStorage, JsonFileStorage, KeyValueStorage
from featurelab_web.config.ini_config import AppSettings, IniConfig
from featurelab_web.logging_setup import setup_logging
from featurelab_web.repositories.history_store import HistoryStore
from featurelab_web.repositories.session_cache import SessionCache
from featurelab_web.services.analysis_normalizer import AnalysisNormalizer
from featurelab_web.services.assessment_normalizer import AssessmentNormalizer
from featurelab_web.services.critique_normalizer import CritiqueNormalizer
from featurelab_web.services.inference_client import InferenceApiClient
from featurelab_web.services.pipeline_coordinator import PipelineCoordinator
from featurelab_web.services.request_orchestrator import RequestOrchestrator
from featurelab_web.services.solution_normalizer import SolutionNormalizer
from featurelab_web.web.routes import create_blueprint


def build_storage(settings: AppSettings, ini: Optional[IniConfig] = None) -> KeyValueStorage:
    if settings.storage_backend == "memory":
        return InMemoryStorage()
    if settings.storage_backend == "sqlserver":
        if ini is None:
            raise ValueError("storage.backend = sqlserver needs the INI file for its [sqlserver] section")
        return SqlServerStorage(ini_path=str(ini.ini_path), table_name=settings.sqlserver_table)
    return JsonFileStorage(settings.storage_dir)


def build_coordinator(
    settings: AppSettings,
    *,
    storage: KeyValueStorage,
    http_session: Optional[requests.Session] = None,
) -> PipelineCoordinator:
    orchestrator = RequestOrchestrator(
        settings.api_base_url,
        session=http_session,
        timeout_seconds=settings.timeout_seconds,
        max_retries=settings.max_retries,
        retry_delay_seconds=settings.retry_delay_seconds,
    )

    return PipelineCoordinator(
        client=InferenceApiClient(orchestrator),
        analysis=AnalysisNormalizer(),
        solution=SolutionNormalizer(),
        critique=CritiqueNormalizer(),
        assessment=AssessmentNormalizer(),
        history=HistoryStore(storage, max_entries=settings.history_max_entries),
        session=SessionCache(storage, ttl_hours=settings.session_ttl_hours),
        analysis_context=settings.analysis_context,
        ui_context=settings.ui_context,
        auto_generate_window_seconds=settings.auto_generate_window_seconds,
    )


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    storage: Optional[KeyValueStorage] = None,
    http_session: Optional[requests.Session] = None,
) -> Flask:
    ini = None
    if settings is None:
        ini = IniConfig.from_env_or_default()
        settings = ini.load_settings()

    setup_logging(settings.log_level)

    if storage is None:
        storage = build_storage(settings, ini)

    coordinator = build_coordinator(settings, storage=storage, http_session=http_session)

    app = Flask(__name__)
    app.register_blueprint(create_blueprint(coordinator))
    app.extensions["featurelab.coordinator"] = coordinator

    app.config["HOST"] = settings.flask_host
    app.config["PORT"] = settings.flask_port
    app.config["DEBUG"] = settings.flask_debug

    return app
