from featurelab_web.app_factory import create_app

if __name__ == "__main__":
    app = create_app()
    app.run(host=app.config["HOST"], port=app.config["PORT"], debug=app.config["DEBUG"])

# Layout
#
# featurelab.ini                   # APP_INI overrides the location
# featurelab_web/
#   __main__.py                    # python -m featurelab_web
#   app_factory.py                 # composition root (wiring)
#   logging_setup.py               # setup_logging + key=value formatter
#
#   config/
#     ini_config.py                # load INI -> AppSettings
#
#   domain/
#     models.py                    # records, APIResult, HistoryEntry, AppSessionSnapshot, AutoGenerateSignal
#     errors.py                    # TransportError, HTTPError, ValidationError, StorageError, NotLoadedError
#
#   services/
#     request_orchestrator.py      # one logical request, fixed-delay retry, never raises
#     inference_client.py          # endpoint bindings on top of the orchestrator
#     response_normalization.py    # ResponseNormalizer strategy + coercion helpers
#     analysis_normalizer.py
#     critique_normalizer.py
#     assessment_normalizer.py
#     solution_normalizer.py       # alias table for pros/key_benefits etc.
#     pipeline_coordinator.py      # analysis + UI workflows, re-entrancy guard, auto-generate hand-off
#
#   repositories/
#     history_store.py             # capped run log
#     session_cache.py             # resumable snapshot with TTL
#
#   adapters/
#     storage.py                   # KeyValueStorage port, JSON file + in-memory backends
#     sqlserver_storage.py         # pyodbc backend
#
#   web/
#     routes.py                    # JSON blueprint, no business logic
#
#   tests/
