import os
import logging
import azure.functions as func

from src.function_blueprints.http_submit_candidate import bp as submit_candidate_bp

app = func.FunctionApp(http_auth_level=func.AuthLevel.ANONYMOUS)


def _configure_logging() -> None:
    lvl = (os.getenv("AZURE_SDK_LOG_LEVEL") or "").upper()
    if lvl:
        level = getattr(logging, lvl, logging.INFO)
        logging.getLogger("azure").setLevel(level)
        logging.getLogger("azure.storage.blob").setLevel(level)
    logging.getLogger("candidateform").setLevel(logging.INFO)


_configure_logging()

app.register_functions(submit_candidate_bp)
