import os
import logging
import azure.functions as func
import azure.durable_functions as df

from iklankilat.function_blueprints.durable_video import bp as durable_video_bp
from iklankilat.function_blueprints.http_auth import bp as auth_bp
from iklankilat.function_blueprints.http_check_task_status import bp as task_status_bp
from iklankilat.function_blueprints.http_editor import bp as editor_bp
from iklankilat.function_blueprints.http_projects import bp as projects_bp
from iklankilat.function_blueprints.http_schedule import bp as schedule_bp
from iklankilat.function_blueprints.http_upload import bp as upload_bp

# Use DFApp as the root app so Durable triggers/activities are correctly registered
app = df.DFApp(http_auth_level=func.AuthLevel.ANONYMOUS)


def _configure_logging() -> None:
    lvl = (os.getenv("AZURE_SDK_LOG_LEVEL") or "").upper()
    if lvl:
        level = getattr(logging, lvl, logging.INFO)
        logging.getLogger("azure").setLevel(level)
        logging.getLogger("azure.cosmos").setLevel(level)
    app_level = (os.getenv("LOG_LEVEL") or "INFO").upper()
    logging.getLogger("iklankilat").setLevel(getattr(logging, app_level, logging.INFO))


_configure_logging()

for blueprint in (
    auth_bp,
    upload_bp,
    editor_bp,
    durable_video_bp,
    projects_bp,
    schedule_bp,
    task_status_bp,
):
    app.register_functions(blueprint)
