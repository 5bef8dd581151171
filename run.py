import os
import sys
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from config import Config
from app import create_app, seed_essential_data
from models import db


def configure_logging():
    """Rotating file log plus console, level from LOGLEVEL."""
    log_dir = Config.LOG_DIR
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"WARNING: Could not create log directory {log_dir}: {e}")
        import tempfile
        log_dir = Path(tempfile.gettempdir())

    logfile = log_dir / Config.LOG_FILE.name

    file_handler = RotatingFileHandler(
        logfile,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)

    logging.basicConfig(
        level=os.environ.get('LOGLEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        handlers=[file_handler, console_handler]
    )
    return logfile


def initialize_database(app):
    """Create missing tables, then seed units and the built-in accounts."""
    with app.app_context():
        try:
            db.create_all()
            logging.info("Database tables ready")
        except Exception as e:
            logging.exception(f"Error initializing database: {e}")
            raise
    seed_essential_data(app)


if __name__ == '__main__':
    logfile = configure_logging()
    logging.info(f"Logging to: {logfile}")
    logging.info(f"Running from: {Config.BASE_DIR}")

    app = create_app()

    logging.info("Checking database initialization...")
    try:
        initialize_database(app)
    except Exception as e:
        logging.error(f"Failed to initialize database: {e}")
        logging.error("Please check your database configuration in app_config.ini")
        sys.exit(1)

    host_bind = os.environ.get('FLASK_HOST', '0.0.0.0')
    port = int(os.environ.get('FLASK_PORT', '5000'))
    debug = app.config.get('DEBUG', False)

    use_waitress = os.environ.get('USE_WAITRESS', '1') not in ('0', 'false', 'False')
    if use_waitress:
        from waitress import serve
        threads = int(os.environ.get('WAITRESS_THREADS', '8'))
        logging.info(f"Starting EMS API on {host_bind}:{port} (Waitress, threads={threads})")
        serve(app, host=host_bind, port=port, threads=threads)
    else:
        # Dev-only fallback
        logging.info(f"Starting EMS API on {host_bind}:{port} (Flask dev server)")
        app.run(host=host_bind, port=port, debug=debug, use_reloader=False)
