from habit_config import Settings, setup_logging
from web_app import create_app


def main():
    settings = Settings.from_env()
    logger = setup_logging(settings.log_level)
    app = create_app(settings)
    logger.info("Habit tracker on http://%s:%s (storage: %s)", settings.host, settings.port, settings.storage_backend)
    # Flask runs on localhost:5000 by default
    app.run(host=settings.host, port=settings.port, debug=settings.debug)


if __name__ == "__main__":
    main()
