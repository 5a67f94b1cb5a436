"""
Application entry point
Starts the Flask kiosk server
"""
import config
from kiosk import create_app, get_services

app = create_app()

if __name__ == '__main__':
    app.logger.info(f"Starting kiosk on {config.HOST}:{config.PORT}")
    app.logger.info(f"Debug mode: {config.FLASK_DEBUG}")

    try:
        app.run(
            host=config.HOST,
            port=config.PORT,
            debug=config.FLASK_DEBUG,
            threaded=True,
            use_reloader=False,
        )
    finally:
        # release the camera if a capture session is still open
        get_services(app).capture.cleanup()
