"""
SnapNotes Application Factory
"""
import logging
from datetime import datetime, timezone

from flask import Flask, jsonify

from config import config
from snapnotes.services.ai_service import provider_name, provider_ready
from snapnotes.services.ocr_service import (
    RecognitionPipeline,
    TesseractEngine,
    configure_tesseract,
    ocr_ready,
)


def create_app(config_name='default'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    app.logger.setLevel(level)
    logging.getLogger('snapnotes').setLevel(level)

    configure_tesseract(app.config.get('TESSERACT_CMD', ''))
    app.extensions['ocr_pipeline'] = RecognitionPipeline(
        TesseractEngine(), default_language=app.config['OCR_LANGUAGE']
    )

    # Register blueprints
    from snapnotes.api import api_bp

    app.register_blueprint(api_bp)  # No prefix - clients post to /ai-study-tools directly

    # Health check endpoint
    @app.route('/healthz')
    def healthz():
        """Health check for load balancers and monitoring"""
        ocr_ok, ocr_msg = ocr_ready()
        gen_ok, gen_msg = provider_ready(app.config)
        return jsonify({
            "status": "ok" if ocr_ok and gen_ok else "degraded",
            "version": app.config['APP_VERSION'],
            "ocr_ready": ocr_ok,
            "ocr_message": ocr_msg,
            "provider": provider_name(app.config),
            "provider_ready": gen_ok,
            "provider_message": gen_msg,
            "timestamp": datetime.now(timezone.utc).isoformat()
        })

    # Version endpoint
    @app.route('/version')
    def version():
        """Version and build info"""
        return jsonify({
            "version": app.config['APP_VERSION'],
            "build_time": app.config['BUILD_TIME'],
            "git_commit": app.config['GIT_COMMIT'],
            "features": {
                "ocr": True,
                "study_tools": ["qa", "lesson", "flashcards", "summarize", "quiz"],
                "txt_export": True,
                "pdf_export": True,
            }
        })

    app.logger.info('SnapNotes %s started (%s)', app.config['APP_VERSION'], config_name)
    return app
