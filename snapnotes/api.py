"""
API Blueprint

- /ai-study-tools: generation service (QA, lesson, flashcards, summary, quiz)
- /recognize: upload + rotate/scale + OCR in one request
- /export_txt, /export_pdf: downloads of the extracted text
"""
import io

from flask import Blueprint, current_app, jsonify, request, send_file

from snapnotes.errors import InvalidInputError, RecognitionFailure, StudyToolError
from snapnotes.services.adjust_service import ImageAdjuster
from snapnotes.services.ai_service import run_study_tool
from snapnotes.services.capture_service import ImageSource
from snapnotes.services.export_service import export_filename, to_paginated_document, to_plain_text

api_bp = Blueprint('api', __name__)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'authorization, x-client-info, apikey, content-type',
}


@api_bp.after_request
def add_cors_headers(response):
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response


@api_bp.route("/ai-study-tools", methods=["POST", "OPTIONS"])
def ai_study_tools():
    if request.method == "OPTIONS":
        return current_app.response_class(status=200)

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 500

    text = payload.get("text") or ""
    action = payload.get("action") or ""
    question = payload.get("question")
    try:
        result = run_study_tool(text, action, question, current_app.config)
    except StudyToolError as e:
        current_app.logger.error("Error in ai-study-tools: %s", e.message)
        return jsonify({"error": e.message}), 500
    return jsonify({"result": result}), 200


def _adjuster_from_form(captured) -> ImageAdjuster:
    rotation = int(request.form.get("rotation") or 0)
    scale = float(request.form.get("scale") or 1.0)
    if rotation % 90 != 0:
        raise ValueError("rotation must be a multiple of 90")
    adjuster = ImageAdjuster()
    adjuster.load(captured)
    for _ in range((rotation % 360) // 90):
        adjuster.rotate()
    adjuster.set_scale(scale)
    return adjuster


@api_bp.post("/recognize")
async def recognize():
    file = request.files.get("file") or request.files.get("image")
    if not file:
        return jsonify({"ok": False, "error": "No file uploaded"}), 400

    try:
        captured = ImageSource().capture_from_file(file.read(), file.mimetype, file.filename or "")
        adjuster = _adjuster_from_form(captured)
    except InvalidInputError as e:
        return jsonify({"ok": False, "error": e.message}), 400
    except ValueError as e:
        return jsonify({"ok": False, "error": f"Invalid adjustment: {e}"}), 400

    pipeline = current_app.extensions['ocr_pipeline']
    language = (request.form.get("language") or "").strip() or None
    try:
        text = await pipeline.recognize(adjuster.finalize(), language)
    except RecognitionFailure as e:
        return jsonify({"ok": False, "error": e.message}), 422
    finally:
        adjuster.cancel()

    return jsonify({"ok": True, "text": text}), 200


def _export_payload_text() -> str:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return ""
    text = payload.get("text")
    return text if isinstance(text, str) else ""


@api_bp.post("/export_txt")
def export_txt():
    text_in = _export_payload_text()
    if not text_in.strip():
        return jsonify({"error": "No content"}), 400
    filename = export_filename("txt", current_app.config['EXPORT_PREFIX'])
    return send_file(io.BytesIO(to_plain_text(text_in)), as_attachment=True,
                     download_name=filename, mimetype="text/plain")


@api_bp.post("/export_pdf")
def export_pdf():
    text_in = _export_payload_text()
    if not text_in.strip():
        return jsonify({"error": "No content"}), 400
    filename = export_filename("pdf", current_app.config['EXPORT_PREFIX'])
    try:
        data = to_paginated_document(text_in, title=filename)
    except Exception as e:
        current_app.logger.exception("PDF export failed")
        return jsonify({"error": f"PDF export failed: {type(e).__name__}: {str(e)}"}), 500
    return send_file(io.BytesIO(data), as_attachment=True, download_name=filename, mimetype="application/pdf")
