"""
SnapNotes WSGI entrypoint.

    gunicorn app:app
    flask --app app run
"""
import os

from snapnotes import create_app

app = create_app(os.getenv("FLASK_ENV", "default"))

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")))
