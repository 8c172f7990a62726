"""
Entry point for running the CBT Mood Tracker Flask application.

This module imports the application factory and starts the development
server when executed directly. In production a WSGI server like
gunicorn should import ``app`` from ``wsgi`` and serve it instead.
"""

from dotenv import load_dotenv

from cbt_tracker import create_app, db
from cbt_tracker.services.exercise_service import seed_catalog

load_dotenv()

app = create_app()

if __name__ == "__main__":
    # Only create the database tables automatically in local
    # development. Production deployments run migrations and
    # ``flask seed-catalog`` separately.
    with app.app_context():
        db.create_all()
        seed_catalog()
    app.run(host="0.0.0.0", port=5000, debug=True)
