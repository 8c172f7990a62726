# wsgi.py (at repo root)
from dotenv import load_dotenv

from cbt_tracker import create_app

load_dotenv()

app = create_app()
