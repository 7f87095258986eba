from __future__ import annotations

from dotenv import load_dotenv

# Credentials and DATABASE_URL may live in a local .env during development.
load_dotenv()
