"""Point the app at a throwaway in-memory SQLite database before it is imported."""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_JSON", "false")
