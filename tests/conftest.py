"""
Root-level conftest for all tests.

Modules such as prospector.server.main build the application at import
time, which reads settings. Provide harmless defaults so collection works
without a .env file.
"""
import os

os.environ.setdefault("POSTGRES_USER", "unit_test_user")
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_PASSWORD", "unit_test_password")
os.environ.setdefault("POSTGRES_PORT", "5432")
os.environ.setdefault("POSTGRES_DB", "unit_test_db")
os.environ.setdefault("REDIS_HOST", "localhost")
os.environ.setdefault("REDIS_PORT", "6379")
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("JSON_LOGS", "false")
