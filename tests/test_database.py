from app.core.database import sync_database_url


class TestSyncDatabaseUrl:
    """Migrations run on the synchronous driver matching the app's async one."""

    def test_asyncpg_becomes_psycopg(self):
        url = sync_database_url("postgresql+asyncpg://scoring:s3cret@db:5432/scoring")
        assert url == "postgresql+psycopg://scoring:s3cret@db:5432/scoring"

    def test_aiosqlite_becomes_sqlite(self):
        assert sync_database_url("sqlite+aiosqlite:///./scoring.db") == "sqlite:///./scoring.db"

    def test_sync_url_is_unchanged(self):
        url = "postgresql+psycopg://scoring@db/scoring"
        assert sync_database_url(url) == url

    def test_escaped_password_is_kept(self):
        url = sync_database_url("postgresql+asyncpg://scoring:p%40ss@db/scoring")
        assert url == "postgresql+psycopg://scoring:p%40ss@db/scoring"
