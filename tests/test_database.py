from statsboard.app import database


def test_sqlite_waits_are_bounded_by_store_timeout():
    options = database.engine_options("sqlite:///dev.db", timeout_s=10)

    assert options["connect_args"] == {"check_same_thread": False, "timeout": 10}
    # SingletonThreadPool (in-memory SQLite) rejects pool_timeout.
    assert "pool_timeout" not in options


def test_mysql_driver_and_pool_timeouts():
    options = database.engine_options("mysql+pymysql://u:p@db/jobs", timeout_s=10)

    assert options["pool_timeout"] == 10
    assert options["connect_args"] == {"connect_timeout": 10, "read_timeout": 10, "write_timeout": 10}


def test_postgres_statement_timeout():
    options = database.engine_options("postgresql://u:p@db/jobs", timeout_s=2.5)

    assert options["pool_timeout"] == 2
    assert options["connect_args"]["connect_timeout"] == 2
    assert options["connect_args"]["options"] == "-c statement_timeout=2000"


def test_sub_second_timeout_rounds_up_to_one_second():
    assert database.engine_options("mysql+pymysql://u:p@db/jobs", timeout_s=0.2)["pool_timeout"] == 1


def test_mysql_url_is_upgraded_to_pymysql():
    assert database._normalize_database_url("mysql://u:p@db/jobs") == "mysql+pymysql://u:p@db/jobs"
    assert database._normalize_database_url("sqlite:///dev.db") == "sqlite:///dev.db"


def test_session_factory_is_resolved_at_call_time(session_factory):
    # The test fixture rebinds SessionLocal; request code must see the rebound factory.
    assert database.get_session_factory() is session_factory
    assert not hasattr(database, "get_db")
