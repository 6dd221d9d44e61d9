"""
Tests for database utilities.

Tests cover:
- Transient error detection
- Retry execution with exponential backoff
- Conflict-ignoring inserts
- Connection health checks
"""

import pytest
from unittest.mock import MagicMock, patch
from sqlalchemy.exc import OperationalError, InterfaceError
from sqlmodel import Session, select

from app.core.db_utils import (
    is_transient_error,
    execute_with_retry,
    insert_ignore,
    check_db_connection,
    TRANSIENT_ERRORS,
)
from app.core.typing import utc_now
from app.models.status import DatacenterStatus


class TestIsTransientError:
    """Tests for is_transient_error function."""

    @pytest.mark.parametrize("error_msg", [
        "server closed the connection unexpectedly",
        "connection refused",
        "SSL Connection Has Been Closed Unexpectedly",  # Case variation
        "could not connect to server",
        "database is locked",
    ])
    def test_detects_transient_errors(self, error_msg):
        """Should detect known transient error messages."""
        assert is_transient_error(Exception(error_msg)) is True

    @pytest.mark.parametrize("error_msg", [
        "relation 'datacenter_status' does not exist",
        "duplicate key value violates unique constraint",
        "",
    ])
    def test_rejects_non_transient_errors(self, error_msg):
        """Should reject non-transient database errors."""
        assert is_transient_error(Exception(error_msg)) is False

    def test_all_errors_are_lowercase(self):
        """All transient error strings should be lowercase for matching."""
        for error in TRANSIENT_ERRORS:
            assert error == error.lower(), f"Error '{error}' is not lowercase"


class TestExecuteWithRetry:
    """Tests for execute_with_retry function."""

    def test_success_on_first_try(self, test_engine):
        """Should return result on successful first try."""
        assert execute_with_retry(test_engine, lambda session: "success") == "success"

    def test_retries_on_transient_error(self, test_engine):
        """Should retry on transient error and succeed."""
        call_count = 0

        def operation(session):
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise OperationalError("server closed the connection unexpectedly", None, None)
            return "success after retry"

        with patch("app.core.db_utils.time.sleep"):  # Skip actual delays
            result = execute_with_retry(test_engine, operation)

        assert result == "success after retry"
        assert call_count == 3

    def test_raises_after_max_retries_with_backoff(self, test_engine):
        """Should back off exponentially, then raise."""
        delays = []

        def operation(session):
            raise InterfaceError("connection reset by peer", None, None)

        with patch("app.core.db_utils.time.sleep", side_effect=delays.append):
            with pytest.raises(InterfaceError):
                execute_with_retry(test_engine, operation, max_retries=3, base_delay=0.5)

        assert delays == [0.5, 1.0, 2.0]

    def test_no_retry_on_non_transient_error(self, test_engine):
        """Should not retry on non-transient errors."""
        call_count = 0

        def operation(session):
            nonlocal call_count
            call_count += 1
            raise OperationalError("no such table: datacenter_status", None, None)

        with pytest.raises(OperationalError):
            execute_with_retry(test_engine, operation)

        assert call_count == 1


class TestInsertIgnore:
    """Tests for insert_ignore."""

    def _values(self, status="available"):
        return {"model": 1, "datacenter": "GRA", "status": status, "last_checked": utc_now()}

    def test_inserts_new_row(self, test_engine):
        with Session(test_engine) as session:
            assert insert_ignore(session, DatacenterStatus, self._values()) is True
            session.commit()

            assert session.exec(select(DatacenterStatus)).one().status == "available"

    def test_conflict_is_ignored(self, test_engine):
        """A unique-constraint conflict inserts nothing and does not raise."""
        with Session(test_engine) as session:
            insert_ignore(session, DatacenterStatus, self._values())
            assert insert_ignore(session, DatacenterStatus, self._values("out-of-stock")) is False
            session.commit()

            rows = session.exec(select(DatacenterStatus)).all()
            assert len(rows) == 1
            assert rows[0].status == "available"

    def test_unsupported_dialect(self):
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "mysql"

        with pytest.raises(NotImplementedError):
            insert_ignore(session, DatacenterStatus, self._values())


class TestCheckDbConnection:
    """Tests for check_db_connection function."""

    def test_returns_true_on_healthy_connection(self, test_engine):
        """Should return True for healthy database connection."""
        assert check_db_connection(test_engine) is True

    def test_returns_false_on_connection_failure(self):
        """Should return False and log when connection fails."""
        mock_engine = MagicMock()

        with patch("app.core.db_utils.Session") as mock_session:
            mock_session.return_value.__enter__ = MagicMock(
                side_effect=OperationalError("connection refused", None, None)
            )
            mock_session.return_value.__exit__ = MagicMock(return_value=False)

            with patch("app.core.db_utils.logger") as mock_logger:
                result = check_db_connection(mock_engine)
                mock_logger.error.assert_called_once()

        assert result is False
