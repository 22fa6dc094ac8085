"""
Tests for error classification and the retry bound (mdviewer.watcher.resilience).
"""

import errno

import pytest

from mdviewer.remote.errors import (
    MountFailedError,
    NotConnectedError,
    NotFoundError,
    PermissionDeniedError,
    RemoteConnectionError,
    RemoteFileError,
)
from mdviewer.watcher.resilience import ErrorClass, ResiliencePolicy, classify_error


class TestClassifyError:
    """Sorting exceptions into NOT_FOUND / CONNECTION / OTHER."""

    @pytest.mark.parametrize(
        "error",
        [
            NotFoundError("File not found: /a.md", "/a.md"),
            FileNotFoundError(errno.ENOENT, "No such file or directory"),
            OSError(errno.ENOENT, "gone"),
            Exception("No such file"),
            Exception("remote said: not found"),
        ],
    )
    def test_not_found(self, error):
        assert classify_error(error) is ErrorClass.NOT_FOUND

    @pytest.mark.parametrize(
        "error",
        [
            RemoteConnectionError("SSH connection dropped"),
            NotConnectedError("/a.md"),
            MountFailedError("NFS mount failed", "mount.nfs: timed out"),
            ConnectionResetError(),
            TimeoutError(),
            OSError(errno.ECONNREFUSED, "refused"),
            OSError(errno.ETIMEDOUT, "timed out"),
            Exception("Connection closed by peer"),
        ],
    )
    def test_connection(self, error):
        assert classify_error(error) is ErrorClass.CONNECTION

    @pytest.mark.parametrize(
        "error",
        [
            PermissionDeniedError("Permission denied: /a.md", "/a.md"),
            ValueError("bad utf-8"),
            OSError(errno.EACCES, "denied"),
            Exception("something odd"),
        ],
    )
    def test_other(self, error):
        assert classify_error(error) is ErrorClass.OTHER

    def test_translated_error_message_is_not_guessed_from(self):
        """A file named "not found.md" must not make a permission error look like a deletion."""
        error = RemoteFileError("Unreadable: /docs/not found.md", "/docs/not found.md")
        assert classify_error(error) is ErrorClass.OTHER


class TestResiliencePolicy:
    """Consecutive connection failure counting."""

    def test_default_bound_is_three(self):
        policy = ResiliencePolicy()

        assert policy.record_connection_failure() is False
        assert policy.record_connection_failure() is False
        assert policy.record_connection_failure() is True
        assert policy.exhausted
        assert policy.retry_count == 3

    def test_success_resets(self):
        policy = ResiliencePolicy(max_retries=3)
        policy.record_connection_failure()
        policy.record_connection_failure()

        assert policy.retrying
        assert policy.record_success() is True
        assert policy.retry_count == 0
        assert not policy.retrying

    def test_success_without_failures_is_not_a_recovery(self):
        assert ResiliencePolicy().record_success() is False

    def test_reset(self):
        policy = ResiliencePolicy(max_retries=1)
        policy.record_connection_failure()
        policy.reset()

        assert policy.retry_count == 0
        assert not policy.exhausted

    def test_rejects_zero_retries(self):
        with pytest.raises(ValueError):
            ResiliencePolicy(max_retries=0)
