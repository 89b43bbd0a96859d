"""Tests for the error taxonomy and wrapping."""

import pytest

from daily_reflections_bot.utils.exceptions import (
    ERROR_STATUS_CODES,
    DatabaseError,
    ErrorType,
    ExternalServiceError,
    NetworkError,
    ReflectionsBotError,
    ValidationError,
    wrap_error,
)


def load_reflection_from_disk():
    return wrap_error(OSError("disk unavailable"), ErrorType.DATABASE)


class TestWrapError:
    def test_wraps_exception_in_kind_subclass(self):
        cause = ValueError("bad value")
        wrapped = wrap_error(cause, ErrorType.VALIDATION, operation="parse")

        assert isinstance(wrapped, ValidationError)
        assert wrapped.error_type == ErrorType.VALIDATION
        assert wrapped.original_error is cause
        assert wrapped.operation == "parse"
        assert wrapped.message == "bad value"
        assert wrapped.timestamp

    def test_rewrapping_is_a_no_op(self):
        original = NetworkError("connection refused", context={"url": "http://x"})
        again = wrap_error(original, ErrorType.INTERNAL, operation="other")

        assert again is original
        assert again.error_type == ErrorType.NETWORK
        assert again.context == {"url": "http://x"}

    def test_operation_defaults_to_calling_function(self):
        wrapped = load_reflection_from_disk()
        assert isinstance(wrapped, DatabaseError)
        assert wrapped.operation == "load_reflection_from_disk"

    def test_non_exception_values(self):
        wrapped = wrap_error("something odd")
        assert type(wrapped) is ReflectionsBotError
        assert wrapped.error_type == ErrorType.UNKNOWN
        assert wrapped.message == "something odd"
        assert wrapped.original_error is None

    def test_stack_comes_from_cause(self):
        try:
            raise KeyError("missing")
        except KeyError as e:
            wrapped = wrap_error(e, ErrorType.INTERNAL)
        assert "KeyError" in wrapped.stack


class TestErrorShape:
    @pytest.mark.parametrize("kind", list(ErrorType))
    def test_every_kind_has_a_status(self, kind):
        assert kind in ERROR_STATUS_CODES

    def test_status_codes(self):
        assert ValidationError("x").status_code == 400
        assert ExternalServiceError("x").status_code == 503
        assert NetworkError("x").status_code == 502

    def test_public_dict_has_no_stack(self):
        error = DatabaseError("write failed", context={"secret": "value"}, original_error=RuntimeError("boom"))
        public = error.to_public_dict()

        assert public == {"type": "DATABASE", "message": "write failed", "timestamp": error.timestamp}

    def test_log_dict_has_context_and_cause(self):
        error = DatabaseError("write failed", context={"date_string": "1 MAY"}, original_error=RuntimeError("boom"))
        log_dict = error.to_log_dict()

        assert log_dict["context"] == {"date_string": "1 MAY"}
        assert "boom" in log_dict["cause"]
        assert "stack" in log_dict
        assert log_dict["error_timestamp"] == error.timestamp
        assert "timestamp" not in log_dict

    def test_str_includes_context_and_cause(self):
        error = ValidationError("bad month", context={"month": "SMARCH"}, original_error=ValueError("nope"))
        assert str(error) == "bad month (Context: month=SMARCH) (Caused by: nope)"
