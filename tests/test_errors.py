import unittest

from chatdelta.errors import (
    ClientError,
    ErrorKind,
    RequestCancelledError,
    bad_request_error,
    config_error,
    connection_error,
    dns_error,
    expired_token_error,
    invalid_api_key_error,
    invalid_model_error,
    invalid_parameter_error,
    is_authentication_error,
    is_network_error,
    is_retryable,
    json_parse_error,
    missing_config_error,
    missing_field_error,
    permission_denied_error,
    quota_exceeded_error,
    rate_limit_error,
    server_error,
    status_error,
    stream_closed_error,
    stream_read_error,
    timeout_error,
)


class StatusErrorTests(unittest.TestCase):
    def _map(self, status: int, message: str = "", error_code: str | None = None) -> ClientError:
        return status_error(status, message, model="gpt-x", service="OpenAI API", error_code=error_code)

    def test_401_is_invalid_api_key(self) -> None:
        err = self._map(401, "Incorrect API key provided")
        self.assertEqual(ErrorKind.AUTH, err.kind)
        self.assertEqual("invalid_api_key", err.code)

    def test_401_mentioning_expiry_is_expired_token(self) -> None:
        self.assertEqual("expired_token", self._map(401, "Token has expired").code)

    def test_403_is_permission_denied_for_service(self) -> None:
        err = self._map(403, "forbidden")
        self.assertEqual("permission_denied", err.code)
        self.assertIn("OpenAI API", err.message)

    def test_429_is_rate_limit_with_retry_after(self) -> None:
        err = status_error(429, "slow down", model="m", service="s", retry_after=2.0)
        self.assertEqual("rate_limit", err.code)
        self.assertEqual(2.0, err.retry_after)

    def test_429_insufficient_quota_is_quota_exceeded(self) -> None:
        self.assertEqual("quota_exceeded", self._map(429, "You exceeded your quota", "insufficient_quota").code)

    def test_400_about_model_is_invalid_model(self) -> None:
        err = self._map(400, "The model `gpt-x` does not exist")
        self.assertEqual("invalid_model", err.code)
        self.assertIn("gpt-x", err.message)

    def test_400_otherwise_is_bad_request(self) -> None:
        err = self._map(400, "messages must not be empty")
        self.assertEqual("bad_request", err.code)
        self.assertEqual("messages must not be empty", err.message)

    def test_other_status_is_server_error(self) -> None:
        for status in (404, 500, 502, 503):
            err = self._map(status, "upstream failure")
            self.assertEqual("server_error", err.code)
            self.assertIn(str(status), err.message)


class ClassificationTests(unittest.TestCase):
    def test_retryable_errors(self) -> None:
        for err in (
            timeout_error(30),
            connection_error(OSError("reset")),
            dns_error("api.example.com", None),
            rate_limit_error(),
            server_error(503, "unavailable"),
        ):
            self.assertTrue(is_retryable(err), err)

    def test_non_retryable_errors(self) -> None:
        for err in (
            quota_exceeded_error(),
            invalid_model_error("m"),
            bad_request_error("bad"),
            invalid_api_key_error(),
            expired_token_error(),
            permission_denied_error("x"),
            invalid_parameter_error("timeout", 0),
            missing_config_error("key"),
            config_error("empty conversation"),
            json_parse_error(None),
            missing_field_error("choices"),
            stream_closed_error(),
            stream_read_error(None),
        ):
            self.assertFalse(is_retryable(err), err)

    def test_foreign_exceptions_are_not_retryable(self) -> None:
        self.assertFalse(is_retryable(RuntimeError("boom")))
        self.assertFalse(is_retryable(RequestCancelledError()))
        self.assertFalse(is_retryable(None))

    def test_classification_does_not_mutate_error(self) -> None:
        err = rate_limit_error(1.5)
        before = (err.kind, err.code, err.message, err.retry_after)
        is_retryable(err)
        is_network_error(err)
        is_authentication_error(err)
        self.assertEqual(before, (err.kind, err.code, err.message, err.retry_after))

    def test_authentication_and_network_predicates(self) -> None:
        self.assertTrue(is_authentication_error(expired_token_error()))
        self.assertFalse(is_authentication_error(timeout_error(1)))
        self.assertTrue(is_network_error(timeout_error(1)))
        self.assertFalse(is_network_error(server_error(500, "")))


class ClientErrorTests(unittest.TestCase):
    def test_str_without_cause(self) -> None:
        self.assertEqual("network: request timed out after 30s", str(timeout_error(30)))

    def test_str_with_cause_and_chaining(self) -> None:
        cause = OSError("connection reset")
        err = connection_error(cause)
        self.assertEqual(
            "network: failed to connect to the API server (caused by: connection reset)",
            str(err),
        )
        self.assertIs(cause, err.__cause__)

    def test_matches_on_kind_and_code(self) -> None:
        self.assertTrue(rate_limit_error(1).matches(rate_limit_error(5)))
        self.assertFalse(rate_limit_error().matches(quota_exceeded_error()))
        self.assertFalse(rate_limit_error().matches(ValueError()))

    def test_kind_accepts_string(self) -> None:
        self.assertEqual(ErrorKind.PARSE, ClientError("parse", "x", "y").kind)


if __name__ == "__main__":
    unittest.main()
