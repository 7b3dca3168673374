import os
from io import StringIO
from unittest.mock import patch

from django.core.exceptions import ValidationError
from django.core.management import CommandError, call_command
from django.db import IntegrityError, OperationalError
from django.test import SimpleTestCase, TestCase

from common.exceptions import (
    AlreadyReviewedError,
    NotFoundError,
    QuotaExceededError,
    RemoteUnavailableError,
    error_response,
    wrap_store_errors,
)
from common.middleware import GlobalRequestLoggingMiddleware


class ErrorResponseTests(SimpleTestCase):
    def test_domain_errors_keep_their_status(self):
        self.assertEqual(error_response(NotFoundError()).status_code, 404)
        self.assertEqual(error_response(AlreadyReviewedError()).status_code, 410)
        self.assertEqual(error_response(QuotaExceededError()).status_code, 402)
        self.assertEqual(error_response(RemoteUnavailableError()).status_code, 503)

    def test_validation_error_is_bad_request(self):
        response = error_response(ValidationError("Rating must be between 1 and 5."))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data, {"detail": "Rating must be between 1 and 5."})

    def test_unknown_errors_are_reraised(self):
        with self.assertRaises(KeyError):
            error_response(KeyError("boom"))


class WrapStoreErrorsTests(SimpleTestCase):
    def test_database_error_becomes_remote_unavailable(self):
        @wrap_store_errors
        def broken():
            raise OperationalError("database is locked")

        with self.assertRaises(RemoteUnavailableError):
            broken()

    def test_integrity_error_passes_through(self):
        @wrap_store_errors
        def duplicate():
            raise IntegrityError("UNIQUE constraint failed")

        with self.assertRaises(IntegrityError):
            duplicate()


class RequestLoggingTests(SimpleTestCase):
    def test_sensitive_keys_are_masked(self):
        scrubbed = GlobalRequestLoggingMiddleware(lambda request: None)._scrub(
            {"email": "ana@example.com", "password": "secret", "token": "abc"}
        )

        self.assertEqual(scrubbed, {"email": "ana@example.com", "password": "***", "token": "***"})


class CheckEnvCommandTests(TestCase):
    def test_passes_when_required_variables_are_set(self):
        out = StringIO()
        with patch.dict(os.environ, {"SECRET_KEY": "k", "MERCADOPAGO_ACCESS_TOKEN": "TEST-1"}):
            call_command("check_env", stdout=out)

        self.assertIn("All required environment variables are set.", out.getvalue())

    def test_fails_without_payment_token(self):
        with patch.dict(os.environ, {"SECRET_KEY": "k"}):
            os.environ.pop("MERCADOPAGO_ACCESS_TOKEN", None)
            with self.assertRaises(CommandError):
                call_command("check_env", stdout=StringIO())
